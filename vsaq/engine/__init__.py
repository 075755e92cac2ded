"""vsaq.engine — questionnaire document model, conditions, rendering and validation.

Nothing in this package touches Flask or the database; services and the
fill client build on it.
"""
