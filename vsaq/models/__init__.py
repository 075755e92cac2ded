"""
VSAQ Questionnaire Service
SQLAlchemy models package.

Usage:
    from vsaq.models import db
    from vsaq.models.questionnaire import QuestionnaireTemplate
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
