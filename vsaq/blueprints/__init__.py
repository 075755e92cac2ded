"""
VSAQ Questionnaire Service
Blueprint registry and shared error handling.

Every API blueprint calls ``register_error_handlers`` so service exceptions
map to the same status codes everywhere:

    MalformedDocument            400
    ValidationError              422
    NotFoundError                404
    InstanceLockedError          403  (AlreadySubmittedError included)
    CannotDeleteSubmittedError   403
    TemplateInUseError           403
"""

import logging

from flask import request
from werkzeug.exceptions import HTTPException

from vsaq.core.exceptions import (
    CannotDeleteSubmittedError,
    InstanceLockedError,
    MalformedDocument,
    NotFoundError,
    TemplateInUseError,
    ValidationError,
)
from vsaq.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def register_error_handlers(bp):
    """Attach the service-exception → HTTP mapping to ``bp``."""

    @bp.errorhandler(MalformedDocument)
    def _handle_malformed(error: MalformedDocument):
        return api_error(E.MALFORMED_DOCUMENT, str(error))

    @bp.errorhandler(ValidationError)
    def _handle_validation(error: ValidationError):
        code = E.TEMPLATE_INVALID if "issues" in error.details else E.VALIDATION_RULE
        return api_error(code, str(error), details=error.details)

    @bp.errorhandler(NotFoundError)
    def _handle_not_found(error: NotFoundError):
        logger.info("Not found: %s (endpoint=%s)", error, request.endpoint)
        return api_error(E.NOT_FOUND, f"{error.resource} not found")

    @bp.errorhandler(InstanceLockedError)
    def _handle_locked(error: InstanceLockedError):
        return api_error(E.LOCKED, str(error))

    @bp.errorhandler(CannotDeleteSubmittedError)
    @bp.errorhandler(TemplateInUseError)
    def _handle_forbidden(error: Exception):
        return api_error(E.FORBIDDEN, str(error))

    @bp.errorhandler(Exception)
    def _handle_unexpected(error: Exception):
        if isinstance(error, HTTPException):
            return error
        logger.exception("Unexpected error in %s endpoint=%s", bp.name, request.endpoint)
        return api_error(E.INTERNAL, "Internal server error")

    return bp
