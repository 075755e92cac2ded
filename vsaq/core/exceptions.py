"""
Service-wide exception hierarchy.

Services raise these types; blueprints register handlers against them once
and get consistent HTTP status codes everywhere:

    NotFoundError               404
    ValidationError             422  (MalformedDocument → 400)
    InstanceLockedError         403  (AlreadySubmittedError is a subtype)
    CannotDeleteSubmittedError  403
    TemplateInUseError          403

Save conflicts on answers are NOT exceptions; the answer service returns
them as ``SaveConflict`` values the caller must branch on.

Usage:
    from vsaq.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Instance", resource_id=42)
    raise ValidationError("Template has 2 issue(s)", details={"issues": [...]})
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist.

    Args:
        resource: Human-readable entity name (e.g. "Template", "Instance").
        resource_id: The key that was looked up. Logged, not shown to respondents.
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input is well-formed but violates a business rule.

    Maps to HTTP 422.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional structured breakdown (e.g. template issue list).
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class MalformedDocument(ValidationError):
    """Template content is not a parseable questionnaire document.

    Aborts rendering; maps to HTTP 400 at the API boundary.
    """


class InstanceLockedError(Exception):
    """The instance is locked (submitted); answers are read-only. Maps to HTTP 403."""

    def __init__(self, message: str = "Questionnaire is locked") -> None:
        super().__init__(message)


class AlreadySubmittedError(InstanceLockedError):
    """Submit called on an instance that is already locked."""

    def __init__(self, message: str = "Already submitted") -> None:
        super().__init__(message)


class CannotDeleteSubmittedError(Exception):
    """Delete refused because the instance has been submitted. Maps to HTTP 403."""

    def __init__(self, message: str = "Cannot delete submitted questionnaires") -> None:
        super().__init__(message)


class TemplateInUseError(Exception):
    """Template change refused because instances depend on it. Maps to HTTP 403."""
