"""JSON error bodies shared by every blueprint.

All API errors look like::

    {"error": "Template not found", "code": "ERR_NOT_FOUND"}
    {"error": "Template has 2 validation issue(s)", "code": "ERR_TEMPLATE_INVALID",
     "details": {"issues": [...]}}

Save conflicts are not errors: ``POST /fill/<link>/save`` answers 409 with
the conflict body of the wire contract instead.
"""

from __future__ import annotations

from flask import jsonify


class E:
    """Error codes; each has a default HTTP status in ``STATUS_FOR``."""

    # request is unusable as sent
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"
    MALFORMED_DOCUMENT = "ERR_MALFORMED_DOCUMENT"

    # well-formed but rejected by a rule
    TEMPLATE_INVALID = "ERR_TEMPLATE_INVALID"
    VALIDATION_RULE = "ERR_VALIDATION_RULE"

    NOT_FOUND = "ERR_NOT_FOUND"

    # instance locked, template frozen, submitted instance not deletable
    LOCKED = "ERR_LOCKED"
    FORBIDDEN = "ERR_FORBIDDEN"

    INTERNAL = "ERR_INTERNAL"


STATUS_FOR: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.MALFORMED_DOCUMENT: 400,
    E.TEMPLATE_INVALID: 422,
    E.VALIDATION_RULE: 422,
    E.NOT_FOUND: 404,
    E.LOCKED: 403,
    E.FORBIDDEN: 403,
    E.INTERNAL: 500,
}


def api_error(code: str, message: str, *, status: int | None = None, details: dict | None = None):
    """Build ``(response, status)`` for an error.

    ``status`` overrides the code's default; unknown codes fall back to 400.
    ``details`` is included only when non-empty.
    """
    body = {"error": message, "code": code}
    if details:
        body["details"] = details
    return jsonify(body), status or STATUS_FOR.get(code, 400)
