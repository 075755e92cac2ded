"""Shared request-parsing helpers for blueprints."""

from flask import request

_TRUE = ("1", "true", "yes", "on")


def json_body() -> dict:
    """Request JSON as a dict; anything else (missing, array, invalid) is ``{}``."""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def parse_bool(value, default: bool = False) -> bool:
    """Interpret query-string / JSON flags such as ``?archived=true``.

    Returns ``default`` for None / empty input.
    """
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in _TRUE
