"""
VSAQ Questionnaire Service
Admin authentication gate.

Respondent endpoints (/api/v1/fill/...) are public: the unguessable link is
the credential. Template and instance management sit behind
``@require_admin``, which accepts an API key from the ``X-API-Key`` header
or the ``api_key`` query parameter.

API_KEYS maps keys to admin usernames, e.g. ``"k3y-1:alice,k3y-2:bob"``.
The Admin row is created the first time its key is used and ``last_login``
is stamped on each authenticated request.

With API_AUTH_ENABLED=false (development and tests) every request acts as
the built-in ``dev-admin``.
"""

import functools
import logging
import os
from datetime import datetime, timezone
from typing import Optional

from flask import current_app, g, jsonify, request

from vsaq.models import db
from vsaq.models.questionnaire import Admin

logger = logging.getLogger(__name__)

DEV_ADMIN_USERNAME = "dev-admin"
_FALSY = frozenset({"false", "0", "no", "off"})


def load_api_keys(raw: Optional[str] = None) -> dict[str, str]:
    """``{key: username}`` from API_KEYS; entries missing either half are skipped."""
    if raw is None:
        raw = os.getenv("API_KEYS", "")
    keys = {}
    for entry in filter(None, (part.strip() for part in raw.split(","))):
        key, sep, username = entry.rpartition(":")
        if not sep or not key.strip() or not username.strip():
            logger.warning("Ignoring malformed API_KEYS entry %s...", entry[:4])
            continue
        keys[key.strip()] = username.strip()
    return keys


def auth_enabled() -> bool:
    """The env var wins over app config; outside an app context auth is on."""
    flag = os.getenv("API_AUTH_ENABLED", "")
    if not flag:
        try:
            flag = str(current_app.config.get("API_AUTH_ENABLED", "true"))
        except RuntimeError:
            return True
    return flag.lower() not in _FALSY


def _presented_key() -> Optional[str]:
    return (request.headers.get("X-API-Key", "").strip()
            or request.args.get("api_key", "").strip()
            or None)


def _login(username: str) -> Admin:
    admin = Admin.query.filter_by(username=username).first()
    if admin is None:
        admin = Admin(username=username)
        db.session.add(admin)
        logger.info("Admin account created: %s", username)
    admin.last_login = datetime.now(timezone.utc)
    db.session.commit()
    return admin


def authenticate() -> tuple[Optional[Admin], Optional[tuple]]:
    """Resolve the admin behind the current request.

    Returns ``(admin, None)`` or ``(None, (response, status))``.
    """
    if not auth_enabled():
        return _login(DEV_ADMIN_USERNAME), None

    presented = _presented_key()
    if presented is None:
        return None, (jsonify({"error": "Authentication required. Provide X-API-Key header."}), 401)

    keys = load_api_keys()
    if not keys:
        logger.error("API_AUTH_ENABLED is on but API_KEYS is empty")
        return None, (jsonify({"error": "Server authentication not configured"}), 500)

    if presented not in keys:
        logger.warning("Rejected API key %s...", presented[:8])
        return None, (jsonify({"error": "Invalid API key"}), 401)

    return _login(keys[presented]), None


def require_admin(f):
    """Reject the request unless an admin is authenticated; sets ``g.admin_id``."""
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        admin, err = authenticate()
        if err:
            return err
        g.admin_id = admin.id
        g.admin_username = admin.username
        return f(*args, **kwargs)

    return decorated


def current_admin_id() -> Optional[int]:
    return getattr(g, "admin_id", None)
