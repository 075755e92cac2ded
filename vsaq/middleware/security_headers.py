"""
Response hardening headers.

The respondent link sits in the URL, so the referrer is never sent and
fill API responses are marked ``no-store``.
"""

from flask import request

CONTENT_SECURITY_POLICY = "; ".join([
    "default-src 'self'",
    "script-src 'self'",
    "style-src 'self' 'unsafe-inline'",
    "img-src 'self' data:",
    "connect-src 'self'",
    "frame-ancestors 'none'",
    "base-uri 'self'",
    "form-action 'self'",
])

DEFAULT_HEADERS = {
    "Content-Security-Policy": CONTENT_SECURITY_POLICY,
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
    "Referrer-Policy": "no-referrer",
    "Permissions-Policy": "camera=(), microphone=(), geolocation=(), payment=()",
}


def init_security_headers(app):
    """Add ``DEFAULT_HEADERS`` to responses that do not set them already."""

    @app.after_request
    def _harden(response):
        for name, value in DEFAULT_HEADERS.items():
            response.headers.setdefault(name, value)
        if request.path.startswith("/api/v1/fill/"):
            response.headers["Cache-Control"] = "no-store"
        response.headers.pop("Server", None)
        return response
