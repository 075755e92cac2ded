"""
Per-request timing and access logging.

Every response carries ``X-Request-ID`` (echoed from the client when sent)
and ``X-Request-Duration-Ms``. Respondent links work as bearer credentials,
so the link segment of ``/api/v1/fill/<link>`` paths is masked in logs.
"""

import logging
import re
import time
import uuid

from flask import Flask, g, request

logger = logging.getLogger(__name__)

# Probes are polled constantly
_QUIET_PATHS = frozenset({"/api/v1/health/ready", "/api/v1/health/live"})

_FILL_LINK = re.compile(r"^(/api/v1/fill/)([^/]+)")

SLOW_REQUEST_MS = 1000


def redact_path(path: str) -> str:
    """Mask the respondent link in fill URLs: keep the first 4 characters."""
    return _FILL_LINK.sub(lambda m: f"{m.group(1)}{m.group(2)[:4]}…", path)


def _level_for(status: int, duration_ms: float) -> tuple[int, str]:
    if duration_ms > SLOW_REQUEST_MS:
        return logging.WARNING, "Slow request"
    if status >= 500:
        return logging.ERROR, "Server error"
    return logging.DEBUG, "Request"


def init_request_timing(app: Flask):
    """Attach the timer hooks to ``app``."""

    @app.before_request
    def _start_clock():
        g.request_start = time.perf_counter()
        g.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]

    @app.after_request
    def _stamp_and_log(response):
        started = getattr(g, "request_start", None)
        if started is None:
            return response

        elapsed = (time.perf_counter() - started) * 1000
        request_id = getattr(g, "request_id", "")
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Request-Duration-Ms"] = f"{elapsed:.1f}"

        if request.path in _QUIET_PATHS:
            return response

        path = redact_path(request.path)
        level, label = _level_for(response.status_code, elapsed)
        logger.log(
            level, "%s: %s %s %d (%.0fms)",
            label, request.method, path, response.status_code, elapsed,
            extra={
                "method": request.method,
                "path": path,
                "status": response.status_code,
                "duration_ms": elapsed,
                "remote_addr": request.remote_addr,
                "request_id": request_id,
                "admin_id": getattr(g, "admin_id", None),
            },
        )
        return response
