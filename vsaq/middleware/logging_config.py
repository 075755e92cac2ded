"""
Structured logging configuration.

Two output formats on stderr:
    JSONFormatter      production; one JSON object per line
    ReadableFormatter  development and tests; coloured single line

Level comes from LOG_LEVEL (INFO in production, DEBUG otherwise).

Services pass questionnaire context through ``extra=``:

    logger.info("Instance %s submitted", inst.id,
                extra={"instance_id": inst.id, "event_type": "instance_submitted"})

Only the keys in ``CONTEXT_FIELDS`` are copied into JSON entries, so
arbitrary objects never leak into the log stream.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

REQUEST_FIELDS = ("method", "path", "status", "duration_ms", "remote_addr", "request_id")
DOMAIN_FIELDS = ("admin_id", "instance_id", "question_id", "event_type")
CONTEXT_FIELDS = REQUEST_FIELDS + DOMAIN_FIELDS

_NOISY_LOGGERS = ("urllib3", "werkzeug", "sqlalchemy.engine")


def _context(record: logging.LogRecord) -> dict:
    return {
        key: getattr(record, key)
        for key in CONTEXT_FIELDS
        if getattr(record, key, None) is not None
    }


class JSONFormatter(logging.Formatter):
    """One JSON document per record, for log aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "function": record.funcName,
            "line": record.lineno,
            **_context(record),
        }
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """Coloured developer format: ``12:00:01 INFO     vsaq.x: msg (instance=3 q=q1) [4ms]``."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        color = self.COLORS.get(record.levelname, "")
        line = f"{color}{ts} {record.levelname:<8}{self.RESET} {record.name}: {record.getMessage()}"

        tags = []
        if getattr(record, "instance_id", None) is not None:
            tags.append(f"instance={record.instance_id}")
        if getattr(record, "question_id", None):
            tags.append(f"q={record.question_id}")
        if tags:
            line += f" ({' '.join(tags)})"
        if getattr(record, "duration_ms", None) is not None:
            line += f" [{record.duration_ms:.0f}ms]"

        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(app):
    """Install a single stderr handler on the root logger for ``app``.

    The app factory runs more than once in tests, so existing root handlers
    are replaced rather than stacked.
    """
    testing = bool(app.config.get("TESTING"))
    production = not app.config.get("DEBUG") and not testing

    level_name = os.getenv("LOG_LEVEL", "INFO" if production else "DEBUG").upper()
    level = getattr(logging, level_name, logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if production else ReadableFormatter())
    handler.setLevel(level)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    app.logger.setLevel(level)

    if not testing:
        app.logger.info("Logging configured: level=%s format=%s",
                        level_name, "json" if production else "readable")
