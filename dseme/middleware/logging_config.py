"""
Logging setup for the role-request service.

Every record emitted while a request is being served is stamped with the
request id and, once the caller is resolved, the acting user id.  Workflow
events add ``event_type`` / ``role_request_id`` through ``extra=``.

Output is JSON lines in production and a short coloured line in
development; ``LOG_FORMAT`` overrides the choice, ``LOG_LEVEL`` the level.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

from flask import g, has_request_context

_CONTEXT_FIELDS = ("request_id", "actor_id")

_EXTRA_FIELDS = (
    "method",
    "path",
    "status",
    "duration_ms",
    "remote_addr",
    "event_type",
    "role_request_id",
) + _CONTEXT_FIELDS

_QUIET_LOGGERS = ("urllib3", "werkzeug", "sqlalchemy.engine")


class RequestContextFilter(logging.Filter):
    """Copy ``g.request_id`` and ``g.actor_id`` onto log records."""

    def filter(self, record):
        if has_request_context():
            for field in _CONTEXT_FIELDS:
                if getattr(record, field, None) is None:
                    setattr(record, field, getattr(g, field, None))
        return True


class JSONFormatter(logging.Formatter):
    def format(self, record):
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update({
            key: getattr(record, key)
            for key in _EXTRA_FIELDS
            if getattr(record, key, None) is not None
        })
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """``12:00:01 INFO  dseme.services.x [req=ab12 actor=7]: message``"""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record):
        color = self.COLORS.get(record.levelname, "")
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        tags = []
        for label, field in (("req", "request_id"), ("actor", "actor_id"), ("rr", "role_request_id")):
            value = getattr(record, field, None)
            if value is not None:
                tags.append(f"{label}={value}")
        tag_str = f" [{' '.join(tags)}]" if tags else ""
        line = f"{color}{record.levelname:<7}{self.RESET} {ts} {record.name}{tag_str}: {record.getMessage()}"
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def _pick_formatter(app):
    fmt = app.config.get("LOG_FORMAT") or ""
    if not fmt:
        production = not app.config.get("DEBUG") and not app.config.get("TESTING")
        fmt = "json" if production else "readable"
    return fmt, JSONFormatter() if fmt == "json" else ReadableFormatter()


def configure_logging(app):
    """Install one stderr handler on the root logger.

    Safe to call once per ``create_app``; earlier handlers are replaced.
    """
    fmt, formatter = _pick_formatter(app)
    default_level = "INFO" if fmt == "json" else "DEBUG"
    level_name = os.getenv("LOG_LEVEL", default_level).upper()
    level = getattr(logging, level_name, logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)
    handler.addFilter(RequestContextFilter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)
    app.logger.setLevel(level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    if not app.config.get("TESTING"):
        app.logger.info("Logging configured: level=%s format=%s", level_name, fmt)
