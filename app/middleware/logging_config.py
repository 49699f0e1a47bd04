"""
Logging setup for the clearance service.

One stderr handler on the root logger:
    production           → JSONFormatter, one object per line
    development/testing  → ReadableFormatter, coloured single lines

Level comes from the LOG_LEVEL config key; it defaults to INFO in
production and DEBUG elsewhere.
"""

import json
import logging
import sys
from datetime import datetime, timezone

# ``extra=`` attributes worth keeping in structured output.
CONTEXT_FIELDS = (
    "request_id",
    "actor_id",
    "stage",
    "escalation_level",
    "job_name",
    "http_request_id",
    "method",
    "path",
    "status",
    "duration_ms",
    "remote_addr",
)

_QUIET_LOGGERS = ("werkzeug", "sqlalchemy.engine", "alembic.runtime.migration")


def context_of(record: logging.LogRecord) -> dict:
    """The CONTEXT_FIELDS set on ``record``; None values are dropped."""
    found = {}
    for name in CONTEXT_FIELDS:
        value = getattr(record, name, None)
        if value is not None:
            found[name] = value
    return found


class JSONFormatter(logging.Formatter):
    def format(self, record):
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "where": f"{record.module}.{record.funcName}:{record.lineno}",
        }
        payload.update(context_of(record))
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """``HH:MM:SS LEVEL logger: message [Nms]`` with an ANSI-coloured level."""

    PALETTE = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }

    def format(self, record):
        clock = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        colour = self.PALETTE.get(record.levelno, "")
        line = f"{clock} {colour}{record.levelname:<8}\033[0m {record.name}: {record.getMessage()}"

        duration = getattr(record, "duration_ms", None)
        if duration is not None:
            line += f" [{duration:.0f}ms]"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def configure_logging(app):
    testing = bool(app.config.get("TESTING"))
    production = not testing and not app.config.get("DEBUG")

    level_name = str(app.config.get("LOG_LEVEL") or ("INFO" if production else "DEBUG")).upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        level = logging.INFO

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if production else ReadableFormatter())
    handler.setLevel(level)

    # create_app runs many times under pytest; replace rather than stack handlers
    root = logging.getLogger()
    for old in list(root.handlers):
        root.removeHandler(old)
    root.addHandler(handler)
    root.setLevel(level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    app.logger.setLevel(level)

    if not testing:
        app.logger.info("Logging ready (%s, %s)", level_name, "json" if production else "readable")
