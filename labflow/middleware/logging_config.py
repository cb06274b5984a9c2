"""
Logging setup for the report workflow service.

Production writes one JSON object per line; development and tests get a
short coloured line.  Level comes from LOG_LEVEL.

Services attach workflow context with ``extra={...}``:

    logger.info("Report %s locked", rid,
                extra={"report_id": rid, "user_id": actor.user_id, "role": "CLIENT"})

Only the keys below are picked up; anything else passed in ``extra`` is
ignored by both formatters.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

# Set by middleware.timing on every request log line
REQUEST_KEYS = ("request_id", "method", "path", "status", "duration_ms", "remote_addr")

# Set by services and error handlers
WORKFLOW_KEYS = ("report_id", "entity_id", "version", "report_status", "action", "user_id", "role")


def record_context(record: logging.LogRecord, keys) -> dict:
    """The subset of ``keys`` present (and not None) on ``record``."""
    return {key: getattr(record, key) for key in keys if getattr(record, key, None) is not None}


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(record_context(record, REQUEST_KEYS))
        entry.update(record_context(record, WORKFLOW_KEYS))
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """``12:00:01 INFO     labflow.services.x: message  report=.. user=.. [3ms]``"""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"
    SHORT_NAMES = {"report_id": "report", "entity_id": "entity", "user_id": "user"}

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        context = record_context(record, WORKFLOW_KEYS)
        ctx_str = "".join(f" {self.SHORT_NAMES.get(k, k)}={v}" for k, v in context.items())
        duration = getattr(record, "duration_ms", None)
        dur_str = f" [{duration:.0f}ms]" if duration is not None else ""
        line = f"{color}{ts} {record.levelname:<8}{self.RESET} {record.name}: {record.getMessage()}"
        if ctx_str:
            line += " " + ctx_str
        line += dur_str
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(app):
    """Install a single stderr handler on the root logger.

    JSON outside debug/testing, readable otherwise.  LOG_LEVEL defaults to
    INFO in production and DEBUG elsewhere.
    """
    is_testing = app.config.get("TESTING", False)
    is_prod = not app.config.get("DEBUG", False) and not is_testing

    level_name = os.getenv("LOG_LEVEL", "INFO" if is_prod else "DEBUG")
    level = getattr(logging, level_name.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if is_prod else ReadableFormatter())
    handler.setLevel(level)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    # werkzeug duplicates the timing middleware's request lines
    for noisy in ("werkzeug", "sqlalchemy.engine"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    app.logger.setLevel(level)
    if not is_testing:
        app.logger.info("Logging configured: level=%s format=%s", level_name, "JSON" if is_prod else "readable")
