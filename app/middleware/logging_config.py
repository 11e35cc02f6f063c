"""
Logging setup for the dashboard API.

Two output shapes share one root handler:

- ``json``: one object per line for the log shipper (production default)
- ``readable``: colored single line with the owning user / entity ids
  appended, for local runs and pytest output

``LOG_LEVEL`` and ``LOG_FORMAT`` come from the Flask config, which reads
them from the environment.
"""

import json
import logging
import sys
from datetime import datetime, timezone

# ``extra=`` keys the services and the timing middleware attach to records.
REQUEST_FIELDS = ("method", "path", "status", "duration_ms", "remote_addr", "request_id")
SCOPE_FIELDS = (
    "user_id",
    "project_id",
    "task_id",
    "campaign_id",
    "customer_id",
    "deal_id",
    "idea_id",
    "event_type",
)


def _record_fields(record: logging.LogRecord, keys) -> dict:
    return {k: getattr(record, k) for k in keys if getattr(record, k, None) is not None}


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "where": f"{record.module}.{record.funcName}:{record.lineno}",
        }
        entry.update(_record_fields(record, REQUEST_FIELDS))
        entry.update(_record_fields(record, SCOPE_FIELDS))
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    LEVEL_COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelname, "")
        stamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        line = f"{color}{stamp} {record.levelname:<7}{self.RESET} {record.name}: {record.getMessage()}"

        scope = _record_fields(record, SCOPE_FIELDS)
        if scope:
            line += " (" + " ".join(f"{k}={v}" for k, v in scope.items()) + ")"
        duration = getattr(record, "duration_ms", None)
        if duration is not None:
            line += f" [{duration:.0f}ms]"
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(app):
    """Install a single stderr handler on the root logger.

    The format defaults to ``json`` outside debug/testing and ``readable``
    otherwise; ``LOG_FORMAT`` overrides it.
    """
    testing = app.config.get("TESTING", False)
    debug = app.config.get("DEBUG", False)

    fmt = (app.config.get("LOG_FORMAT") or ("readable" if debug or testing else "json")).lower()
    level_name = (app.config.get("LOG_LEVEL") or ("DEBUG" if debug else "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if fmt == "json" else ReadableFormatter())
    handler.setLevel(level)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in ("werkzeug", "sqlalchemy.engine"):
        logging.getLogger(name).setLevel(logging.WARNING)
    app.logger.setLevel(level)

    if not testing:
        app.logger.info("Logging ready: level=%s format=%s", level_name, fmt)
