"""
Structured logging configuration.

- Development: one readable line per record, campaign scope in brackets
- Production: one JSON object per record (log aggregator compatible)
- LOG_LEVEL and LOG_FORMAT ("json" | "readable") override the defaults

Campaign-scoped log calls pass ids through ``extra=``:

    logger.info("Status updated", extra={"campaign_id": cid, "influencer_id": iid})

Every record emitted while a request is active also carries the
request id set by the timing middleware, so all lines of one dashboard
call can be grouped.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

from flask import g, has_request_context

# Attributes copied from ``extra=`` into the JSON payload
CONTEXT_KEYS = (
    "request_id",
    "campaign_id",
    "influencer_id",
    "event_type",
    "sheet",
    "method",
    "path",
    "status",
    "duration_ms",
    "remote_addr",
)

_NOISY_LOGGERS = (
    "urllib3",
    "werkzeug",
    "googleapiclient.discovery",
    "googleapiclient.discovery_cache",
    "google.auth.transport.requests",
    "openai",
)


class RequestIdFilter(logging.Filter):
    """Stamp ``record.request_id`` from ``g`` when the caller did not."""

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "request_id", None) is None and has_request_context():
            record.request_id = getattr(g, "request_id", None)
        return True


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "where": f"{record.module}:{record.lineno}",
        }
        payload.update(
            (key, getattr(record, key)) for key in CONTEXT_KEYS if getattr(record, key, None) is not None
        )
        if record.exc_info and record.exc_info[0] is not None:
            payload["exception"] = self.formatException(record.exc_info)
        # Influencer names are Japanese; keep them readable in the aggregator
        return json.dumps(payload, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """``12:00:01 INFO  app.services.campaign_service [C-001/inf-1] message``"""

    _LEVEL_COLORS = {
        logging.DEBUG: "\033[2m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[1;31m",
    }
    _RESET = "\033[0m"

    def __init__(self, color: bool = True):
        super().__init__()
        self.color = color

    def format(self, record: logging.LogRecord) -> str:
        ids = [getattr(record, k, None) for k in ("campaign_id", "influencer_id")]
        scope = "/".join(str(i) for i in ids if i)
        level = f"{record.levelname:<5}"
        if self.color and record.levelno in self._LEVEL_COLORS:
            level = f"{self._LEVEL_COLORS[record.levelno]}{level}{self._RESET}"
        stamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        line = f"{stamp} {level} {record.name}{f' [{scope}]' if scope else ''} {record.getMessage()}"
        if record.exc_info and record.exc_info[0] is not None:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def configure_logging(app):
    """Install a single stderr handler on the root logger for *app*'s environment."""
    testing = app.config.get("TESTING", False)
    production = not app.debug and not testing

    level_name = os.getenv("LOG_LEVEL", "INFO" if production else "DEBUG").upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        level = logging.INFO

    fmt = os.getenv("LOG_FORMAT", "json" if production else "readable").lower()
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if fmt == "json" else ReadableFormatter(color=sys.stderr.isatty()))
    handler.addFilter(RequestIdFilter())

    root = logging.getLogger()
    # create_app runs once per test session; never stack handlers
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)
    app.logger.setLevel(level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    if not testing:
        app.logger.info("Logging configured: level=%s format=%s", level_name, fmt)
