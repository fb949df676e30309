"""
Logging setup for the ticketing API.

Two renderings of the same record:
    json      one object per line, for the log shipper in production
    readable  coloured single line for a developer terminal

Records may carry request context (set by the timing middleware), the
epic / slice / ticket a message is about, and graph-write details from the
relationship manager's retry loop. Both formatters surface those fields.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

REQUEST_FIELDS = ("request_id", "method", "path", "status", "duration_ms", "remote_addr")
SCOPE_FIELDS = ("epic_id", "slice_id", "ticket_id")
GRAPH_FIELDS = ("event_type", "graph_key", "operation", "attempt")

QUIET_LOGGERS = ("urllib3", "werkzeug", "sqlalchemy.engine")


def record_context(record: logging.LogRecord, fields) -> dict:
    """Subset of *fields* set on the record, skipping None."""
    found = {}
    for name in fields:
        value = getattr(record, name, None)
        if value is not None:
            found[name] = value
    return found


def _exception_text(formatter: logging.Formatter, record: logging.LogRecord):
    if record.exc_info and record.exc_info[0] is not None:
        return formatter.formatException(record.exc_info)
    return None


class JSONFormatter(logging.Formatter):
    """Flat JSON object per record; context fields sit next to the message."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "source": f"{record.module}.{record.funcName}:{record.lineno}",
        }
        for fields in (REQUEST_FIELDS, SCOPE_FIELDS, GRAPH_FIELDS):
            entry.update(record_context(record, fields))
        exc = _exception_text(self, record)
        if exc:
            entry["exception"] = exc
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """
    ``HH:MM:SS LEVEL    logger [request] epic/slice/ticket: message [Nms] (graph …)``

    Each bracketed part appears only when the record carries it.
    """

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        request = record_context(record, REQUEST_FIELDS)
        scope = record_context(record, SCOPE_FIELDS)
        graph = record_context(record, GRAPH_FIELDS)

        head = f"{self.COLORS.get(record.levelname, '')}{self._clock(record)} {record.levelname:<8}{self.RESET}"
        parts = [head, record.name]
        if "request_id" in request:
            parts.append(f"[{request['request_id']}]")
        if scope:
            parts.append("/".join(str(v) for v in scope.values()))
        line = " ".join(parts) + f": {record.getMessage()}"

        if "duration_ms" in request:
            line += f" [{request['duration_ms']:.0f}ms]"
        if graph:
            line += " (" + " ".join(f"{k}={v}" for k, v in graph.items()) + ")"

        exc = _exception_text(self, record)
        return f"{line}\n{exc}" if exc else line

    @staticmethod
    def _clock(record: logging.LogRecord) -> str:
        return datetime.fromtimestamp(record.created).strftime("%H:%M:%S")


def _level_and_format(app):
    """(level name, format name) from app config, then env, then the DEBUG flag."""
    testing = app.config.get("TESTING", False)
    production = not app.config.get("DEBUG", False) and not testing
    level_name = app.config.get("LOG_LEVEL") or os.getenv("LOG_LEVEL") or ("INFO" if production else "DEBUG")
    fmt = app.config.get("LOG_FORMAT") or ("json" if production else "readable")
    return level_name.upper(), fmt.lower()


def configure_logging(app):
    """
    Install one stderr handler on the root logger.

    LOG_LEVEL and LOG_FORMAT (json | readable) override the defaults.
    Existing root handlers are replaced so repeated create_app() calls in
    tests do not stack handlers.
    """
    level_name, fmt = _level_and_format(app)
    level = getattr(logging, level_name, logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if fmt == "json" else ReadableFormatter())
    handler.setLevel(level)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    app.logger.setLevel(level)

    if not app.config.get("TESTING", False):
        app.logger.info("Logging configured: level=%s format=%s", level_name, fmt)
