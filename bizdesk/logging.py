from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any

from bizdesk.context import get_log_context


# Whitelisted ``extra`` keys, mapped to the name they are rendered under.
# ``module`` is reserved on LogRecord, so callers pass ``module_name``.
_RENDERED_FIELDS = {
    "module_name": "module",
    "method": "method",
    "path": "path",
    "status_code": "status_code",
    "duration_ms": "duration_ms",
    "field_id": "field_id",
    "operation": "operation",
    "version": "version",
    "record_id": "record_id",
    "success_count": "success_count",
    "failure_count": "failure_count",
    "row_count": "row_count",
    "format": "format",
    "error": "error",
}
_MAX_ERROR_LENGTH = 500


def _attach_context(record: logging.LogRecord) -> None:
    context = get_log_context()
    if not getattr(record, "correlation_id", None):
        record.correlation_id = context["correlation_id"]
    if not getattr(record, "module_name", None):
        record.module_name = context["module"]


class RequestContextFilter(logging.Filter):
    """Copy the request correlation id and business module onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        _attach_context(record)
        return True


_base_factory = logging.getLogRecordFactory()


def _context_record_factory(*args: Any, **kwargs: Any) -> logging.LogRecord:
    # ``extra`` cannot overwrite attributes set here; module_name is left to callers.
    record = _base_factory(*args, **kwargs)
    if not getattr(record, "correlation_id", None):
        record.correlation_id = get_log_context()["correlation_id"]
    return record


class JsonLogFormatter(logging.Formatter):
    """One JSON object per line: level, logger, message, correlation id and
    the whitelisted extras under ``fields``."""

    def format(self, record: logging.LogRecord) -> str:
        fields: dict[str, Any] = {}
        for key, rendered in _RENDERED_FIELDS.items():
            value = record.__dict__.get(key)
            if value is None:
                continue
            fields[rendered] = value

        error = fields.get("error")
        if isinstance(error, str) and len(error) > _MAX_ERROR_LENGTH:
            fields["error"] = error[:_MAX_ERROR_LENGTH]
        if record.exc_info:
            fields["exception"] = self.formatException(record.exc_info)

        return json.dumps(
            {
                "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
                "level": record.levelname,
                "logger": record.name,
                "msg": record.getMessage(),
                "correlation_id": getattr(record, "correlation_id", None),
                "fields": fields,
            },
            default=str,
        )


def configure_logging(level_name: str | None = None) -> None:
    root = logging.getLogger()
    if getattr(root, "_bizdesk_configured", False):
        return

    level = logging.getLevelName((level_name or os.getenv("LOG_LEVEL", "INFO")).upper())
    if not isinstance(level, int):
        level = logging.INFO

    stream = logging.StreamHandler(stream=sys.stdout)
    stream.setLevel(level)
    stream.setFormatter(JsonLogFormatter())
    stream.addFilter(RequestContextFilter())

    root.handlers.clear()
    root.filters.clear()
    root.setLevel(level)
    root.addHandler(stream)
    logging.setLogRecordFactory(_context_record_factory)
    root._bizdesk_configured = True  # type: ignore[attr-defined]
