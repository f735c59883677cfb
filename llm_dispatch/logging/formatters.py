"""Custom logging formatters for structured and JSON logging."""

import json
import logging
import traceback
from datetime import datetime
from typing import Dict, Any


# LogRecord attributes that are never treated as extra context
STANDARD_FIELDS = frozenset({
    'name', 'msg', 'args', 'levelname', 'levelno', 'pathname', 'filename',
    'module', 'lineno', 'funcName', 'created', 'msecs', 'relativeCreated',
    'thread', 'threadName', 'processName', 'process', 'message', 'exc_info',
    'exc_text', 'stack_info', 'asctime', 'taskName'
})

# Extra keys whose values must never reach a log sink
SENSITIVE_KEYS = ('api_key', 'apikey', 'authorization', 'x-api-key', 'x-goog-api-key', 'secret', 'password')

REDACTED = "***"


def extract_extra_fields(record: logging.LogRecord) -> Dict[str, Any]:
    """Extract extra fields from a log record, redacting credentials."""
    extra = {}
    for key, value in record.__dict__.items():
        if key in STANDARD_FIELDS or key.startswith('_'):
            continue
        if any(marker in key.lower() for marker in SENSITIVE_KEYS):
            value = REDACTED
        elif isinstance(value, dict):
            value = _redact_mapping(value)
        extra[key] = value
    return extra


def _redact_mapping(data: Dict[str, Any]) -> Dict[str, Any]:
    return {
        k: REDACTED if any(marker in str(k).lower() for marker in SENSITIVE_KEYS) else v
        for k, v in data.items()
    }


class StructuredFormatter(logging.Formatter):
    """Structured formatter for human-readable logs in development."""

    def __init__(self):
        super().__init__(fmt="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        """Format log record with structured information."""
        # Exception text is appended after the extra fields
        exc_info, record.exc_info = record.exc_info, None
        exc_text, record.exc_text = record.exc_text, None
        try:
            formatted = super().format(record)
        finally:
            record.exc_info = exc_info
            record.exc_text = exc_text

        extra_fields = extract_extra_fields(record)
        if extra_fields:
            extra_str = " | ".join([f"{k}={v}" for k, v in extra_fields.items()])
            formatted += f" | {extra_str}"

        if record.exc_info:
            formatted += f"\n{self.formatException(record.exc_info)}"

        return formatted


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging in production."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        extra_fields = extract_extra_fields(record)
        if extra_fields:
            log_entry.update(extra_fields)

        if record.exc_info and record.exc_info[0] is not None:
            log_entry["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": traceback.format_exception(*record.exc_info)
            }

        return json.dumps(log_entry, default=str, ensure_ascii=False)
