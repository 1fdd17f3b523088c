"""
Structured logging for the Beatly backend.

- JSON lines in production, single-line pretty output in development.
- Every record carries the request_id of the request that produced it.
- `log_event` attaches correlation ids (user, transaction) plus a free-form
  `fields` dict; both formatters render those fields, so gateway statuses,
  plan ids and amounts survive into the log output.
"""

import json
import logging
import os
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

request_id_ctx_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

# Correlation ids promoted to top-level keys of a JSON line
CORRELATION_FIELDS = ("user_id", "transaction_id", "event_type", "error_code")

# Keys a `fields` entry may not overwrite in a JSON line
_RESERVED_KEYS = frozenset(("timestamp", "level", "logger", "message", "request_id", "exc_info") + CORRELATION_FIELDS)

MAX_FIELD_LENGTH = 500


def get_request_id(default: Optional[str] = None) -> Optional[str]:
    """Fetch the current request_id from context (if any)."""
    rid = request_id_ctx_var.get()
    return rid if rid is not None else default


def _format_timestamp(record: logging.LogRecord) -> str:
    return datetime.fromtimestamp(record.created, timezone.utc).isoformat().replace("+00:00", "Z")


def latency_bucket_ms(latency_ms: Optional[float]) -> str:
    if latency_ms is None:
        return "unknown"
    if latency_ms < 10:
        return "<10ms"
    if latency_ms < 100:
        return "10-100ms"
    if latency_ms < 500:
        return "100-500ms"
    if latency_ms < 1000:
        return "500-1000ms"
    return ">=1000ms"


def record_fields(record: logging.LogRecord) -> Dict[str, Any]:
    """Correlation ids followed by the record's `fields`, skipping empty values."""
    merged: Dict[str, Any] = {}
    for key in CORRELATION_FIELDS:
        value = getattr(record, key, None)
        if value is not None:
            merged[key] = value
    fields = getattr(record, "fields", None)
    if isinstance(fields, dict):
        for key, value in fields.items():
            if value is not None and key not in merged:
                merged[key] = value
    return merged


class RequestIdFilter(logging.Filter):
    """Inject request_id into log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "request_id", None) is None:
            record.request_id = get_request_id()
        return True


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        line = {
            "timestamp": _format_timestamp(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": getattr(record, "request_id", None),
        }
        for key, value in record_fields(record).items():
            if key in CORRELATION_FIELDS or key not in _RESERVED_KEYS:
                line[key] = value
        if record.exc_info:
            line["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(line, default=str)


class PrettyFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        rid = getattr(record, "request_id", None)
        rid_part = f" [rid={rid}]" if rid else ""
        pairs = " ".join(f"{key}={value}" for key, value in record_fields(record).items())
        line = f"{_format_timestamp(record)} {record.levelname} [{record.name}]{rid_part} {record.getMessage()}"
        if pairs:
            line = f"{line} {pairs}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def configure_logging(env: str = "development") -> None:
    """Install one stdout handler on the `beatly` logger, JSON in production."""
    logger = logging.getLogger("beatly")
    logger.setLevel(logging.INFO)

    formatter: logging.Formatter
    if env.lower() == "production":
        formatter = JsonFormatter()
    else:
        formatter = PrettyFormatter()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    handler.addFilter(RequestIdFilter())

    logger.handlers = [handler]
    logger.propagate = True

    # Reduce noise from uvicorn loggers but keep error output
    logging.getLogger("uvicorn").propagate = False
    logging.getLogger("uvicorn.error").propagate = False


def _safe_truncate(value: Any, limit: int = MAX_FIELD_LENGTH) -> Any:
    if value is None or isinstance(value, (bool, int, float)):
        return value
    text = str(value)
    if len(text) <= limit:
        return text
    return text[:limit] + "...<truncated>"


def log_event(
    level: str,
    msg: str,
    *,
    user_id: Optional[str] = None,
    transaction_id: Optional[str] = None,
    event_type: Optional[str] = None,
    error_code: Optional[str] = None,
    extra: Optional[Dict[str, object]] = None,
):
    """
    Log a domain event on the `beatly` logger.

    `extra` entries are truncated and attached as the record's `fields`.
    """
    logger = logging.getLogger("beatly")
    if not logger.handlers:
        # Ensure logging configured in edge cases (tests)
        configure_logging(os.getenv("ENV", "development"))

    attributes: Dict[str, Any] = {
        "request_id": get_request_id(),
        "user_id": user_id,
        "transaction_id": transaction_id,
        "event_type": event_type,
        "error_code": error_code,
        "fields": {key: _safe_truncate(value) for key, value in (extra or {}).items()},
    }

    log_fn = getattr(logger, level, logger.info)
    log_fn(msg, extra=attributes)
