"""
Structured logging for LabPortal.

Every line is one JSON object. Request-scoped context (request id, and the
signed-in user once a page dependency has resolved one) is kept in a
ContextVar and stamped onto each record, so service code only passes what
is specific to the event:

    logger.info("Avatar updated", extra={"path": file_path})

    {"timestamp": "2024-01-15T10:30:00.000Z", "level": "INFO",
     "logger": "labportal.services.profile_service", "message": "Avatar updated",
     "request_id": "abc12345", "user_id": "8f1c...", "extra": {"path": "..."}}

Credentials never reach the output: extra keys that name a password, token
or API key are replaced with "[redacted]".
"""

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

# =============================================================================
# REQUEST CONTEXT
# =============================================================================

_log_context: ContextVar[Dict[str, str]] = ContextVar("log_context", default={})


def bind_log_context(**values: Optional[str]) -> None:
    """Add keys to the current request's log context; None values are skipped."""
    context = dict(_log_context.get())
    context.update({k: v for k, v in values.items() if v is not None})
    _log_context.set(context)


def get_log_context() -> Dict[str, str]:
    return dict(_log_context.get())


def clear_log_context() -> None:
    _log_context.set({})


def get_request_id() -> Optional[str]:
    return _log_context.get().get("request_id")


# =============================================================================
# FORMATTING
# =============================================================================

# LogRecord attributes that are not caller-supplied extras
_RECORD_ATTRS = set(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime"}

SENSITIVE_MARKERS = ("password", "token", "apikey", "api_key", "secret", "authorization", "service_role")
REDACTED = "[redacted]"


def redact(extra: Dict[str, Any]) -> Dict[str, Any]:
    """Mask values whose key names a credential."""
    return {
        key: REDACTED if any(marker in key.lower() for marker in SENSITIVE_MARKERS) else value
        for key, value in extra.items()
    }


class JSONFormatter(logging.Formatter):
    """One JSON object per record, UTC timestamps with millisecond precision."""

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        entry: Dict[str, Any] = {
            "timestamp": created.strftime("%Y-%m-%dT%H:%M:%S.") + f"{created.microsecond // 1000:03d}Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(get_log_context())

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        extra = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _RECORD_ATTRS and not key.startswith("_")
        }
        if extra:
            entry["extra"] = redact(extra)

        return json.dumps(entry, default=str, ensure_ascii=False)


class ContextTextFormatter(logging.Formatter):
    """Human-readable lines for local development, with the request id appended."""

    def __init__(self):
        super().__init__("%(asctime)s | %(levelname)-8s | %(name)s | %(message)s", datefmt="%Y-%m-%d %H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        request_id = get_request_id()
        return f"{line} [{request_id}]" if request_id else line


# =============================================================================
# SETUP
# =============================================================================

def setup_logging(level: str = "INFO", log_format: str = "json") -> None:
    """
    Route all logging (app, uvicorn) through one stdout handler.

    Args:
        level: Root log level name.
        log_format: "json" for structured output, "text" for development.
    """
    level = level.upper()
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter() if log_format.lower() == "json" else ContextTextFormatter())

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers = [handler]

    for name in ("uvicorn", "uvicorn.error", "uvicorn.access", "labportal"):
        named = logging.getLogger(name)
        named.handlers = []
        named.propagate = True

    # httpx logs full request URLs at INFO; reset links and filters carry tokens
    logging.getLogger("httpx").setLevel(logging.WARNING)

    logging.getLogger(__name__).info("Logging configured", extra={"level": level, "format": log_format})
