"""Structured logging with redaction helpers."""

import logging
import json
import re
from contextvars import ContextVar, Token
from typing import Any, Optional
from datetime import datetime, timezone

# Sensitive key patterns to redact
SENSITIVE_PATTERNS = [
    r"api[_-]?key",
    r"token",
    r"secret",
    r"password",
    r"credential",
    r"auth",
    r"private[_-]?key",
    r"approve[_-]?workflows",
]

EXTRA_FIELDS = ("request_id", "owner", "repo", "branch", "tool", "action", "path", "step_args")

_request_id: ContextVar[Optional[str]] = ContextVar("butler_request_id", default=None)


def set_request_id(request_id: Optional[str]) -> Token:
    """Bind a request id to the current context; pass the token to reset_request_id."""
    return _request_id.set(request_id)


def reset_request_id(token: Token) -> None:
    _request_id.reset(token)


def get_request_id() -> Optional[str]:
    return _request_id.get()


class RequestIdFilter(logging.Filter):
    """Stamps records with the request id bound to the current context."""

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "request_id", None) is None:
            record.request_id = _request_id.get()
        return True


class StructuredFormatter(logging.Formatter):
    """JSON structured log formatter."""

    def format(self, record: logging.LogRecord) -> str:
        log_obj = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        # Add extra fields
        for field in EXTRA_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                log_obj[field] = value

        # Add exception info if present
        if record.exc_info:
            log_obj["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_obj)


def redact_sensitive(data: Any) -> Any:
    """Redact sensitive information from data.

    Args:
        data: Data to redact (dict, list, or string)

    Returns:
        Redacted data
    """
    if isinstance(data, dict):
        return {k: redact_value(k, v) for k, v in data.items()}
    elif isinstance(data, list):
        return [redact_sensitive(item) for item in data]
    elif isinstance(data, str):
        # Redact tokens in strings
        for pattern in SENSITIVE_PATTERNS:
            data = re.sub(
                rf"({pattern})[\s=:]+[\S]+",
                r"\1=***REDACTED***",
                data,
                flags=re.IGNORECASE
            )
        return data
    return data


def redact_value(key: str, value: Any) -> Any:
    """Redact value if key matches sensitive pattern."""
    key_lower = key.lower()
    for pattern in SENSITIVE_PATTERNS:
        if re.search(pattern, key_lower):
            return "***REDACTED***"

    # Recursively redact nested structures
    if isinstance(value, (dict, list)):
        return redact_sensitive(value)

    return value


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance."""
    return logging.getLogger(name)


def setup_logging(
    level: str = "INFO",
    structured: bool = True
) -> None:
    """Set up application logging.

    Args:
        level: Log level
        structured: Use structured JSON logging
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Clear existing handlers
    root_logger.handlers = []

    handler = logging.StreamHandler()
    handler.addFilter(RequestIdFilter())

    if structured:
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(
            logging.Formatter(
                "%(asctime)s - %(name)s - %(levelname)s - [%(request_id)s] %(message)s"
            )
        )

    root_logger.addHandler(handler)

    # Suppress noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
