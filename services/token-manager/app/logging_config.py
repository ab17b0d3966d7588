"""
Logging configuration for the token manager.

Log lines carry the service name, the request id of the HTTP request being
handled, and whatever record fields a module passes through
``extra={"extra_fields": {...}}``. Token and user ids are lifted to the top
level of each JSON line so one record's history can be grepped; credential
fields (access tokens, session cookies) are always masked before output.
"""

import json
import logging
import sys
from contextvars import ContextVar
from typing import Any, Dict, Optional
from uuid import uuid4

request_id_context: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

# Record identifiers promoted out of extra_fields in JSON output
RECORD_ID_FIELDS = ("token_id", "user_id")

SECRET_FIELDS = frozenset({"access_token", "session_token", "auth_session", "app_session", "password"})


def mask_secret(value: Optional[str], visible: int = 8) -> str:
    """Shorten a credential so only its prefix reaches the logs."""
    if not value:
        return ""
    if len(value) <= visible:
        return "***"
    return f"{value[:visible]}..."


def record_fields(record: logging.LogRecord) -> Dict[str, Any]:
    """The record's ``extra_fields`` with credential values masked."""
    fields = getattr(record, "extra_fields", None) or {}
    return {
        key: mask_secret(str(value)) if key in SECRET_FIELDS and value else value
        for key, value in fields.items()
    }


class StructuredFormatter(logging.Formatter):
    """One JSON document per line, for log shipping in production."""

    def __init__(self, service_name: str, datefmt: Optional[str] = None) -> None:
        super().__init__(datefmt=datefmt)
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "service": self.service_name,
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        request_id = request_id_context.get()
        if request_id:
            log_data["request_id"] = request_id

        fields = record_fields(record)
        for name in RECORD_ID_FIELDS:
            if fields.get(name) is not None:
                log_data[name] = fields.pop(name)
        if fields:
            log_data["context"] = fields

        if record.levelno >= logging.WARNING:
            log_data["location"] = f"{record.module}.{record.funcName}:{record.lineno}"
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class HumanReadableFormatter(logging.Formatter):
    """Colored single-line output for local development."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, self.RESET)
        parts = [
            self.formatTime(record, self.datefmt),
            f"{color}{record.levelname:8}{self.RESET}",
            f"[{record.name}]",
        ]

        request_id = request_id_context.get()
        if request_id:
            parts.append(f"[req:{request_id[:8]}]")

        parts.append(record.getMessage())

        fields = record_fields(record)
        if fields:
            parts.append(" ".join(f"{key}={value}" for key, value in fields.items()))

        message = " ".join(parts)
        if record.exc_info:
            message += f"\n{self.formatException(record.exc_info)}"
        return message


def setup_logging(
    log_level: str = "INFO",
    service_name: str = "token-manager",
    use_json: bool = False,
) -> logging.Logger:
    """
    Configure the root logger for the service.

    Args:
        log_level: Logging level name
        service_name: Name stamped on every JSON line
        use_json: Emit JSON lines instead of colored text

    Returns:
        The service logger
    """
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    formatter: logging.Formatter
    if use_json:
        formatter = StructuredFormatter(service_name, datefmt="%Y-%m-%d %H:%M:%S")
    else:
        formatter = HumanReadableFormatter(datefmt="%Y-%m-%d %H:%M:%S")

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    # Upstream clients log every request at INFO
    for noisy in ("httpx", "httpcore", "uvicorn.access"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    return logging.getLogger(service_name)


def get_logger(name: Optional[str] = None) -> logging.Logger:
    return logging.getLogger(name or "token-manager")


def set_request_id(request_id: Optional[str] = None) -> str:
    """Bind a request id to the current context, generating one if needed."""
    if request_id is None:
        request_id = str(uuid4())
    request_id_context.set(request_id)
    return request_id


def get_request_id() -> Optional[str]:
    return request_id_context.get()
