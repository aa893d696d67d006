"""
Structured logging configuration for the eSign service.

Provides JSON-formatted logging with correlation IDs, masking of signer
details, and helpers for access-control and signing audit events.
"""

import json
import logging
import re
import sys
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from esign.core.config import settings
from esign.core.security import mask_email

# Context variable for correlation ID (used across request lifecycle)
correlation_id_ctx: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)

_STANDARD_RECORD_FIELDS = {
    "name", "msg", "args", "levelname", "levelno", "pathname",
    "filename", "module", "lineno", "funcName", "created",
    "msecs", "relativeCreated", "thread", "threadName", "taskName",
    "processName", "process", "exc_info", "exc_text", "stack_info",
}

_EMAIL_PATTERN = re.compile(r"\b([a-zA-Z])[a-zA-Z0-9._%+-]*@([a-zA-Z0-9.-]+\.[a-zA-Z]{2,})\b")


class SensitiveDataFilter(logging.Filter):
    """Masks e-mail addresses and inline secrets before a record is emitted."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = str(record.msg)
        message = _EMAIL_PATTERN.sub(r"\1****@\2", message)
        message = re.sub(
            r"(password|secret|token)[\s]*[=:][\s]*[^\s]+", r"\1=****", message, flags=re.IGNORECASE
        )
        record.msg = message
        return True


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging with security context.
    """

    def __init__(self, include_sensitive: bool = False):
        super().__init__()
        self.include_sensitive = include_sensitive

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        correlation_id = correlation_id_ctx.get()
        if correlation_id:
            log_entry["correlation_id"] = correlation_id

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        extra_fields = {}
        for key, value in record.__dict__.items():
            if key in _STANDARD_RECORD_FIELDS:
                continue
            if not self.include_sensitive and self._is_sensitive_field(key):
                extra_fields[key] = "[REDACTED]"
            else:
                extra_fields[key] = value

        if extra_fields:
            log_entry["extra"] = extra_fields

        return json.dumps(log_entry, default=self._json_default)

    def _is_sensitive_field(self, key: str) -> bool:
        sensitive_keywords = {"password", "secret", "token", "credential", "cookie", "private"}
        key_lower = key.lower()
        return any(keyword in key_lower for keyword in sensitive_keywords)

    def _json_default(self, obj: Any) -> str:
        if isinstance(obj, datetime):
            return obj.isoformat()
        return str(obj)


def setup_logging(
    log_level: str = "INFO",
    enable_json: bool = True,
    log_file: Optional[str] = None,
    include_sensitive: bool = False,
) -> None:
    """
    Configure structured logging for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        enable_json: Whether to use JSON formatting
        log_file: Optional file path for logging
        include_sensitive: Whether to include sensitive extra fields in logs
    """
    logging.root.handlers.clear()

    if enable_json:
        formatter: logging.Formatter = StructuredFormatter(include_sensitive=include_sensitive)
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    sensitive_filter = SensitiveDataFilter()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    console_handler.addFilter(sensitive_filter)

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        file_handler.addFilter(sensitive_filter)
        root_logger.addHandler(file_handler)

    # Reduce noise from external libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("boto3").setLevel(logging.WARNING)
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("pypdf").setLevel(logging.ERROR)


def get_correlation_id() -> str:
    """Get or create a correlation ID for request tracking."""
    correlation_id = correlation_id_ctx.get()
    if not correlation_id:
        correlation_id = str(uuid.uuid4())
        correlation_id_ctx.set(correlation_id)
    return correlation_id


def set_correlation_id(correlation_id: str) -> None:
    correlation_id_ctx.set(correlation_id)


def get_security_logger() -> logging.Logger:
    return logging.getLogger("esign.security")


def log_security_event(
    event_type: str,
    message: str,
    email: Optional[str] = None,
    ip_address: Optional[str] = None,
    level: int = logging.INFO,
    extra_data: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Log a security event with structured data.

    Args:
        event_type: Type of security event (access_granted, access_denied, ...)
        message: Human-readable message
        email: Signer e-mail, logged masked
        ip_address: Optional client address
        level: Logging level for the event
        extra_data: Additional structured data
    """
    logger = get_security_logger()

    security_data: Dict[str, Any] = {
        "event_type": event_type,
        "correlation_id": get_correlation_id(),
    }
    if email:
        security_data["signer"] = mask_email(email)
    if ip_address:
        security_data["ip_address"] = ip_address
    if extra_data:
        security_data.update(extra_data)

    logger.log(level, message, extra=security_data)


def log_authentication_attempt(
    granted: bool,
    email: Optional[str] = None,
    reason: Optional[str] = None,
    ip_address: Optional[str] = None,
) -> None:
    """Log the outcome of a shared-secret access check."""
    if granted:
        log_security_event(
            "access_granted",
            "Signer access granted",
            email=email,
            ip_address=ip_address,
        )
    else:
        log_security_event(
            "access_denied",
            f"Signer access denied: {reason or 'unknown'}",
            email=email,
            ip_address=ip_address,
            level=logging.WARNING,
            extra_data={"reason": reason},
        )


def init_application_logging() -> None:
    """Initialize logging for the FastAPI application"""
    is_dev = settings.DEV_MODE

    log_level = "DEBUG" if is_dev else settings.LOG_LEVEL
    # Plain text in development
    enable_json = settings.LOG_JSON and not is_dev

    setup_logging(
        log_level=log_level,
        enable_json=enable_json,
        include_sensitive=is_dev,
    )

    logger = logging.getLogger("esign.startup")
    logger.info(
        "Structured logging initialized",
        extra={
            "dev_mode": is_dev,
            "json_logging": enable_json,
            "log_level": log_level,
        },
    )
