"""
Structured logging for Voice Matrix.

Provides:
- JSON structured logging for production environments
- Human-readable colored logging for development
- Request context (request_id, account_id) propagation
- Redaction of credentials (Vapi tokens, Twilio secrets, JWTs)
- A timing context manager for outbound calls
"""

import json
import logging
import re
import sys
import time
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
account_id_var: ContextVar[Optional[str]] = ContextVar("account_id", default=None)

SENSITIVE_PATTERNS: List[re.Pattern] = [
    re.compile(r'api[_-]?(?:key|token)["\']?\s*[:=]\s*["\']?[\w-]+', re.IGNORECASE),
    re.compile(r'auth[_-]?token["\']?\s*[:=]\s*["\']?[\w-]+', re.IGNORECASE),
    re.compile(r'password["\']?\s*[:=]\s*["\']?[^\s,}]+', re.IGNORECASE),
    re.compile(r'secret["\']?\s*[:=]\s*["\']?[\w-]+', re.IGNORECASE),
    re.compile(r'bearer\s+[\w.-]+', re.IGNORECASE),
    re.compile(r'authorization["\']?\s*[:=]\s*["\']?[^\s,}]+', re.IGNORECASE),
    re.compile(r'\bAC[a-fA-F0-9]{32}\b'),  # Twilio account SIDs
    re.compile(r'eyJ[\w-]+\.eyJ[\w-]+\.[\w-]+'),  # JWTs
]

REDACTED = "[REDACTED]"

EXCLUDED_RECORD_ATTRS = frozenset({
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "pathname", "process", "processName", "relativeCreated",
    "stack_info", "exc_info", "exc_text", "thread", "threadName",
    "request_id", "account_id", "message", "taskName",
})


def redact_sensitive_data(message: str) -> str:
    """Replace credentials in a log message with [REDACTED]."""
    if not message:
        return message

    result = message
    for pattern in SENSITIVE_PATTERNS:
        result = pattern.sub(REDACTED, result)
    return result


def mask_account_id(account_id: Optional[str]) -> str:
    """Shorten an account id for log lines."""
    if not account_id:
        return "-"
    return f"{account_id[:8]}..." if len(account_id) > 8 else account_id


def mask_phone_number(number: Optional[str]) -> str:
    """Keep only the last four digits of a phone number."""
    if not number:
        return "-"
    return f"***{number[-4:]}"


class RequestContextFilter(logging.Filter):
    """Add request context to all log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get() or "-"
        record.account_id = account_id_var.get() or "-"
        return True


class SensitiveDataFilter(logging.Filter):
    """Filter sensitive data from log messages."""

    def filter(self, record: logging.LogRecord) -> bool:
        if record.msg:
            record.msg = redact_sensitive_data(str(record.msg))
        if record.args:
            record.args = tuple(
                redact_sensitive_data(arg) if isinstance(arg, str) else arg
                for arg in record.args
            )
        return True


def _extra_fields(record: logging.LogRecord) -> Dict[str, Any]:
    return {
        k: v for k, v in record.__dict__.items()
        if k not in EXCLUDED_RECORD_ATTRS and not k.startswith("_")
    }


class JSONFormatter(logging.Formatter):
    """
    JSON formatter for structured logging in production.

    Each record becomes one line:
    {
        "timestamp": "2024-01-15T10:30:00.123456Z",
        "level": "INFO",
        "logger": "voicematrix.usage.auto_deletion",
        "message": "Auto-deletion completed",
        "service": "voice-matrix-api",
        "request_id": "abc-123",
        "account_id": "user-456",
        "extra": {...}
    }
    """

    def __init__(self, service_name: str = "voice-matrix-api"):
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": self.service_name,
            "request_id": getattr(record, "request_id", "-"),
            "account_id": getattr(record, "account_id", "-"),
        }

        if record.levelno >= logging.ERROR:
            log_data["source"] = {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        extra = _extra_fields(record)
        if extra:
            log_data["extra"] = extra

        return json.dumps(log_data, default=str, ensure_ascii=False)


class DevelopmentFormatter(logging.Formatter):
    """
    Colored formatter for development.

    Format: [timestamp] LEVEL    [req_id] [account] logger - message
    """

    COLORS: Dict[str, str] = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        reset = self.RESET if color else ""

        request_id = getattr(record, "request_id", "-")
        account_id = getattr(record, "account_id", "-")
        req_display = request_id[:8] if request_id != "-" else "-"
        acct_display = account_id[:8] if account_id != "-" else "-"

        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]

        formatted = (
            f"{self.DIM}[{timestamp}]{self.RESET} "
            f"{color}{self.BOLD}{record.levelname:8}{reset} "
            f"{self.DIM}[{req_display:>8}] [{acct_display:>8}]{self.RESET} "
            f"{record.name} - {record.getMessage()}"
        )

        extra = _extra_fields(record)
        if extra:
            formatted += f" {self.DIM}{extra}{self.RESET}"

        if record.exc_info:
            formatted += f"\n{self.formatException(record.exc_info)}"

        return formatted


def setup_logging(
    service_name: str = "voice-matrix-api",
    log_level: Optional[str] = None,
    force_json: Optional[bool] = None,
) -> logging.Logger:
    """
    Configure structured logging for the application.

    Call once at startup, before modules that log are imported. Level and
    format default to the values in LoggingSettings; JSON is used in
    production or when LOG_FORMAT_JSON is set.

    Args:
        service_name: Name of the service for log identification
        log_level: Override the configured level name
        force_json: Override the configured output format

    Returns:
        Configured root logger
    """
    from voicematrix.config import get_settings

    settings = get_settings()
    level_name = (log_level or settings.logging.log_level).upper()
    level = getattr(logging, level_name, logging.INFO)
    if force_json is None:
        use_json = settings.logging.log_format_json or settings.is_production
    else:
        use_json = force_json

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.addFilter(RequestContextFilter())
    handler.addFilter(SensitiveDataFilter())
    handler.setFormatter(
        JSONFormatter(service_name) if use_json else DevelopmentFormatter()
    )
    root_logger.addHandler(handler)

    # Reduce noise from third-party libraries
    for noisy in ("uvicorn.access", "httpx", "httpcore", "asyncio", "hpack"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    root_logger.info(
        "Logging configured",
        extra={
            "log_level": logging.getLevelName(level),
            "format": "json" if use_json else "development",
            "service": service_name,
        },
    )
    return root_logger


def set_request_context(
    request_id: Optional[str] = None,
    account_id: Optional[str] = None,
) -> None:
    """Set request context for the current async context."""
    if request_id is not None:
        request_id_var.set(request_id)
    if account_id is not None:
        account_id_var.set(account_id)


def clear_request_context() -> None:
    """Clear request context after request completion."""
    request_id_var.set(None)
    account_id_var.set(None)


def get_request_id() -> Optional[str]:
    return request_id_var.get()


def get_account_id() -> Optional[str]:
    return account_id_var.get()


class Timer:
    """
    Context manager for timing operations.

    Usage:
        with Timer("vapi.create_assistant", logger):
            await client.post(...)
    """

    def __init__(
        self,
        name: str,
        logger: Optional[logging.Logger] = None,
        log_level: int = logging.DEBUG,
    ):
        self.name = name
        self.logger = logger
        self.log_level = log_level
        self.start_time: Optional[float] = None
        self.elapsed_ms: float = 0

    def __enter__(self) -> "Timer":
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self.start_time is not None:
            self.elapsed_ms = (time.perf_counter() - self.start_time) * 1000

        if self.logger:
            self.logger.log(
                self.log_level,
                f"{self.name} completed in {self.elapsed_ms:.2f}ms",
                extra={
                    "operation": self.name,
                    "duration_ms": round(self.elapsed_ms, 2),
                    "success": exc_type is None,
                },
            )
