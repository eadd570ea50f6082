"""structlog setup for AccounFix.

Every event passes through the secret sanitizer before it is rendered, so
API keys, Dynamics client secrets and connection strings that slip into an
error description or an exception message never reach the console or the
log file. Events are named with the snake_case constants in LogEventNames.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import MutableMapping
from enum import StrEnum
from pathlib import Path
from typing import Any, cast

import structlog

from accounfix._version import __version__
from accounfix.utils.security import SecretRedactor

SERVICE_NAME = "accounfix"

EventDict = MutableMapping[str, Any]


class LogFormat(StrEnum):
    """Log output format options."""

    JSON = "json"
    CONSOLE = "console"


class LogLevel(StrEnum):
    """Log level options."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


_redactor = SecretRedactor(placeholder="[REDACTED]")


def sanitize_log_value(value: Any) -> Any:
    """Redact secrets from a log value, descending into dicts, lists and tuples."""
    if isinstance(value, str):
        return _redactor.redact(value)
    if isinstance(value, dict):
        return {k: sanitize_log_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return type(value)(sanitize_log_value(v) for v in value)
    return value


def secret_sanitizer(logger: logging.Logger, method_name: str, event_dict: EventDict) -> EventDict:
    """structlog processor that runs sanitize_log_value over the whole event."""
    return cast(EventDict, sanitize_log_value(event_dict))


def add_context_processor(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Stamp the service name and version on every event."""
    event_dict["service"] = SERVICE_NAME
    event_dict["version"] = __version__
    return event_dict


def _renderer(log_format: LogFormat) -> Any:
    if log_format == LogFormat.JSON:
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(
        colors=sys.stderr.isatty(), exception_formatter=structlog.dev.plain_traceback
    )


def _handlers(level: int, file_path: Path | None) -> list[logging.Handler]:
    stderr = logging.StreamHandler(sys.stderr)
    stderr.setLevel(level)
    handlers: list[logging.Handler] = [stderr]

    if file_path is None:
        return handlers
    try:
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(file_path, encoding="utf-8")
    except OSError as e:
        # The session still runs with stderr logging only.
        logging.getLogger(SERVICE_NAME).warning("Could not open log file %s: %s", file_path, e)
        return handlers
    file_handler.setLevel(level)
    handlers.append(file_handler)
    return handlers


def configure_logging(
    level: LogLevel | str = LogLevel.INFO,
    log_format: LogFormat | str = LogFormat.JSON,
    file_path: Path | str | None = None,
    file_enabled: bool = False,
) -> None:
    """Configure structlog and the standard library root logger.

    Args:
        level: Log level name, case-insensitive
        log_format: "json" for machine-readable lines, "console" for humans
        file_path: Log file, also written when file_enabled is set
        file_enabled: Whether to write to file_path as well as stderr

    Raises:
        ValueError: If level or log_format is not a known value
    """
    level = LogLevel(level.upper()) if isinstance(level, str) else level
    log_format = LogFormat(log_format.lower()) if isinstance(log_format, str) else log_format
    numeric_level = getattr(logging, level.value)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            add_context_processor,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            secret_sanitizer,
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            _renderer(log_format),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    target = Path(file_path) if file_enabled and file_path else None
    logging.basicConfig(
        format="%(message)s",
        level=numeric_level,
        handlers=_handlers(numeric_level, target),
        force=True,
    )


def bind_context(**kwargs: Any) -> None:
    """Attach key/value pairs to every following event in this context.

    The shell binds the running command's name so that the events of a
    background create, chat or sync carry it too.
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    structlog.contextvars.unbind_contextvars(*keys)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()


class LogEventNames:
    """Event names shared by every module."""

    # Session
    SESSION_STARTED = "session_started"
    SESSION_ENDED = "session_ended"

    # Error records
    RECORD_CREATED = "error_record_created"
    RECORD_STATUS_UPDATED = "error_record_status_updated"
    RECORD_NOT_FOUND = "error_record_not_found"
    DRAFT_REJECTED = "error_draft_rejected"

    # AI service
    AI_REQUEST_START = "ai_request_start"
    AI_REQUEST_COMPLETE = "ai_request_complete"
    AI_REQUEST_ERROR = "ai_request_error"
    AI_RATE_LIMITED = "ai_rate_limited"
    CLASSIFICATION_COMPLETE = "classification_complete"
    CLASSIFICATION_FALLBACK = "classification_fallback"
    CHAT_MESSAGE_APPENDED = "chat_message_appended"
    CHAT_REQUEST_ERROR = "chat_request_error"
    CHAT_REPLY_DISCARDED = "chat_reply_discarded"

    # ERP
    ERP_SYNC_STARTED = "erp_sync_started"
    ERP_SYNC_COMPLETED = "erp_sync_completed"
    ERP_SYNC_FAILED = "erp_sync_failed"

    REPORT_EXPORTED = "report_exported"

    HEALTH_CHECK_START = "health_check_start"
    HEALTH_CHECK_COMPLETE = "health_check_complete"
