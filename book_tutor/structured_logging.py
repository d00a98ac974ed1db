"""Structured logging built on structlog, with correlation ids carried across async calls."""

import logging
import os
import sys
import uuid
from contextvars import ContextVar, Token
from typing import Any, Literal, Optional, TextIO

import structlog
from pydantic import BaseModel, Field
from structlog.stdlib import BoundLogger
from structlog.types import EventDict, WrappedLogger

# Fields promoted to the top level of a log line; anything else lands in "extra".
TOP_LEVEL_FIELDS = {
    "message",
    "level",
    "logger",
    "timestamp",
    "context",
    "stream",
    "correlation_id",
    "thread",
    "trace_id",
    "trace_flags",
    "span_id",
}

_correlation_id: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)


class LoggingContext(BaseModel):
    """Process-wide logging settings, read from the environment by default."""

    stream: str = Field(default_factory=lambda: os.getenv("STREAM", "stdout"))
    logging_level: str = Field(default_factory=lambda: os.getenv("LOGGING_LEVEL", "INFO"))
    log_format: Literal["json", "keyvalue"] = Field(default_factory=lambda: os.getenv("LOG_FORMAT", "json"))  # type: ignore[arg-type]
    context: str = Field(default="default")


def get_logging_level(level: str) -> int:
    """Map a level name to its logging constant."""
    levels = {
        "CRITICAL": logging.CRITICAL,
        "ERROR": logging.ERROR,
        "WARNING": logging.WARNING,
        "INFO": logging.INFO,
        "DEBUG": logging.DEBUG,
    }
    try:
        return levels[level.upper()]
    except KeyError:
        raise ValueError(f"Unsupported logging level: {level}") from None


def get_stream(stream: str) -> TextIO:
    """Map a stream name to the matching standard stream."""
    streams = {"stdout": sys.stdout, "stderr": sys.stderr}
    try:
        return streams[stream.lower()]
    except KeyError:
        raise ValueError(f"Unsupported stream: {stream}") from None


def _process_log_fields(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    extra = {key: event_dict.pop(key) for key in list(event_dict) if key not in TOP_LEVEL_FIELDS}
    if extra:
        event_dict["extra"] = extra
    return event_dict


def _add_correlation_id(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    correlation_id = _correlation_id.get()
    if correlation_id and "correlation_id" not in event_dict:
        event_dict["correlation_id"] = correlation_id
    return event_dict


def set_context_fields(context: LoggingContext) -> None:
    """Bind the logging context to every subsequent log line."""
    structlog.contextvars.bind_contextvars(stream=context.stream, context=context.context)


def clear_context_fields() -> None:
    structlog.contextvars.clear_contextvars()


def configure_structlog(context: Optional[LoggingContext] = None) -> None:
    """Configure structlog to render through the standard logging module."""
    context = context or LoggingContext()
    level = get_logging_level(context.logging_level)

    renderer: Any
    if context.log_format == "keyvalue":
        renderer = structlog.processors.KeyValueRenderer(key_order=["message", "level", "logger"])
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            _add_correlation_id,
            structlog.processors.format_exc_info,
            structlog.processors.EventRenamer("message"),
            _process_log_fields,
            renderer,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        if getattr(handler, "_book_tutor", False):
            root_logger.removeHandler(handler)
    handler = logging.StreamHandler(get_stream(context.stream))
    handler.setFormatter(logging.Formatter("%(message)s"))
    handler._book_tutor = True  # type: ignore[attr-defined]
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    for noisy in ("httpx", "openai", "asyncio"):
        logging.getLogger(noisy).setLevel(max(logging.WARNING, level))

    clear_context_fields()
    set_context_fields(context)


def get_logger(name: str = "") -> BoundLogger:
    """Return a structlog logger, named after this module when no name is given."""
    return structlog.stdlib.get_logger(name or __name__)  # type: ignore[no-any-return]


def generate_correlation_id() -> str:
    return str(uuid.uuid4())


def get_correlation_id() -> Optional[str]:
    return _correlation_id.get()


def set_correlation_id(correlation_id: str) -> None:
    _correlation_id.set(correlation_id)


def get_or_create_correlation_id() -> str:
    """Get the current correlation ID, creating one for this context if missing."""
    correlation_id = get_correlation_id()
    if correlation_id is None:
        correlation_id = generate_correlation_id()
        set_correlation_id(correlation_id)
    return correlation_id


class CorrelationContext:
    """Context manager scoping a correlation ID to a block."""

    def __init__(self, correlation_id: Optional[str] = None):
        self.correlation_id = correlation_id or generate_correlation_id()
        self.token: Optional[Token[Optional[str]]] = None

    def __enter__(self) -> str:
        self.token = _correlation_id.set(self.correlation_id)
        return self.correlation_id

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if self.token is not None:
            _correlation_id.reset(self.token)
