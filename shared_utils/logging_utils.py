"""
Centralized logging utilities with scoped loggers and decorators.
Provides structured logging with consistent field names across services.

Event names are snake_case verbs (``room_created``, ``chunk_transcribed``).
Never pass API keys or transcript text as fields; sizes and ids are fine.
"""

import functools
import logging
import sys
import time
from typing import Any, Callable
from enum import Enum

import structlog

from shared_utils.constants import LogScope


# JSON lines on stdout, one object per event
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    wrapper_class=structlog.stdlib.BoundLogger,
    cache_logger_on_first_use=True,
)


class LogLevel(str, Enum):
    """Log level enumeration."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


def configure_logging(level: str = LogLevel.INFO.value) -> None:
    """Attach a stdout handler to the root logger at ``level``.

    Safe to call more than once; the handler is only added the first time.
    """
    root = logging.getLogger()
    root.setLevel(level.upper())
    if not any(getattr(h, "_veriact", False) for h in root.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter("%(message)s"))
        handler._veriact = True
        root.addHandler(handler)


def get_scoped_logger(scope: str) -> structlog.BoundLogger:
    """Get a scoped logger for a specific service/component.

    Args:
        scope: LogScope value (api, rooms, transcription, billing, ...)

    Returns:
        Structured logger bound to scope.
    """
    logger = structlog.get_logger()
    return logger.bind(scope=scope)


def log_execution(scope: str = LogScope.API):
    """Decorator logging start, duration and outcome of a call.

    Example:
        @log_execution(scope=LogScope.REMINDERS)
        def send_reminders():
            ...
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            logger = get_scoped_logger(scope)
            start_time = time.time()

            logger.info(f"{func.__name__}_start", func_name=func.__name__)

            try:
                result = func(*args, **kwargs)
            except Exception as e:
                logger.error(
                    f"{func.__name__}_failed",
                    func_name=func.__name__,
                    elapsed_seconds=round(time.time() - start_time, 3),
                    error_type=type(e).__name__,
                    error_message=str(e)
                )
                raise

            logger.info(
                f"{func.__name__}_success",
                func_name=func.__name__,
                elapsed_seconds=round(time.time() - start_time, 3),
                result_type=type(result).__name__
            )
            return result

        return wrapper
    return decorator


class ContextualLogger:
    """Scoped logger that carries request-level fields on every event.

    Example:
        log = ContextualLogger(LogScope.ROOMS, room_code="ABCD1234")
        log.info("member_joined", user_id=user.user_id)
    """

    def __init__(self, scope: str, **context: Any):
        self.scope = scope
        self.logger = get_scoped_logger(scope).bind(**context)

    def bind(self, **context: Any) -> "ContextualLogger":
        clone = ContextualLogger(self.scope)
        clone.logger = self.logger.bind(**context)
        return clone

    def info(self, event_name: str, **kwargs):
        self.logger.info(event_name, **kwargs)

    def debug(self, event_name: str, **kwargs):
        self.logger.debug(event_name, **kwargs)

    def warning(self, event_name: str, **kwargs):
        self.logger.warning(event_name, **kwargs)

    def error(self, event_name: str, **kwargs):
        self.logger.error(event_name, **kwargs)
