"""
Structured Logging Configuration
Version: 1.0.0

structlog setup shared by the API and the seed script:
- JSON output in production, colored console output in development
- Request trace ID carried in a context variable
- LogTimer for timing booking operations
"""
import logging
import sys
import os
from datetime import datetime, timezone
from typing import Optional
from contextvars import ContextVar

import structlog

from config import get_settings


trace_id_var: ContextVar[Optional[str]] = ContextVar('trace_id', default=None)


def get_trace_id() -> Optional[str]:
    return trace_id_var.get()


def set_trace_id(trace_id: str) -> None:
    trace_id_var.set(trace_id)


def add_trace_id(logger, method_name, event_dict):
    """Structlog processor to add trace_id to all log entries."""
    trace_id = get_trace_id()
    if trace_id:
        event_dict['trace_id'] = trace_id
    return event_dict


def add_timestamp(logger, method_name, event_dict):
    event_dict['timestamp'] = datetime.now(timezone.utc).isoformat()
    return event_dict


def add_service_info(logger, method_name, event_dict):
    event_dict['service'] = os.getenv('APP_NAME', 'drivenow-reservations')
    event_dict['environment'] = os.getenv('APP_ENV', 'development')
    return event_dict


def rename_event_key(logger, method_name, event_dict):
    """Log shippers expect 'message', structlog emits 'event'."""
    if 'event' in event_dict:
        event_dict['message'] = event_dict.pop('event')
    return event_dict


def configure_logging(
    json_format: Optional[bool] = None,
    log_level: str = "INFO"
) -> None:
    """
    Configure structured logging for the application.

    Args:
        json_format: JSON lines when True, console output when False.
                     None picks JSON only in production.
        log_level: Minimum log level name
    """
    if json_format is None:
        json_format = get_settings().is_production

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        add_trace_id,
        add_timestamp,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if json_format:
        shared_processors.extend([
            add_service_info,
            rename_event_key,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer()
        ])
    else:
        shared_processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=shared_processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO),
    )

    logging.getLogger('sqlalchemy.engine').setLevel(logging.WARNING)
    logging.getLogger('aiosqlite').setLevel(logging.WARNING)
    logging.getLogger('asyncio').setLevel(logging.WARNING)


def get_logger(name: str = None) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Usage:
        logger = get_logger(__name__)
        logger.info("Booking created", booking_id=12, vehicle_id=3)
    """
    return structlog.get_logger(name)


class LogTimer:
    """Context manager that logs how long an operation took."""

    def __init__(self, logger, operation: str, **extra):
        self.logger = logger
        self.operation = operation
        self.extra = extra
        self.start_time = None
        self.duration_seconds = 0.0

    def __enter__(self):
        self.start_time = datetime.now(timezone.utc)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.duration_seconds = (datetime.now(timezone.utc) - self.start_time).total_seconds()
        duration_ms = round(self.duration_seconds * 1000, 2)

        if exc_type:
            self.logger.warning(
                f"{self.operation} failed",
                duration_ms=duration_ms,
                error=str(exc_val),
                error_type=exc_type.__name__,
                **self.extra
            )
        else:
            self.logger.info(
                f"{self.operation} completed",
                duration_ms=duration_ms,
                **self.extra
            )

        return False
