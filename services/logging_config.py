"""
Structured Logging Configuration
Version: 2.0.0

structlog on top of stdlib logging:
- JSON lines in production, colored console output in development
- Request ID (x-request-id / idempotency key) propagated through a ContextVar
- Passwords never reach the log stream
"""
import logging
import os
import sys
import time
from contextvars import ContextVar
from typing import Optional

import structlog


request_id_var: ContextVar[Optional[str]] = ContextVar('request_id', default=None)

REDACTED_KEYS = {"password", "password_hash", "x-app-key", "app_key"}

# Third-party loggers that would otherwise print every upstream call
QUIET_LOGGERS = ("httpx", "httpcore", "uvicorn.access", "redis")


def get_request_id() -> Optional[str]:
    return request_id_var.get()


def set_request_id(request_id: Optional[str]) -> None:
    request_id_var.set(request_id)


def add_request_id(logger, method_name, event_dict):
    """Attach the current trace id unless the event already carries one."""
    request_id = get_request_id()
    if request_id:
        event_dict.setdefault('request_id', request_id)
    return event_dict


def add_service_info(logger, method_name, event_dict):
    event_dict['service'] = os.getenv('APP_NAME', 'creativefuel-booking')
    event_dict['app_version'] = os.getenv('APP_VERSION', 'unknown')
    event_dict['env'] = os.getenv('APP_ENV', 'development')
    return event_dict


def redact_secrets(logger, method_name, event_dict):
    """Drop credential values passed as log fields."""
    for key in list(event_dict.keys()):
        if key.lower() in REDACTED_KEYS:
            event_dict[key] = "[REDACTED]"
    return event_dict


def configure_logging(json_format: Optional[bool] = None, log_level: str = "INFO") -> None:
    """
    Configure structured logging for the proxy and the client.

    Args:
        json_format: JSON lines when True, console output when False.
                     None means JSON only when APP_ENV is production.
        log_level: Minimum level name, e.g. "DEBUG" or "WARNING"
    """
    if json_format is None:
        json_format = os.getenv('APP_ENV', 'development') == 'production'

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        add_request_id,
        redact_secrets,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if json_format:
        processors += [
            add_service_info,
            structlog.processors.EventRenamer("message"),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    level = getattr(logging, log_level.upper(), logging.INFO)
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str = None) -> structlog.stdlib.BoundLogger:
    """
    Usage:
        logger = get_logger(__name__)
        logger.info("Forwarded to webhook", action="booking_lock", status_code=200)
    """
    return structlog.get_logger(name)


class LogTimer:
    """
    Logs how long the wrapped block took.

        with LogTimer(logger, "Webhook forward", action="booking_submit"):
            ...
    """

    def __init__(self, logger, operation: str, **fields):
        self.logger = logger
        self.operation = operation
        self.fields = fields
        self.duration_ms = 0.0
        self._started = 0.0

    def __enter__(self):
        self._started = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.duration_ms = round((time.perf_counter() - self._started) * 1000, 2)
        if exc_type is None:
            self.logger.info(f"{self.operation} completed", duration_ms=self.duration_ms, **self.fields)
        else:
            self.logger.warning(
                f"{self.operation} failed",
                duration_ms=self.duration_ms,
                error=str(exc_val),
                **self.fields
            )
        return False
