"""Structured logging configuration with structlog."""

import logging

import structlog

from cordnode.config import Settings

# Libraries that log every statement/request at INFO
_NOISY_LOGGERS = ("sqlalchemy.engine", "httpx", "httpcore", "aiosqlite")


def setup_logging(settings: Settings) -> None:
    """Configure structlog for JSON or console output.

    Module loggers from ``logging.getLogger`` go through the same level as
    structlog loggers; noisy library loggers are held at WARNING.
    """
    renderer: structlog.types.Processor = (
        structlog.processors.JSONRenderer() if settings.log_format == "json" else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(level=level, format="%(message)s")
    logging.getLogger("cordnode").setLevel(level)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
