"""Structured logging configuration.

Every module logs through ``structlog.get_logger(__name__)`` with dotted event
names and keyword context (tenant_id, table, entity_id, stage). Production
renders JSON lines; other environments get human-readable console output.
"""

from __future__ import annotations

import logging

import structlog

from src.crm.config import Environment, get_settings


def configure_logging() -> None:
    """Configure stdlib logging level and structlog processors based on environment."""
    settings = get_settings()

    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    )

    shared_processors: list = [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if settings.ENVIRONMENT == Environment.production:
        shared_processors.append(structlog.processors.JSONRenderer())
    else:
        shared_processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=shared_processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
