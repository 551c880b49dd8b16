"""
Structured logging setup shared by the API process and the settlement worker.
"""
import logging

import structlog

from payment_intake.config import Settings


def setup_logging(settings: Settings) -> None:
    """Configure structlog to emit one JSON object per event, filtered by LOG_LEVEL."""
    level = getattr(logging, settings.log_level, logging.INFO)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
    )
