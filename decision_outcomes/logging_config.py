"""Structured logging setup."""

import logging
import sys

import structlog

from decision_outcomes.settings import LoggingSettings, settings


def configure_logging(logging_settings: LoggingSettings | None = None) -> None:
    """Configure structlog to write leveled, timestamped events to stderr.

    Args:
        logging_settings: Level and renderer choice; the global settings are
            used when omitted
    """
    logging_settings = logging_settings or settings.logging

    renderer = (
        structlog.processors.JSONRenderer()
        if logging_settings.format == "json"
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, logging_settings.level)
        ),
        context_class=dict,
        # stdout is reserved for command output
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )
