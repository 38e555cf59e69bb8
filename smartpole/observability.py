"""
Structured logging setup.

Components never configure logging themselves; they accept a bound logger
(or fall back to ``get_logger``) so tests and hosts control the output.
"""

import logging
import sys

import structlog

from smartpole.config import LoggingConfig


def configure_logging(config: LoggingConfig) -> None:
    """Configure structlog and the stdlib root handler from ``config``."""

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=config.level, force=True)

    renderer: structlog.types.Processor
    if config.format == "console":
        renderer = structlog.dev.ConsoleRenderer()
    else:
        renderer = structlog.processors.JSONRenderer()

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
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(component: str) -> structlog.stdlib.BoundLogger:
    """Logger bound with the component name, for callers that pass none."""
    return structlog.get_logger(f"smartpole.{component}").bind(component=component)
