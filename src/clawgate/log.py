"""Logging setup shared by the CLI, the webchat server and tests.

Learn: Two logging styles coexist in this codebase:
- structlog.get_logger() with dotted event names + keyword context
  (skills, sessions, gateway, webchat)
- a named stdlib logger with %-style messages (the dispatcher)

configure_logging() routes structlog through stdlib logging so both end up
in the same handler, with the same format, and in pytest's caplog.
"""

import logging

import structlog

LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def configure_logging(level: str = "INFO") -> None:
    """Configure stdlib logging and bind structlog to it."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt=DATE_FORMAT,
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.processors.format_exc_info,
            structlog.processors.KeyValueRenderer(key_order=["event"]),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )
