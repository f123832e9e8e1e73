"""Logging configuration.

Services and handlers log structured events through structlog
(``logger.info("otp_sent", ...)``); small core helpers use stdlib
``logging.getLogger(__name__)``. Both end up on the same stdlib handler so
one log level applies everywhere.

Security: Never pass OTP codes, reset tokens, CSRF tokens, passwords or
password hashes as log fields.
"""

import logging

import structlog

from masar.core.config import settings


def configure_logging() -> None:
    """Configure stdlib logging and structlog.

    JSON lines in production, human-readable console output otherwise.
    Safe to call more than once.
    """
    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    if settings.is_production:
        processors += [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )
