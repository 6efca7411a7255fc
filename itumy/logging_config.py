"""structlog configuration.

Call ``configure_logging()`` once at startup. Afterwards every
``structlog.get_logger()`` emits one line per event, JSON by default, with
any context bound through ``structlog.contextvars`` (such as ``request_id``)
merged in.
"""

from __future__ import annotations

import logging

import structlog


def configure_logging(level: str = "INFO", json_logs: bool = True) -> None:
    """Configure structlog and the stdlib root logger.

    Args:
        level: Logging level string, e.g. ``"INFO"`` or ``"DEBUG"``
        json_logs: Render JSON lines instead of the console format
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]
    if json_logs:
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        # ConsoleRenderer formats exceptions itself
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Third-party libraries log through stdlib
    logging.basicConfig(level=numeric_level, format="%(levelname)s %(name)s: %(message)s")
    for noisy in ("sqlalchemy.engine", "aiosqlite", "uvicorn.access"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
