"""Structured logging singleton.

The first level comes from LOG_LEVEL in os.environ so that config
validation errors are logged too; ``set_level`` re-applies the level from
Settings once they are loaded. Chatty library loggers (the whatsmeow bridge
inside neonize) stay at WARNING unless the bot itself runs at DEBUG.
"""

from __future__ import annotations

import logging
import os
import sys

import structlog

QUIET_LOGGERS = ("whatsmeow", "neonize")


def _resolve_level(level_name: str) -> int:
    level = logging.getLevelName(level_name.strip().upper())
    return level if isinstance(level, int) else logging.INFO


def _apply_level(level: int) -> None:
    logging.getLogger().setLevel(level)
    library_level = logging.DEBUG if level <= logging.DEBUG else max(level, logging.WARNING)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(library_level)


def _setup_logging(level_name: str) -> structlog.stdlib.BoundLogger:
    # Root handler first so structlog's filter_by_level sees the right level
    logging.basicConfig(format="%(message)s", stream=sys.stderr)
    _apply_level(_resolve_level(level_name))

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    return structlog.get_logger("danuu")


logger = _setup_logging(os.environ.get("LOG_LEVEL", "INFO"))


def set_level(level_name: str) -> None:
    """Apply the configured level. Unknown names fall back to INFO."""
    _apply_level(_resolve_level(level_name))


def _uncaught_exception_handler(
    exc_type: type[BaseException],
    exc_value: BaseException,
    exc_tb: object,
) -> None:
    if issubclass(exc_type, KeyboardInterrupt):
        sys.__excepthook__(exc_type, exc_value, exc_tb)  # type: ignore[arg-type]
        return
    logger.critical("Uncaught exception", exc_info=(exc_type, exc_value, exc_tb))
    sys.exit(1)


sys.excepthook = _uncaught_exception_handler
