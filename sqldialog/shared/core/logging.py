"""Logging setup for sqldialog."""

from __future__ import annotations

import logging
import os

LOG_LEVEL_ENV = "SQLDIALOG_LOG_LEVEL"
_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")

# Third-party loggers that are chatty at INFO.
NOISY_LOGGERS = ("keyring", "asyncio")


def resolve_log_level(level: str | None = None) -> int:
    """Resolve a level name, falling back to the env var and then INFO."""
    name = (level or os.environ.get(LOG_LEVEL_ENV, "INFO")).upper()
    if name not in _LEVELS:
        name = "INFO"
    return getattr(logging, name)


def configure_logging(level: str | None = None, use_rich: bool = False) -> None:
    """Configure root logging once at startup.

    Args:
        level: Log level name. If None, uses SQLDIALOG_LOG_LEVEL or INFO.
        use_rich: Use Rich's handler for colorful console output.
    """
    log_level = resolve_log_level(level)

    handler: logging.Handler
    if use_rich:
        from rich.logging import RichHandler

        handler = RichHandler(
            rich_tracebacks=False,
            show_path=False,
            show_time=True,
            markup=False,
        )
        handler.setFormatter(logging.Formatter("%(name)s | %(message)s"))
    else:
        handler = logging.StreamHandler()
        handler.setFormatter(
            logging.Formatter(
                "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
                datefmt="%H:%M:%S",
            )
        )

    logging.basicConfig(level=log_level, handlers=[handler], force=True)

    for logger_name in NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(logging.WARNING)
