"""Logging configuration helpers for the club ledger."""
from __future__ import annotations

import logging
import os

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

# Libraries that log every request or job run at INFO.
NOISY_LOGGERS = ("apscheduler", "urllib3")


def resolve_level(level: str | int | None) -> int:
    """Translate a level name, number or ``None`` into a numeric level.

    ``None`` reads ``CLUB_LEDGER_LOG_LEVEL``. Unknown names fall back to INFO.
    """

    if level is None:
        level = os.getenv("CLUB_LEDGER_LOG_LEVEL", "INFO")
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.strip().upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def configure_logging(level: str | int | None = None, *, force: bool = False) -> None:
    """Configure the root logger for console output."""

    resolved_level = resolve_level(level)
    root_logger = logging.getLogger()
    if root_logger.handlers and not force:
        root_logger.setLevel(resolved_level)
    else:
        logging.basicConfig(level=resolved_level, format=LOG_FORMAT, force=force)

    quiet_level = resolved_level if resolved_level <= logging.DEBUG else logging.WARNING
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(quiet_level)


__all__ = ["configure_logging", "resolve_level"]
