"""Console logging for the harvester and its scheduler."""
from __future__ import annotations

import logging
import os

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
LOG_LEVEL_VARIABLE = "SHORT_HARVEST_LOG_LEVEL"

# Held at WARNING unless the harvest itself logs at DEBUG.
CHATTY_LOGGERS = ("urllib3.connectionpool", "apscheduler.executors.default")


def _resolve_level(level: str | int | None) -> int:
    """Numeric level for ``level``, the environment, or INFO as a last resort."""

    if level is None:
        level = os.getenv(LOG_LEVEL_VARIABLE, "INFO")
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.strip().upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def configure_logging(level: str | int | None = None, *, force: bool = False) -> None:
    """Send harvest logs to the console.

    An unknown level name falls back to INFO rather than failing the run. When
    handlers are already installed only the level changes, unless ``force``.
    """

    resolved = _resolve_level(level)
    root = logging.getLogger()
    if root.handlers and not force:
        root.setLevel(resolved)
    else:
        logging.basicConfig(level=resolved, format=LOG_FORMAT, force=force)

    quiet = logging.NOTSET if resolved <= logging.DEBUG else logging.WARNING
    for name in CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(quiet)


__all__ = ["configure_logging", "LOG_FORMAT"]
