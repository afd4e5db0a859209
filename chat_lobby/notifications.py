"""User-facing notification hook (toast equivalent)."""

from __future__ import annotations

import logging
from typing import Literal, Protocol

logger = logging.getLogger(__name__)

Level = Literal["info", "success", "warning", "error"]

_LOG_LEVELS = {
    "info": logging.INFO,
    "success": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


class Notifier(Protocol):
    def notify(self, message: str, level: Level = "info") -> None: ...


class LogNotifier:
    """Default notifier: routes user messages into the log."""

    def notify(self, message: str, level: Level = "info") -> None:
        logger.log(_LOG_LEVELS.get(level, logging.INFO), "[%s] %s", level, message)


__all__ = ["Level", "Notifier", "LogNotifier"]
