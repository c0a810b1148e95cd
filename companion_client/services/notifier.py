"""User-facing transient notifications."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Literal, Protocol

LOGGER = logging.getLogger(__name__)

Severity = Literal["success", "error", "warning", "info"]

_LEVELS = {
    "success": logging.INFO,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


@dataclass(slots=True)
class Notice:
    """One titled message shown to the user."""

    title: str
    severity: Severity = "info"
    duration_ms: int = 2000


class Notifier(Protocol):
    """Surface transient messages; never used for control flow."""

    def notify(self, notice: Notice) -> None: ...


class LoggingNotifier:
    """Notifier writing notices to the log (headless runs)."""

    def __init__(self) -> None:
        self.history: list[Notice] = []

    def notify(self, notice: Notice) -> None:
        self.history.append(notice)
        LOGGER.log(_LEVELS.get(notice.severity, logging.INFO), "[%s] %s", notice.severity, notice.title)
