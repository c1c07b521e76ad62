"""Notification sink that collects messages for the HTTP response."""

from __future__ import annotations

import logging
from typing import List

from pydantic import BaseModel

from agenda.services.ports import Severity

LOGGER = logging.getLogger(__name__)

_LOG_LEVELS = {
    "info": logging.INFO,
    "success": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


class Notification(BaseModel):
    """A user-facing message emitted by the scheduling engine."""

    message: str
    severity: Severity = "info"


class NotificationCollector:
    """Keeps every notification in order and mirrors it to the log."""

    def __init__(self) -> None:
        self.items: List[Notification] = []

    def notify(self, message: str, severity: Severity = "info") -> None:
        LOGGER.log(_LOG_LEVELS.get(severity, logging.INFO), "notify[%s]: %s", severity, message)
        self.items.append(Notification(message=message, severity=severity))

    def last(self) -> Notification:
        return self.items[-1]

    def clear(self) -> None:
        self.items.clear()
