"""Interfaces the scheduling core consumes from its surroundings."""

from __future__ import annotations

from datetime import date
from typing import Any, Dict, Literal, Protocol

from agenda.services.domain import BookingDraft, StoreResult

Severity = Literal["info", "success", "warning", "error"]


class BookingStore(Protocol):
    """Persistence of booking records.

    Failures come back as ``StoreResult(success=False, message=...)``.
    """

    async def list(self, start: date, end: date) -> StoreResult:
        """``data`` is the list of bookings dated within ``[start, end]``."""

    async def create(self, draft: BookingDraft) -> StoreResult:
        """``data`` is the created booking."""

    async def update(self, booking_id: int, fields: Dict[str, Any]) -> StoreResult:
        """``data`` is the updated booking."""

    async def delete(self, booking_id: int) -> StoreResult:
        ...


class NotificationSink(Protocol):
    """Toast-style user feedback; return values are ignored."""

    def notify(self, message: str, severity: Severity = "info") -> None:
        ...
