"""In-process booking store."""

from __future__ import annotations

import itertools
import logging
from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Set

from agenda.services.domain import Booking, BookingDraft, StoreResult

LOGGER = logging.getLogger(__name__)


class InMemoryBookingStore:
    """Dictionary-backed store, used by tests and the ``memory`` backend.

    ``failing_ids`` makes update/delete calls for those bookings fail, which
    is how tests exercise partial failures.
    """

    def __init__(
        self,
        bookings: Iterable[Booking] = (),
        *,
        failing_ids: Optional[Set[int]] = None,
    ) -> None:
        self._bookings: Dict[int, Booking] = {booking.id: booking for booking in bookings}
        start = max(self._bookings, default=0) + 1
        self._ids = itertools.count(start)
        self.failing_ids: Set[int] = set(failing_ids or ())
        self.calls: List[str] = []

    async def list(self, start: date, end: date) -> StoreResult:
        self.calls.append("list")
        bookings = [
            booking
            for booking in self._bookings.values()
            if start <= booking.date <= end
        ]
        bookings.sort(key=lambda booking: (booking.date, booking.start_time))
        return StoreResult(success=True, data=bookings)

    async def create(self, draft: BookingDraft) -> StoreResult:
        self.calls.append("create")
        booking = Booking(id=next(self._ids), **draft.model_dump())
        self._bookings[booking.id] = booking
        return StoreResult(success=True, data=booking)

    async def update(self, booking_id: int, fields: Dict[str, Any]) -> StoreResult:
        self.calls.append("update")
        booking = self._bookings.get(booking_id)
        if booking is None or booking_id in self.failing_ids:
            return StoreResult(success=False, message=f"Booking {booking_id} could not be updated")

        updated = Booking.model_validate({**booking.model_dump(), **fields})
        self._bookings[booking_id] = updated
        return StoreResult(success=True, data=updated)

    async def delete(self, booking_id: int) -> StoreResult:
        self.calls.append("delete")
        if booking_id not in self._bookings or booking_id in self.failing_ids:
            return StoreResult(success=False, message=f"Booking {booking_id} could not be deleted")

        del self._bookings[booking_id]
        return StoreResult(success=True, data=booking_id)

    def get(self, booking_id: int) -> Optional[Booking]:
        return self._bookings.get(booking_id)

    def all(self) -> List[Booking]:
        return list(self._bookings.values())
