"""Start-time allocation for bookings dropped onto a calendar day."""

from __future__ import annotations

import logging
import re
from datetime import date
from typing import Any, List, Mapping, Optional, Sequence

from agenda.services.domain import Booking, Therapy
from agenda.services.errors import SlotOverflowError, ValidationError
from agenda.services.holidays import HolidayCalendar

LOGGER = logging.getLogger(__name__)

MINUTES_PER_DAY = 24 * 60
DEFAULT_DURATION_MINUTES = 60
_LEADING_INT = re.compile(r"\d+")


def to_minutes(clock: str) -> int:
    hours, minutes = clock.split(":")
    return int(hours) * 60 + int(minutes)


def to_clock(total_minutes: int) -> str:
    hours, minutes = divmod(total_minutes, 60)
    return f"{hours:02d}:{minutes:02d}"


def parse_duration_minutes(value: Any, default: int = DEFAULT_DURATION_MINUTES) -> int:
    """Return a duration in minutes from an int or text such as ``"45 min"``."""

    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value if value > 0 else default
    if isinstance(value, str):
        match = _LEADING_INT.search(value)
        if match and int(match.group(0)) > 0:
            return int(match.group(0))
    return default


class SlotAllocator:
    """Append-only allocator: a new session starts when the day's last one ends.

    Gaps between earlier bookings are never filled.
    """

    def __init__(
        self,
        calendar: HolidayCalendar,
        therapies: Mapping[int, Therapy],
        *,
        default_duration_minutes: int = DEFAULT_DURATION_MINUTES,
    ) -> None:
        self.calendar = calendar
        self.therapies = therapies
        self.default_duration_minutes = default_duration_minutes

    def duration_for(self, therapy_id: int) -> int:
        therapy = self.therapies.get(therapy_id)
        if therapy is None:
            LOGGER.debug("Therapy %s not in catalog; assuming default duration", therapy_id)
            return self.default_duration_minutes
        return parse_duration_minutes(therapy.duration_minutes, self.default_duration_minutes)

    def next_slot(
        self,
        existing_bookings: Sequence[Booking],
        new_duration_minutes: int,
        day: date,
    ) -> str:
        """Return the start time for a new booking on ``day``."""

        if new_duration_minutes <= 0:
            raise ValidationError("Session duration must be positive")

        if not existing_bookings:
            return self.calendar.default_opening_time(day)

        last = sorted(existing_bookings, key=lambda booking: booking.start_time)[-1]
        next_start = to_minutes(last.start_time) + self.duration_for(last.therapy_id)
        if next_start >= MINUTES_PER_DAY:
            raise SlotOverflowError(
                f"No room left on {day.isoformat()}: the last session ends after midnight"
            )
        return to_clock(next_start)

    def find_overlaps(
        self,
        bookings: Sequence[Booking],
        day: date,
        start_time: str,
        duration_minutes: int,
        *,
        exclude_id: Optional[int] = None,
    ) -> List[Booking]:
        """Return same-day bookings whose windows intersect the given one."""

        start = to_minutes(start_time)
        end = start + duration_minutes
        overlapping: List[Booking] = []
        for booking in bookings:
            if booking.date != day or booking.id == exclude_id:
                continue
            other_start = to_minutes(booking.start_time)
            other_end = other_start + self.duration_for(booking.therapy_id)
            if other_start < end and start < other_end:
                overlapping.append(booking)
        return overlapping
