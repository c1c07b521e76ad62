"""Domain records shared by the scheduling core and its adapters."""

from __future__ import annotations

import re
from datetime import date
from enum import Enum
from typing import Any, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

TIME_PATTERN = re.compile(r"^(\d{2}):(\d{2})$")
DEFAULT_BOOKING_NOTE = "Scheduled from treatment package"


class BookingStatus(str, Enum):
    """Lifecycle states of a booking."""

    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


TERMINAL_STATUSES = frozenset(
    {BookingStatus.COMPLETED, BookingStatus.CANCELLED, BookingStatus.NO_SHOW}
)

ALLOWED_TRANSITIONS = {
    BookingStatus.SCHEDULED: frozenset(
        {
            BookingStatus.CONFIRMED,
            BookingStatus.COMPLETED,
            BookingStatus.CANCELLED,
            BookingStatus.NO_SHOW,
        }
    ),
    BookingStatus.CONFIRMED: frozenset(
        {BookingStatus.COMPLETED, BookingStatus.CANCELLED, BookingStatus.NO_SHOW}
    ),
}


def can_transition(current: BookingStatus, target: BookingStatus) -> bool:
    """Return True when ``current -> target`` is a permitted transition."""

    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def validate_clock_time(value: str) -> str:
    match = TIME_PATTERN.match(value or "")
    if not match:
        raise ValueError("time must be zero-padded HH:MM")
    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 23 or minutes > 59:
        raise ValueError("time must be within 00:00-23:59")
    return value


class BookingDraft(BaseModel):
    """Booking fields sent to the store before an id is assigned."""

    model_config = ConfigDict(frozen=True)

    patient_id: int
    therapy_id: int
    date: date
    start_time: str
    status: BookingStatus = BookingStatus.SCHEDULED
    notes: Optional[str] = None

    @field_validator("start_time")
    @classmethod
    def check_start_time(cls, value: str) -> str:
        return validate_clock_time(value)


class Booking(BookingDraft):
    """A scheduled therapy session."""

    id: int


class PendingTreatment(BaseModel):
    """Contracted sessions of one therapy not yet placed on the calendar."""

    model_config = ConfigDict(frozen=True)

    id: str
    patient_id: int
    therapy_id: int
    sessions_pending: int = Field(ge=0)
    contracted_date: date
    notes: Optional[str] = None


class Therapy(BaseModel):
    """Therapy catalog entry."""

    id: int
    name: str
    color: str = "#3B82F6"
    # Older catalogs store free text such as "60 min".
    duration_minutes: Union[int, str, None] = None
    price: float = 0.0
    active: bool = True


class Patient(BaseModel):
    """Patient record, read-only for the scheduling core."""

    id: int
    name: str
    phone: Optional[str] = None
    email: Optional[str] = None
    birth_date: Optional[date] = None
    notes: Optional[str] = None
    active: bool = True


class StoreResult(BaseModel):
    """Envelope returned by every booking store call."""

    success: bool
    data: Any = None
    message: Optional[str] = None


class OperationResult(BaseModel):
    """Outcome of a scheduling engine operation."""

    success: bool
    data: Any = None
    error: Optional[str] = None
    message: Optional[str] = None


class BulkResult(BaseModel):
    """Per-item outcome of a bulk status transition."""

    action: str
    total: int
    succeeded: int
    failed_ids: List[int] = Field(default_factory=list)
    message: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.total > 0 and self.succeeded == self.total

    @property
    def partial(self) -> bool:
        return 0 < self.total and self.succeeded < self.total
