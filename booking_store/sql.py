"""SQLAlchemy-backed booking store and catalog lookups."""

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Dict

from anyio import to_thread
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from agenda.models.booking import BookingRow
from agenda.models.patient import PatientRow
from agenda.models.therapy import TherapyRow
from agenda.services.db import session_scope
from agenda.services.domain import Booking, BookingDraft, Patient, StoreResult, Therapy

LOGGER = logging.getLogger(__name__)

# Domain field name -> ORM attribute name.
_COLUMN_FOR_FIELD = {
    "date": "booking_date",
    "start_time": "start_time",
    "status": "status",
    "notes": "notes",
    "patient_id": "patient_id",
    "therapy_id": "therapy_id",
}


def _to_booking(row: BookingRow) -> Booking:
    return Booking(
        id=row.id,
        patient_id=row.patient_id,
        therapy_id=row.therapy_id,
        date=row.booking_date,
        start_time=row.start_time,
        status=row.status,
        notes=row.notes,
    )


def _column_value(field: str, value: Any) -> Any:
    if field == "date" and isinstance(value, str):
        return date.fromisoformat(value)
    return getattr(value, "value", value)


class SqlBookingStore:
    """Runs synchronous SQLAlchemy sessions in a worker thread."""

    def __init__(self, session_factory: sessionmaker) -> None:
        self.session_factory = session_factory

    async def list(self, start: date, end: date) -> StoreResult:
        return await to_thread.run_sync(self._list, start, end)

    async def create(self, draft: BookingDraft) -> StoreResult:
        return await to_thread.run_sync(self._create, draft)

    async def update(self, booking_id: int, fields: Dict[str, Any]) -> StoreResult:
        return await to_thread.run_sync(self._update, booking_id, fields)

    async def delete(self, booking_id: int) -> StoreResult:
        return await to_thread.run_sync(self._delete, booking_id)

    # ------------------------------------------------------------------
    # Blocking implementations
    # ------------------------------------------------------------------
    def _list(self, start: date, end: date) -> StoreResult:
        statement = (
            select(BookingRow)
            .where(BookingRow.booking_date >= start, BookingRow.booking_date <= end)
            .order_by(BookingRow.booking_date, BookingRow.start_time)
        )
        try:
            with session_scope(self.session_factory) as session:
                bookings = [_to_booking(row) for row in session.scalars(statement)]
        except SQLAlchemyError as exc:
            LOGGER.error("Listing bookings failed: %s", exc)
            return StoreResult(success=False, message="Could not load bookings")
        return StoreResult(success=True, data=bookings)

    def _create(self, draft: BookingDraft) -> StoreResult:
        row = BookingRow(
            patient_id=draft.patient_id,
            therapy_id=draft.therapy_id,
            booking_date=draft.date,
            start_time=draft.start_time,
            status=draft.status.value,
            notes=draft.notes,
        )
        try:
            with session_scope(self.session_factory) as session:
                session.add(row)
                session.flush()
                booking = _to_booking(row)
        except SQLAlchemyError as exc:
            LOGGER.error("Creating booking failed: %s", exc)
            return StoreResult(success=False, message="Could not create booking")
        LOGGER.info("Created booking %s on %s at %s", booking.id, booking.date, booking.start_time)
        return StoreResult(success=True, data=booking)

    def _update(self, booking_id: int, fields: Dict[str, Any]) -> StoreResult:
        unknown = set(fields) - set(_COLUMN_FOR_FIELD)
        if unknown:
            return StoreResult(success=False, message=f"Unknown booking fields: {sorted(unknown)}")

        try:
            with session_scope(self.session_factory) as session:
                row = session.get(BookingRow, booking_id)
                if row is None:
                    return StoreResult(success=False, message=f"Booking {booking_id} not found")
                for field, value in fields.items():
                    setattr(row, _COLUMN_FOR_FIELD[field], _column_value(field, value))
                session.flush()
                booking = _to_booking(row)
        except SQLAlchemyError as exc:
            LOGGER.error("Updating booking %s failed: %s", booking_id, exc)
            return StoreResult(success=False, message="Could not update booking")
        return StoreResult(success=True, data=booking)

    def _delete(self, booking_id: int) -> StoreResult:
        try:
            with session_scope(self.session_factory) as session:
                row = session.get(BookingRow, booking_id)
                if row is None:
                    return StoreResult(success=False, message=f"Booking {booking_id} not found")
                session.delete(row)
        except SQLAlchemyError as exc:
            LOGGER.error("Deleting booking %s failed: %s", booking_id, exc)
            return StoreResult(success=False, message="Could not delete booking")
        return StoreResult(success=True, data=booking_id)


def load_therapies(session_factory: sessionmaker) -> Dict[int, Therapy]:
    """Return the therapy catalog keyed by id."""

    with session_scope(session_factory) as session:
        return {
            row.id: Therapy(
                id=row.id,
                name=row.name,
                color=row.color,
                duration_minutes=row.duration,
                price=float(row.price or 0),
                active=row.active,
            )
            for row in session.scalars(select(TherapyRow))
        }


def load_patients(session_factory: sessionmaker) -> Dict[int, Patient]:
    """Return patients keyed by id."""

    with session_scope(session_factory) as session:
        return {
            row.id: Patient(
                id=row.id,
                name=row.name,
                phone=row.phone,
                email=row.email,
                birth_date=row.birth_date,
                notes=row.notes,
                active=row.active,
            )
            for row in session.scalars(select(PatientRow))
        }
