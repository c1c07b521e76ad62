"""Scheduling engine behind the week view's drag-and-drop interactions.

The engine keeps an optimistic local copy of the visible bookings. Each
successful mutation is written to the booking store first, then applied
locally and recorded as a new undo/redo snapshot. Expected failures never
raise: they are reported through the notification sink and returned as a
failed ``OperationResult``.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date, timedelta
from typing import Any, Dict, Iterable, List, Literal, Mapping, Optional, Sequence

from agenda.services.domain import (
    DEFAULT_BOOKING_NOTE,
    Booking,
    BookingDraft,
    BookingStatus,
    BulkResult,
    OperationResult,
    Patient,
    StoreResult,
    Therapy,
    can_transition,
    validate_clock_time,
)
from agenda.services.errors import (
    NotFoundError,
    SchedulingError,
    StoreError,
    ValidationError,
)
from agenda.services.history import UndoRedoController
from agenda.services.holidays import HolidayCalendar
from agenda.services.ledger import PendingTreatmentLedger
from agenda.services.ports import BookingStore, NotificationSink, Severity
from agenda.services.slots import SlotAllocator

LOGGER = logging.getLogger(__name__)

BulkAction = Literal["confirm", "cancel"]
BULK_VERBS: Dict[str, str] = {"confirm": "confirmed", "cancel": "cancelled"}


class SchedulingEngine:
    """Orchestrates bookings, the pending-session ledger and undo history."""

    def __init__(
        self,
        store: BookingStore,
        notifier: NotificationSink,
        *,
        therapies: Mapping[int, Therapy],
        patients: Mapping[int, Patient],
        ledger: Optional[PendingTreatmentLedger] = None,
        calendar: Optional[HolidayCalendar] = None,
        history: Optional[UndoRedoController] = None,
        default_duration_minutes: int = 60,
    ) -> None:
        self.store = store
        self.notifier = notifier
        self.therapies = therapies
        self.patients = patients
        self.ledger = ledger if ledger is not None else PendingTreatmentLedger()
        self.calendar = calendar if calendar is not None else HolidayCalendar()
        self.history = history if history is not None else UndoRedoController()
        self.allocator = SlotAllocator(
            self.calendar,
            therapies,
            default_duration_minutes=default_duration_minutes,
        )

    @property
    def bookings(self) -> List[Booking]:
        return list(self.history.current)

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------
    async def load_range(self, start: date, end: date) -> OperationResult:
        """Replace the local list with the store's bookings and reset history."""

        try:
            if end < start:
                raise ValidationError("End date must not precede start date")
            bookings = await self._list(start, end)
        except SchedulingError as exc:
            return self._fail(exc)

        bookings.sort(key=lambda booking: (booking.date, booking.start_time))
        self.history.reset(bookings)
        LOGGER.debug("Loaded %s bookings for %s..%s", len(bookings), start, end)
        return OperationResult(success=True, data=bookings)

    async def load_week(self, anchor: date) -> OperationResult:
        monday = anchor - timedelta(days=anchor.weekday())
        return await self.load_range(monday, monday + timedelta(days=6))

    # ------------------------------------------------------------------
    # Pending treatments
    # ------------------------------------------------------------------
    def add_therapy_to_patient(self, patient_id: int, therapy_id: int) -> OperationResult:
        """A therapy chip was dropped onto a patient."""

        try:
            patient = self._require_patient(patient_id)
            therapy = self._require_therapy(therapy_id)
        except SchedulingError as exc:
            return self._fail(exc)

        bundle = self.ledger.add_session(patient_id, therapy_id)
        self._notify(
            f"{therapy.name} added for {patient.name} ({bundle.sessions_pending} pending)",
            "success",
        )
        return OperationResult(success=True, data=bundle)

    def adjust_pending_sessions(
        self,
        patient_id: int,
        treatment_id: str,
        delta: int,
    ) -> OperationResult:
        try:
            if delta == 0:
                raise ValidationError("Session adjustment must not be zero")
            bundle = self.ledger.adjust_sessions(patient_id, treatment_id, delta)
        except SchedulingError as exc:
            return self._fail(exc)

        if bundle is None:
            self._notify("Pending treatment removed", "info")
        else:
            self._notify(f"{bundle.sessions_pending} sessions pending", "info")
        return OperationResult(success=True, data=bundle)

    # ------------------------------------------------------------------
    # Creating bookings
    # ------------------------------------------------------------------
    async def create_booking(self, draft: BookingDraft) -> OperationResult:
        """Manual form submission."""

        try:
            self._require_patient(draft.patient_id)
            self._require_therapy(draft.therapy_id)
            booking = await self._create(draft)
        except SchedulingError as exc:
            return self._fail(exc)

        self._record(self.bookings + [booking])
        self._warn_overlaps(booking)
        self._notify("Booking created", "success")
        return OperationResult(success=True, data=booking)

    async def create_from_therapy_drop(
        self,
        patient_id: int,
        therapy_id: int,
        target_date: date,
        start_time: Optional[str] = None,
    ) -> OperationResult:
        """A therapy chip was dropped onto a calendar day for a patient."""

        try:
            self._require_patient(patient_id)
            self._require_therapy(therapy_id)
            if start_time is None:
                existing = await self._list(target_date, target_date)
                start_time = self.allocator.next_slot(
                    existing,
                    self.allocator.duration_for(therapy_id),
                    target_date,
                )
            draft = self._draft(patient_id, therapy_id, target_date, start_time, None)
            booking = await self._create(draft)
        except SchedulingError as exc:
            return self._fail(exc)

        self._record(self.bookings + [booking])
        self._warn_overlaps(booking)
        self._notify(f"Session booked on {booking.date.isoformat()} at {booking.start_time}", "success")
        return OperationResult(success=True, data=booking)

    async def create_from_pending_drop(
        self,
        patient_id: int,
        treatment_id: str,
        target_date: date,
    ) -> OperationResult:
        """Schedule one session of a pending bundle on ``target_date``.

        Booking creation and ledger consumption succeed or fail together: if
        the bundle disappears while the booking is being created, the booking
        is deleted again.
        """

        try:
            bundle = self.ledger.get(patient_id, treatment_id)
            if bundle is None or bundle.sessions_pending <= 0:
                raise NotFoundError(f"Pending treatment {treatment_id} not found")
            self._require_patient(patient_id)
            self._require_therapy(bundle.therapy_id)

            existing = await self._list(target_date, target_date)
            start_time = self.allocator.next_slot(
                existing,
                self.allocator.duration_for(bundle.therapy_id),
                target_date,
            )
            draft = self._draft(
                patient_id,
                bundle.therapy_id,
                target_date,
                start_time,
                DEFAULT_BOOKING_NOTE,
            )
            booking = await self._create(draft)

            if not self.ledger.consume_one_session(patient_id, treatment_id):
                await self._rollback_creation(booking)
                raise NotFoundError(
                    "Pending treatment was removed while scheduling; booking discarded"
                )
        except SchedulingError as exc:
            return self._fail(exc)

        self._record(self.bookings + [booking])
        self._notify(
            f"Session scheduled on {booking.date.isoformat()} at {booking.start_time}",
            "success",
        )
        return OperationResult(success=True, data=booking)

    # ------------------------------------------------------------------
    # Changing bookings
    # ------------------------------------------------------------------
    async def move_booking(
        self,
        booking_id: int,
        new_date: date,
        new_start_time: Optional[str] = None,
    ) -> OperationResult:
        """Reschedule a booking. Overlaps are reported, not rejected."""

        try:
            booking = self._require_booking(booking_id)
            start_time = self._clock(new_start_time or booking.start_time)
            fields = {"date": new_date, "start_time": start_time}
            result = await self.store.update(booking_id, fields)
            self._check(result, "Could not move booking")
        except SchedulingError as exc:
            return self._fail(exc)

        moved = self._coerce(result.data) or booking.model_copy(update=fields)
        self._record(self._replaced(moved))
        self._warn_overlaps(moved)
        self._notify("Booking moved", "success")
        return OperationResult(success=True, data=moved)

    async def transition_status(self, booking_id: int, status: BookingStatus) -> OperationResult:
        try:
            booking = self._require_booking(booking_id)
            status = BookingStatus(status)
            if not can_transition(booking.status, status):
                raise ValidationError(
                    f"Cannot change a {booking.status.value} booking to {status.value}"
                )
            result = await self.store.update(booking_id, {"status": status})
            self._check(result, "Could not update booking status")
        except SchedulingError as exc:
            return self._fail(exc)

        updated = self._coerce(result.data) or booking.model_copy(update={"status": status})
        self._record(self._replaced(updated))
        self._notify(f"Booking marked as {status.value}", "success")
        return OperationResult(success=True, data=updated)

    async def delete_booking(self, booking_id: int) -> OperationResult:
        try:
            self._require_booking(booking_id)
            result = await self.store.delete(booking_id)
            self._check(result, "Could not delete booking")
        except SchedulingError as exc:
            return self._fail(exc)

        self._record([item for item in self.bookings if item.id != booking_id])
        self._notify("Booking deleted", "success")
        return OperationResult(success=True, data=booking_id)

    async def bulk_transition(self, booking_ids: Sequence[int], action: str) -> BulkResult:
        """Confirm (mark completed) or cancel (delete) many bookings at once.

        Every item is sent concurrently and settles on its own; partial
        failure is reported, never retried.
        """

        ids = list(dict.fromkeys(booking_ids))
        if action not in BULK_VERBS:
            message = f"Unknown bulk action: {action}"
            self._notify(message, "error")
            return BulkResult(action=action, total=len(ids), succeeded=0, failed_ids=ids, message=message)

        if not ids:
            message = "No bookings selected"
            self._notify(message, "warning")
            return BulkResult(action=action, total=0, succeeded=0, message=message)

        outcomes = await asyncio.gather(
            *(self._bulk_item(booking_id, action) for booking_id in ids),
            return_exceptions=True,
        )

        succeeded: List[int] = []
        failed: List[int] = []
        for booking_id, outcome in zip(ids, outcomes):
            if isinstance(outcome, BaseException):
                LOGGER.error("Bulk %s failed for booking %s: %s", action, booking_id, outcome)
                failed.append(booking_id)
            elif outcome.success:
                succeeded.append(booking_id)
            else:
                LOGGER.warning(
                    "Bulk %s rejected for booking %s: %s",
                    action,
                    booking_id,
                    outcome.message,
                )
                failed.append(booking_id)

        if succeeded:
            self._record(self._apply_bulk(succeeded, action))

        verb = BULK_VERBS[action]
        if not failed:
            message = f"{len(succeeded)} bookings {verb}"
            self._notify(message, "success")
        else:
            message = f"{len(succeeded)} of {len(ids)} bookings {verb}"
            self._notify(message, "warning")

        return BulkResult(
            action=action,
            total=len(ids),
            succeeded=len(succeeded),
            failed_ids=failed,
            message=message,
        )

    # ------------------------------------------------------------------
    # Undo / redo
    # ------------------------------------------------------------------
    def undo(self) -> OperationResult:
        """Restore the previous booking list; the ledger is left untouched."""

        snapshot = self.history.undo()
        if snapshot is None:
            self._notify("Nothing to undo", "info")
            return OperationResult(success=False, error="nothing_to_undo", message="Nothing to undo")
        self._notify("Undone", "info")
        return OperationResult(success=True, data=list(snapshot))

    def redo(self) -> OperationResult:
        snapshot = self.history.redo()
        if snapshot is None:
            self._notify("Nothing to redo", "info")
            return OperationResult(success=False, error="nothing_to_redo", message="Nothing to redo")
        self._notify("Redone", "info")
        return OperationResult(success=True, data=list(snapshot))

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    async def _list(self, start: date, end: date) -> List[Booking]:
        result = await self.store.list(start, end)
        self._check(result, "Could not load bookings")
        return [self._coerce(item) for item in result.data or []]

    async def _create(self, draft: BookingDraft) -> Booking:
        result = await self.store.create(draft)
        self._check(result, "Could not create booking")
        booking = self._coerce(result.data)
        if booking is None:
            raise StoreError("Booking store returned no booking")
        return booking

    async def _rollback_creation(self, booking: Booking) -> None:
        try:
            result = await self.store.delete(booking.id)
        except Exception as exc:  # pragma: no cover
            LOGGER.error("Rollback of booking %s raised: %s", booking.id, exc)
            raise StoreError(f"Booking {booking.id} could not be rolled back") from exc
        if not result.success:
            LOGGER.error("Rollback of booking %s failed: %s", booking.id, result.message)
            raise StoreError(f"Booking {booking.id} could not be rolled back")

    async def _bulk_item(self, booking_id: int, action: str) -> StoreResult:
        if action == "cancel":
            return await self.store.delete(booking_id)

        known = self._find_booking(booking_id)
        if known is not None and not can_transition(known.status, BookingStatus.COMPLETED):
            return StoreResult(success=False, message=f"Booking {booking_id} is {known.status.value}")
        return await self.store.update(booking_id, {"status": BookingStatus.COMPLETED})

    def _apply_bulk(self, booking_ids: Iterable[int], action: str) -> List[Booking]:
        done = set(booking_ids)
        if action == "cancel":
            return [booking for booking in self.bookings if booking.id not in done]
        return [
            booking.model_copy(update={"status": BookingStatus.COMPLETED})
            if booking.id in done
            else booking
            for booking in self.bookings
        ]

    def _record(self, bookings: List[Booking]) -> None:
        self.history.push(bookings)

    def _replaced(self, booking: Booking) -> List[Booking]:
        return [booking if item.id == booking.id else item for item in self.bookings]

    def _warn_overlaps(self, booking: Booking) -> None:
        overlapping = self.allocator.find_overlaps(
            self.bookings,
            booking.date,
            booking.start_time,
            self.allocator.duration_for(booking.therapy_id),
            exclude_id=booking.id,
        )
        if overlapping:
            times = ", ".join(item.start_time for item in overlapping)
            self._notify(
                f"Booking at {booking.start_time} overlaps sessions at {times}",
                "warning",
            )

    def _draft(
        self,
        patient_id: int,
        therapy_id: int,
        target_date: date,
        start_time: str,
        notes: Optional[str],
    ) -> BookingDraft:
        return BookingDraft(
            patient_id=patient_id,
            therapy_id=therapy_id,
            date=target_date,
            start_time=self._clock(start_time),
            status=BookingStatus.SCHEDULED,
            notes=notes,
        )

    @staticmethod
    def _clock(value: str) -> str:
        try:
            return validate_clock_time(value)
        except ValueError as exc:
            raise ValidationError(f"Invalid start time {value!r}: {exc}") from exc

    @staticmethod
    def _check(result: StoreResult, fallback: str) -> None:
        if not result.success:
            raise StoreError(result.message or fallback)

    @staticmethod
    def _coerce(data: Any) -> Optional[Booking]:
        if data is None or isinstance(data, Booking):
            return data
        return Booking.model_validate(data)

    def _find_booking(self, booking_id: int) -> Optional[Booking]:
        return next((item for item in self.history.current if item.id == booking_id), None)

    def _require_booking(self, booking_id: int) -> Booking:
        booking = self._find_booking(booking_id)
        if booking is None:
            raise NotFoundError(f"Booking {booking_id} not found")
        return booking

    def _require_patient(self, patient_id: int) -> Patient:
        patient = self.patients.get(patient_id)
        if patient is None:
            raise NotFoundError(f"Patient {patient_id} not found")
        return patient

    def _require_therapy(self, therapy_id: int) -> Therapy:
        therapy = self.therapies.get(therapy_id)
        if therapy is None:
            raise NotFoundError(f"Therapy {therapy_id} not found")
        return therapy

    def _notify(self, message: str, severity: Severity) -> None:
        self.notifier.notify(message, severity)

    def _fail(self, exc: SchedulingError) -> OperationResult:
        LOGGER.info("Scheduling operation failed: %s (%s)", exc.message, exc.code)
        self._notify(exc.message, "error")
        return OperationResult(success=False, error=exc.code, message=exc.message)
