"""Agenda router: the week view's drag-and-drop API."""

from __future__ import annotations

import json
import logging
from datetime import date
from functools import lru_cache
from typing import Any, Dict, Iterator, List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Response, status
from pydantic import BaseModel, Field

from agenda.services.db import get_sessionmaker
from agenda.services.domain import BookingDraft, BookingStatus, OperationResult, Patient, Therapy
from agenda.services.engine import SchedulingEngine
from agenda.services.errors import SchedulingError, WorkspaceBusyError
from agenda.services.holidays import HolidayCalendar
from agenda.services.notifications import Notification, NotificationCollector
from agenda.services.ports import BookingStore
from agenda.services.workspace import (
    delete_workspace,
    history_from_state,
    holidays_from_state,
    ledger_from_state,
    load_workspace,
    save_workspace,
    update_state,
    workspace_lock,
)
from agenda.utils.config import get_settings
from booking_store.http import HttpBookingStore
from booking_store.memory import InMemoryBookingStore
from booking_store.sql import SqlBookingStore, load_patients, load_therapies

LOGGER = logging.getLogger(__name__)

router = APIRouter()
settings = get_settings()

_STATUS_FOR_ERROR: Dict[str, int] = {
    "not_found": 404,
    "validation_error": 422,
    "slot_overflow": 422,
    "store_error": 502,
    "nothing_to_undo": 409,
    "nothing_to_redo": 409,
}


# ---------------------------------------------------------------------------
# Request / response contracts
# ---------------------------------------------------------------------------
class AgendaResponse(BaseModel):
    """Envelope returned by every agenda endpoint."""

    success: bool
    data: Any = None
    error: Optional[str] = None
    message: Optional[str] = None
    notifications: List[Notification] = Field(default_factory=list)


class PendingRequest(BaseModel):
    """A therapy chip dropped onto a patient."""

    patient_id: int
    therapy_id: int


class AdjustPendingRequest(BaseModel):
    delta: int


class PendingDropRequest(BaseModel):
    """A pending bundle dropped onto a calendar day."""

    patient_id: int
    treatment_id: str = Field(min_length=1)
    date: date


class TherapyDropRequest(BaseModel):
    patient_id: int
    therapy_id: int
    date: date
    start_time: Optional[str] = None


class MoveRequest(BaseModel):
    date: date
    start_time: Optional[str] = None


class StatusRequest(BaseModel):
    status: BookingStatus


class BulkRequest(BaseModel):
    booking_ids: List[int]
    action: Literal["confirm", "cancel"]


class HolidayRequest(BaseModel):
    name: str = Field(min_length=1)
    date: date
    recurring: bool = False


class Catalog(BaseModel):
    """Therapies and patients the engine looks up by id."""

    therapies: Dict[int, Therapy] = Field(default_factory=dict)
    patients: Dict[int, Patient] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------
@lru_cache()
def _memory_store() -> InMemoryBookingStore:
    return InMemoryBookingStore()


def get_booking_store() -> BookingStore:
    """Return the booking store selected by ``booking_store_backend``."""

    backend = settings.booking_store_backend
    if backend == "http":
        return HttpBookingStore(
            base_url=settings.booking_api_url,
            api_token=settings.booking_api_token or None,
            timeout_seconds=settings.booking_api_timeout_seconds,
        )
    if backend == "memory":
        return _memory_store()
    return SqlBookingStore(get_sessionmaker())


@lru_cache()
def _file_catalog(path: str) -> Catalog:
    if not path:
        LOGGER.warning("No catalog_path configured; therapy and patient catalog is empty")
        return Catalog()
    with open(path, "r", encoding="utf-8") as handle:
        catalog = Catalog.model_validate(json.load(handle))
    LOGGER.info(
        "Loaded catalog from %s: %s therapies, %s patients",
        path,
        len(catalog.therapies),
        len(catalog.patients),
    )
    return catalog


def get_catalog() -> Catalog:
    """Return therapies and patients; only the ``sql`` backend reads the database."""

    if settings.booking_store_backend == "sql":
        factory = get_sessionmaker()
        return Catalog(therapies=load_therapies(factory), patients=load_patients(factory))
    return _file_catalog(settings.catalog_path)


def lock_workspace(workspace_id: str) -> Iterator[None]:
    """Hold the workspace lock until the response is built."""

    try:
        with workspace_lock(
            workspace_id,
            timeout=settings.workspace_lock_timeout_seconds,
            wait=settings.workspace_lock_wait_seconds,
        ):
            yield
    except WorkspaceBusyError as exc:
        raise HTTPException(status_code=status.HTTP_423_LOCKED, detail=exc.message) from exc


class AgendaContext:
    """Scheduling engine bound to one workspace for the span of a request."""

    def __init__(self, workspace_id: str, store: BookingStore, catalog: Catalog) -> None:
        self.workspace_id = workspace_id
        self.state = load_workspace(workspace_id)
        self.notifications = NotificationCollector()
        self.calendar = HolidayCalendar.from_settings(settings, holidays_from_state(self.state))
        self.engine = SchedulingEngine(
            store,
            self.notifications,
            therapies=catalog.therapies,
            patients=catalog.patients,
            ledger=ledger_from_state(self.state),
            calendar=self.calendar,
            history=history_from_state(self.state, settings.undo_history_limit),
            default_duration_minutes=settings.default_session_minutes,
        )

    def save(self) -> None:
        update_state(
            self.state,
            ledger=self.engine.ledger,
            history=self.engine.history,
            calendar=self.calendar,
        )
        save_workspace(self.workspace_id, self.state, settings.workspace_ttl_seconds)


def get_context(
    workspace_id: str,
    _lock: None = Depends(lock_workspace),
    store: BookingStore = Depends(get_booking_store),
    catalog: Catalog = Depends(get_catalog),
) -> AgendaContext:
    return AgendaContext(workspace_id, store, catalog)


def _respond(context: AgendaContext, response: Response, result: OperationResult) -> AgendaResponse:
    context.save()
    if not result.success:
        response.status_code = _STATUS_FOR_ERROR.get(result.error or "", 400)
        LOGGER.debug(
            "Workspace %s request failed: error=%s message=%s",
            context.workspace_id,
            result.error,
            result.message,
        )
    return AgendaResponse(
        success=result.success,
        data=result.data,
        error=result.error,
        message=result.message,
        notifications=list(context.notifications.items),
    )


# ---------------------------------------------------------------------------
# Week view
# ---------------------------------------------------------------------------
@router.get("/{workspace_id}/week", response_model=AgendaResponse)
async def load_week(
    response: Response,
    day: Optional[date] = None,
    context: AgendaContext = Depends(get_context),
) -> AgendaResponse:
    """Load the Monday-Sunday week containing ``day`` and reset undo history."""

    result = await context.engine.load_week(day or date.today())
    return _respond(context, response, result)


# ---------------------------------------------------------------------------
# Pending treatments
# ---------------------------------------------------------------------------
@router.get("/{workspace_id}/pending/{patient_id}", response_model=AgendaResponse)
def list_pending(
    patient_id: int,
    response: Response,
    context: AgendaContext = Depends(get_context),
) -> AgendaResponse:
    bundles = context.engine.ledger.for_patient(patient_id)
    return _respond(context, response, OperationResult(success=True, data=bundles))


@router.post("/{workspace_id}/pending", response_model=AgendaResponse)
def add_pending(
    payload: PendingRequest,
    response: Response,
    context: AgendaContext = Depends(get_context),
) -> AgendaResponse:
    result = context.engine.add_therapy_to_patient(payload.patient_id, payload.therapy_id)
    return _respond(context, response, result)


@router.patch("/{workspace_id}/pending/{patient_id}/{treatment_id}", response_model=AgendaResponse)
def adjust_pending(
    patient_id: int,
    treatment_id: str,
    payload: AdjustPendingRequest,
    response: Response,
    context: AgendaContext = Depends(get_context),
) -> AgendaResponse:
    result = context.engine.adjust_pending_sessions(patient_id, treatment_id, payload.delta)
    return _respond(context, response, result)


# ---------------------------------------------------------------------------
# Drops and bookings
# ---------------------------------------------------------------------------
@router.post("/{workspace_id}/drops/pending", response_model=AgendaResponse)
async def drop_pending(
    payload: PendingDropRequest,
    response: Response,
    context: AgendaContext = Depends(get_context),
) -> AgendaResponse:
    """Schedule one session of a pending bundle on the target day."""

    result = await context.engine.create_from_pending_drop(
        payload.patient_id,
        payload.treatment_id,
        payload.date,
    )
    return _respond(context, response, result)


@router.post("/{workspace_id}/drops/therapy", response_model=AgendaResponse)
async def drop_therapy(
    payload: TherapyDropRequest,
    response: Response,
    context: AgendaContext = Depends(get_context),
) -> AgendaResponse:
    result = await context.engine.create_from_therapy_drop(
        payload.patient_id,
        payload.therapy_id,
        payload.date,
        payload.start_time,
    )
    return _respond(context, response, result)


@router.post("/{workspace_id}/bookings", response_model=AgendaResponse)
async def create_booking(
    payload: BookingDraft,
    response: Response,
    context: AgendaContext = Depends(get_context),
) -> AgendaResponse:
    result = await context.engine.create_booking(payload)
    return _respond(context, response, result)


@router.patch("/{workspace_id}/bookings/{booking_id}/move", response_model=AgendaResponse)
async def move_booking(
    booking_id: int,
    payload: MoveRequest,
    response: Response,
    context: AgendaContext = Depends(get_context),
) -> AgendaResponse:
    result = await context.engine.move_booking(booking_id, payload.date, payload.start_time)
    return _respond(context, response, result)


@router.patch("/{workspace_id}/bookings/{booking_id}/status", response_model=AgendaResponse)
async def update_status(
    booking_id: int,
    payload: StatusRequest,
    response: Response,
    context: AgendaContext = Depends(get_context),
) -> AgendaResponse:
    result = await context.engine.transition_status(booking_id, payload.status)
    return _respond(context, response, result)


@router.delete("/{workspace_id}/bookings/{booking_id}", response_model=AgendaResponse)
async def delete_booking(
    booking_id: int,
    response: Response,
    context: AgendaContext = Depends(get_context),
) -> AgendaResponse:
    result = await context.engine.delete_booking(booking_id)
    return _respond(context, response, result)


@router.post("/{workspace_id}/bookings/bulk", response_model=AgendaResponse)
async def bulk_transition(
    payload: BulkRequest,
    response: Response,
    context: AgendaContext = Depends(get_context),
) -> AgendaResponse:
    """Confirm or cancel many bookings; partial success is still a 200."""

    bulk = await context.engine.bulk_transition(payload.booking_ids, payload.action)
    result = OperationResult(success=bulk.succeeded > 0, data=bulk.model_dump(), message=bulk.message)
    if bulk.total == 0:
        result.error = "validation_error"
    elif bulk.succeeded == 0:
        result.error = "store_error"
    return _respond(context, response, result)


# ---------------------------------------------------------------------------
# Undo / redo
# ---------------------------------------------------------------------------
@router.post("/{workspace_id}/undo", response_model=AgendaResponse)
def undo(response: Response, context: AgendaContext = Depends(get_context)) -> AgendaResponse:
    return _respond(context, response, context.engine.undo())


@router.post("/{workspace_id}/redo", response_model=AgendaResponse)
def redo(response: Response, context: AgendaContext = Depends(get_context)) -> AgendaResponse:
    return _respond(context, response, context.engine.redo())


# ---------------------------------------------------------------------------
# Calendar
# ---------------------------------------------------------------------------
@router.get("/{workspace_id}/calendar", response_model=AgendaResponse)
def non_business_days(
    start: date,
    end: date,
    response: Response,
    context: AgendaContext = Depends(get_context),
) -> AgendaResponse:
    if end < start:
        result = OperationResult(
            success=False,
            error="validation_error",
            message="End date must not precede start date",
        )
    else:
        result = OperationResult(
            success=True,
            data=context.calendar.non_business_days(start, end),
        )
    return _respond(context, response, result)


@router.get("/{workspace_id}/calendar/opening-time", response_model=AgendaResponse)
def opening_time(
    day: date,
    response: Response,
    context: AgendaContext = Depends(get_context),
) -> AgendaResponse:
    calendar = context.calendar
    data = {
        "date": day,
        "opening_time": calendar.default_opening_time(day),
        "holiday": calendar.holiday_info(day),
        "weekend": calendar.is_weekend(day),
    }
    return _respond(context, response, OperationResult(success=True, data=data))


@router.post("/{workspace_id}/calendar/holidays", response_model=AgendaResponse)
def add_holiday(
    payload: HolidayRequest,
    response: Response,
    context: AgendaContext = Depends(get_context),
) -> AgendaResponse:
    try:
        holiday = context.calendar.add_custom_holiday(
            payload.name,
            payload.date,
            recurring=payload.recurring,
        )
    except SchedulingError as exc:
        result = OperationResult(success=False, error=exc.code, message=exc.message)
    else:
        result = OperationResult(success=True, data=holiday, message="Holiday added")
    return _respond(context, response, result)


@router.delete("/{workspace_id}/calendar/holidays/{holiday_id}", response_model=AgendaResponse)
def remove_holiday(
    holiday_id: str,
    response: Response,
    context: AgendaContext = Depends(get_context),
) -> AgendaResponse:
    if context.calendar.remove_custom_holiday(holiday_id):
        result = OperationResult(success=True, data=holiday_id, message="Holiday removed")
    else:
        result = OperationResult(
            success=False,
            error="not_found",
            message=f"Holiday {holiday_id} not found",
        )
    return _respond(context, response, result)


# ---------------------------------------------------------------------------
# Workspace
# ---------------------------------------------------------------------------
@router.delete(
    "/{workspace_id}",
    response_model=AgendaResponse,
    dependencies=[Depends(lock_workspace)],
)
def reset_workspace(workspace_id: str) -> AgendaResponse:
    """Forget the workspace's ledger, history and custom holidays."""

    delete_workspace(workspace_id)
    LOGGER.info("Workspace %s reset", workspace_id)
    return AgendaResponse(success=True, message="Workspace reset")
