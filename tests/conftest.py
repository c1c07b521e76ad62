"""Shared fixtures for the agenda test suite."""

from datetime import date
from typing import Dict

import pytest

from agenda.services.domain import Booking, Patient, Therapy
from agenda.services.engine import SchedulingEngine
from agenda.services.holidays import HolidayCalendar
from agenda.services.notifications import NotificationCollector
from booking_store.memory import InMemoryBookingStore


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def therapies() -> Dict[int, Therapy]:
    return {
        1: Therapy(id=1, name="Acupuntura", duration_minutes="60 min"),
        2: Therapy(id=2, name="Reiki", duration_minutes=45),
        3: Therapy(id=3, name="Massagem", duration_minutes="90 min"),
    }


@pytest.fixture
def patients() -> Dict[int, Patient]:
    return {
        10: Patient(id=10, name="Ana Souza", phone="16999990000"),
        11: Patient(id=11, name="Bruno Lima"),
    }


@pytest.fixture
def collector() -> NotificationCollector:
    return NotificationCollector()


@pytest.fixture
def store() -> InMemoryBookingStore:
    return InMemoryBookingStore()


@pytest.fixture
def make_engine(therapies, patients, collector):
    def factory(store: InMemoryBookingStore, **kwargs) -> SchedulingEngine:
        kwargs.setdefault("calendar", HolidayCalendar())
        return SchedulingEngine(
            store,
            collector,
            therapies=therapies,
            patients=patients,
            **kwargs,
        )

    return factory


def make_booking(booking_id: int, day: date, start_time: str, **fields) -> Booking:
    fields.setdefault("patient_id", 10)
    fields.setdefault("therapy_id", 1)
    return Booking(id=booking_id, date=day, start_time=start_time, **fields)
