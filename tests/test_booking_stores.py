"""Tests for the SQL and HTTP booking store adapters."""

import json
from datetime import date
from typing import Any, Dict, List

import httpx
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from agenda.models.patient import PatientRow
from agenda.models.therapy import TherapyRow
from agenda.services.db import init_db, session_scope
from agenda.services.domain import BookingDraft, BookingStatus
from booking_store.http import HttpBookingStore
from booking_store.sql import SqlBookingStore, load_patients, load_therapies

pytestmark = pytest.mark.anyio

TUESDAY = date(2025, 6, 10)


# ---------------------------------------------------------------------------
# SQL
# ---------------------------------------------------------------------------
@pytest.fixture
def session_factory() -> sessionmaker:
    engine = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    init_db(engine)
    factory = sessionmaker(bind=engine, autoflush=False, future=True)
    with session_scope(factory) as session:
        session.add_all(
            [
                PatientRow(name="Ana Souza", phone="16999990000"),
                TherapyRow(name="Reiki", duration="45 min", price=120),
            ]
        )
    return factory


async def test_sql_store_create_list_update_delete(session_factory) -> None:
    store = SqlBookingStore(session_factory)
    draft = BookingDraft(patient_id=1, therapy_id=1, date=TUESDAY, start_time="17:00", notes="first")

    created = await store.create(draft)
    assert created.success
    booking = created.data
    assert booking.id == 1
    assert booking.status == BookingStatus.SCHEDULED

    listed = await store.list(date(2025, 6, 9), date(2025, 6, 15))
    assert [item.id for item in listed.data] == [1]
    assert (await store.list(date(2025, 6, 11), date(2025, 6, 15))).data == []

    moved = await store.update(1, {"date": date(2025, 6, 11), "start_time": "18:00"})
    assert moved.data.date == date(2025, 6, 11)
    assert moved.data.start_time == "18:00"

    completed = await store.update(1, {"status": BookingStatus.COMPLETED})
    assert completed.data.status == BookingStatus.COMPLETED

    deleted = await store.delete(1)
    assert deleted.success
    assert (await store.list(date(2025, 6, 1), date(2025, 6, 30))).data == []


async def test_sql_store_failures_are_results(session_factory) -> None:
    store = SqlBookingStore(session_factory)

    assert not (await store.update(7, {"status": "completed"})).success
    assert not (await store.delete(7)).success

    unknown = await store.update(7, {"colour": "red"})
    assert not unknown.success
    assert "colour" in unknown.message


def test_catalog_lookups(session_factory) -> None:
    therapies = load_therapies(session_factory)
    patients = load_patients(session_factory)

    assert therapies[1].name == "Reiki"
    assert therapies[1].duration_minutes == "45 min"
    assert therapies[1].price == 120.0
    assert patients[1].phone == "16999990000"


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------
API_BOOKING = {
    "id": 5,
    "clientId": 10,
    "serviceId": 1,
    "date": "2025-06-10T00:00:00.000Z",
    "startTime": "17:00:00",
    "status": "pending",
    "notes": None,
}


def make_http_store(handler, requests: List[httpx.Request]) -> HttpBookingStore:
    def recording(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return handler(request)

    return HttpBookingStore(
        base_url="http://clinic.test/api",
        api_token="secret",
        transport=httpx.MockTransport(recording),
    )


async def test_http_store_lists_and_skips_malformed_items() -> None:
    requests: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        body = {"success": True, "data": {"bookings": [API_BOOKING, {"unexpected": True}]}}
        return httpx.Response(200, json=body)

    store = make_http_store(handler, requests)
    result = await store.list(date(2025, 6, 9), date(2025, 6, 15))

    assert result.success
    assert len(result.data) == 1
    booking = result.data[0]
    assert booking.id == 5
    assert booking.patient_id == 10
    assert booking.date == TUESDAY
    assert booking.start_time == "17:00"
    assert booking.status == BookingStatus.SCHEDULED

    request = requests[0]
    assert request.method == "GET"
    assert request.url.path == "/api/bookings"
    assert request.url.params["startDate"] == "2025-06-09"
    assert request.url.params["endDate"] == "2025-06-15"
    assert request.headers["Authorization"] == "Bearer secret"


async def test_http_store_create_sends_api_field_names() -> None:
    requests: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(201, json={"success": True, "data": {"booking": API_BOOKING}})

    store = make_http_store(handler, requests)
    draft = BookingDraft(patient_id=10, therapy_id=1, date=TUESDAY, start_time="17:00")
    result = await store.create(draft)

    assert result.success
    assert result.data.id == 5
    sent: Dict[str, Any] = json.loads(requests[0].content)
    assert sent == {
        "clientId": 10,
        "serviceId": 1,
        "date": "2025-06-10",
        "startTime": "17:00",
        "status": "scheduled",
    }


async def test_http_store_update_routes_status_changes() -> None:
    requests: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"success": True, "data": {"booking": API_BOOKING}})

    store = make_http_store(handler, requests)
    await store.update(5, {"status": BookingStatus.COMPLETED})
    await store.update(5, {"date": date(2025, 6, 11), "start_time": "18:00"})

    assert (requests[0].method, requests[0].url.path) == ("PATCH", "/api/bookings/5/status")
    assert json.loads(requests[0].content) == {"status": "completed"}
    assert (requests[1].method, requests[1].url.path) == ("PUT", "/api/bookings/5")
    assert json.loads(requests[1].content) == {"date": "2025-06-11", "startTime": "18:00"}


async def test_http_store_reports_api_errors() -> None:
    requests: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={"success": False, "message": "Agendamento não encontrado"})

    store = make_http_store(handler, requests)
    result = await store.delete(5)

    assert not result.success
    assert result.message == "Agendamento não encontrado"


async def test_http_store_reports_transport_errors() -> None:
    requests: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    store = make_http_store(handler, requests)
    result = await store.list(TUESDAY, TUESDAY)

    assert not result.success
    assert result.message == "Booking service unavailable"
