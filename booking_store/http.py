"""Booking store backed by the clinic's REST bookings API."""

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Dict, List, Optional

import httpx

from agenda.services.domain import Booking, BookingDraft, StoreResult

LOGGER = logging.getLogger(__name__)

# Domain field name -> API field name.
_API_FIELDS = {
    "patient_id": "clientId",
    "therapy_id": "serviceId",
    "date": "date",
    "start_time": "startTime",
    "status": "status",
    "notes": "notes",
}

# The API still reports new bookings as "pending".
_STATUS_ALIASES = {"pending": "scheduled"}


class HttpBookingStore:
    """Adapter for the ``/bookings`` endpoints of the clinic API."""

    def __init__(
        self,
        *,
        base_url: str,
        api_token: Optional[str] = None,
        timeout_seconds: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_token = api_token
        self._timeout = timeout_seconds
        self._transport = transport

    # ---------------------------------------------------------------------
    # Public API
    # ---------------------------------------------------------------------
    async def list(self, start: date, end: date) -> StoreResult:
        params = {"startDate": start.isoformat(), "endDate": end.isoformat()}
        payload = await self._request("GET", "/bookings", params=params)
        if not payload.success:
            return payload

        items = self._unwrap(payload.data, "bookings") or []
        bookings: List[Booking] = []
        for item in items:
            booking = self._coerce_booking(item)
            if booking is None:
                LOGGER.debug("Skipping malformed booking payload: %s", item)
                continue
            bookings.append(booking)
        return StoreResult(success=True, data=bookings)

    async def create(self, draft: BookingDraft) -> StoreResult:
        body = self._to_api(draft.model_dump())
        payload = await self._request("POST", "/bookings", json=body)
        return self._booking_result(payload)

    async def update(self, booking_id: int, fields: Dict[str, Any]) -> StoreResult:
        if set(fields) == {"status"}:
            body = self._to_api(fields)
            payload = await self._request("PATCH", f"/bookings/{booking_id}/status", json=body)
        else:
            payload = await self._request("PUT", f"/bookings/{booking_id}", json=self._to_api(fields))
        return self._booking_result(payload)

    async def delete(self, booking_id: int) -> StoreResult:
        payload = await self._request("DELETE", f"/bookings/{booking_id}")
        if not payload.success:
            return payload
        return StoreResult(success=True, data=booking_id, message=payload.message)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _http_client(self) -> httpx.AsyncClient:
        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        if self.api_token:
            headers["Authorization"] = f"Bearer {self.api_token}"
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=self._timeout,
            transport=self._transport,
        )

    async def _request(self, method: str, path: str, **kwargs: Any) -> StoreResult:
        LOGGER.info("bookings api: %s %s", method, path)
        try:
            async with self._http_client() as client:
                response = await client.request(method, path, **kwargs)
                body = response.json() if response.content else {}
        except httpx.HTTPError as exc:
            LOGGER.error("bookings api %s %s failed: %s", method, path, exc)
            return StoreResult(success=False, message="Booking service unavailable")
        except ValueError as exc:
            LOGGER.error("bookings api %s %s returned invalid JSON: %s", method, path, exc)
            return StoreResult(success=False, message="Invalid response from booking service")

        if not isinstance(body, dict):
            body = {}
        if response.is_error or not body.get("success", False):
            LOGGER.error(
                "bookings api %s %s rejected: status=%s body=%s",
                method,
                path,
                response.status_code,
                response.text,
            )
            return StoreResult(
                success=False,
                message=body.get("message") or f"Booking service error ({response.status_code})",
            )
        return StoreResult(success=True, data=body.get("data"), message=body.get("message"))

    def _booking_result(self, payload: StoreResult) -> StoreResult:
        if not payload.success:
            return payload
        booking = self._coerce_booking(self._unwrap(payload.data, "booking"))
        if booking is None:
            return StoreResult(success=False, message="Booking service returned no booking")
        return StoreResult(success=True, data=booking, message=payload.message)

    @staticmethod
    def _unwrap(data: Any, key: str) -> Any:
        if isinstance(data, dict) and key in data:
            return data[key]
        return data

    @staticmethod
    def _to_api(fields: Dict[str, Any]) -> Dict[str, Any]:
        body: Dict[str, Any] = {}
        for field, value in fields.items():
            if field not in _API_FIELDS or value is None:
                continue
            if isinstance(value, date):
                value = value.isoformat()
            body[_API_FIELDS[field]] = getattr(value, "value", value)
        return body

    @staticmethod
    def _coerce_booking(item: Any) -> Optional[Booking]:
        if not isinstance(item, dict):
            return None

        status = str(item.get("status") or "scheduled").lower()
        try:
            return Booking(
                id=item["id"],
                patient_id=item.get("clientId") or item.get("client_id") or item.get("patient_id"),
                therapy_id=item.get("serviceId") or item.get("service_id") or item.get("therapy_id"),
                date=str(item.get("date"))[:10],
                start_time=str(item.get("startTime") or item.get("start_time"))[:5],
                status=_STATUS_ALIASES.get(status, status),
                notes=item.get("notes"),
            )
        except (KeyError, ValueError) as exc:
            LOGGER.debug("Unable to parse booking payload: %s", exc)
            return None
