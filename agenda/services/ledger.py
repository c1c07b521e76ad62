"""Per-patient ledger of contracted but unscheduled treatment sessions."""

from __future__ import annotations

import logging
import uuid
from datetime import date
from typing import Any, Dict, List, Optional

from agenda.services.domain import PendingTreatment
from agenda.services.errors import NotFoundError

LOGGER = logging.getLogger(__name__)


class PendingTreatmentLedger:
    """Bundles of pending sessions keyed by patient id.

    A bundle whose count drops to zero is removed, never kept at zero.
    """

    def __init__(self, entries: Optional[Dict[int, List[PendingTreatment]]] = None) -> None:
        self._entries: Dict[int, List[PendingTreatment]] = {
            patient_id: list(bundles) for patient_id, bundles in (entries or {}).items() if bundles
        }

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def for_patient(self, patient_id: int) -> List[PendingTreatment]:
        return list(self._entries.get(patient_id, []))

    def get(self, patient_id: int, treatment_id: str) -> Optional[PendingTreatment]:
        for bundle in self._entries.get(patient_id, []):
            if bundle.id == treatment_id:
                return bundle
        return None

    def find_by_therapy(self, patient_id: int, therapy_id: int) -> Optional[PendingTreatment]:
        for bundle in self._entries.get(patient_id, []):
            if bundle.therapy_id == therapy_id:
                return bundle
        return None

    def all(self) -> List[PendingTreatment]:
        return [bundle for bundles in self._entries.values() for bundle in bundles]

    def total_pending(self, patient_id: int) -> int:
        return sum(bundle.sessions_pending for bundle in self._entries.get(patient_id, []))

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------
    def add_session(
        self,
        patient_id: int,
        therapy_id: int,
        *,
        today: Optional[date] = None,
    ) -> PendingTreatment:
        """Add one session for the pair, merging into an existing bundle."""

        existing = self.find_by_therapy(patient_id, therapy_id)
        if existing is not None:
            updated = existing.model_copy(
                update={"sessions_pending": existing.sessions_pending + 1}
            )
            self._replace(updated)
            return updated

        bundle = PendingTreatment(
            id=uuid.uuid4().hex,
            patient_id=patient_id,
            therapy_id=therapy_id,
            sessions_pending=1,
            contracted_date=today or date.today(),
        )
        self._entries.setdefault(patient_id, []).append(bundle)
        LOGGER.debug("Created bundle %s for patient=%s therapy=%s", bundle.id, patient_id, therapy_id)
        return bundle

    def adjust_sessions(
        self,
        patient_id: int,
        treatment_id: str,
        delta: int,
    ) -> Optional[PendingTreatment]:
        """Apply ``delta``; returns the updated bundle, or None once removed."""

        bundle = self.get(patient_id, treatment_id)
        if bundle is None:
            raise NotFoundError(f"Pending treatment {treatment_id} not found")

        remaining = bundle.sessions_pending + delta
        if remaining <= 0:
            self.remove(patient_id, treatment_id)
            return None

        updated = bundle.model_copy(update={"sessions_pending": remaining})
        self._replace(updated)
        return updated

    def consume_one_session(self, patient_id: int, treatment_id: str) -> bool:
        try:
            self.adjust_sessions(patient_id, treatment_id, -1)
        except NotFoundError:
            LOGGER.warning(
                "Cannot consume session: bundle %s of patient %s is gone",
                treatment_id,
                patient_id,
            )
            return False
        return True

    def remove(self, patient_id: int, treatment_id: str) -> bool:
        bundles = self._entries.get(patient_id, [])
        kept = [bundle for bundle in bundles if bundle.id != treatment_id]
        if len(kept) == len(bundles):
            return False
        if kept:
            self._entries[patient_id] = kept
        else:
            del self._entries[patient_id]
        return True

    def _replace(self, bundle: PendingTreatment) -> None:
        self._entries[bundle.patient_id] = [
            bundle if item.id == bundle.id else item
            for item in self._entries.get(bundle.patient_id, [])
        ]

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------
    def to_dict(self) -> Dict[str, Any]:
        return {
            str(patient_id): [bundle.model_dump(mode="json") for bundle in bundles]
            for patient_id, bundles in self._entries.items()
        }

    @classmethod
    def from_dict(cls, payload: Optional[Dict[str, Any]]) -> "PendingTreatmentLedger":
        entries: Dict[int, List[PendingTreatment]] = {}
        for patient_id, bundles in (payload or {}).items():
            entries[int(patient_id)] = [
                PendingTreatment.model_validate(bundle)
                for bundle in bundles
                if bundle.get("sessions_pending", 0) > 0
            ]
        return cls(entries)
