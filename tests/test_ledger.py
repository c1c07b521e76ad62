"""Tests for the pending treatment ledger."""

from datetime import date

import pytest

from agenda.services.errors import NotFoundError
from agenda.services.ledger import PendingTreatmentLedger


def test_same_therapy_twice_merges_into_one_bundle() -> None:
    ledger = PendingTreatmentLedger()

    first = ledger.add_session(10, 1, today=date(2025, 6, 1))
    second = ledger.add_session(10, 1)

    assert second.id == first.id
    assert second.sessions_pending == 2
    assert second.contracted_date == date(2025, 6, 1)
    assert len(ledger.for_patient(10)) == 1


def test_different_therapies_get_their_own_bundles() -> None:
    ledger = PendingTreatmentLedger()

    ledger.add_session(10, 1)
    ledger.add_session(10, 2)
    ledger.add_session(11, 1)

    assert len(ledger.for_patient(10)) == 2
    assert ledger.total_pending(10) == 2
    assert len(ledger.all()) == 3


def test_adjust_to_zero_removes_the_bundle() -> None:
    ledger = PendingTreatmentLedger()
    bundle = ledger.add_session(10, 1)
    ledger.add_session(10, 1)

    assert ledger.adjust_sessions(10, bundle.id, 3).sessions_pending == 5
    assert ledger.adjust_sessions(10, bundle.id, -10) is None
    assert ledger.get(10, bundle.id) is None
    assert ledger.for_patient(10) == []


def test_adjust_unknown_bundle() -> None:
    with pytest.raises(NotFoundError):
        PendingTreatmentLedger().adjust_sessions(10, "missing", 1)


def test_consume_last_session_then_fail() -> None:
    ledger = PendingTreatmentLedger()
    bundle = ledger.add_session(10, 1)

    assert ledger.consume_one_session(10, bundle.id)
    assert ledger.get(10, bundle.id) is None
    assert not ledger.consume_one_session(10, bundle.id)


def test_serialization_keeps_only_positive_bundles() -> None:
    ledger = PendingTreatmentLedger()
    bundle = ledger.add_session(10, 1, today=date(2025, 6, 1))
    ledger.add_session(10, 1)

    payload = ledger.to_dict()
    assert list(payload) == ["10"]

    payload["11"] = [
        {
            "id": "stale",
            "patient_id": 11,
            "therapy_id": 2,
            "sessions_pending": 0,
            "contracted_date": "2025-05-01",
        }
    ]
    restored = PendingTreatmentLedger.from_dict(payload)

    assert restored.get(10, bundle.id).sessions_pending == 2
    assert restored.for_patient(11) == []
    assert PendingTreatmentLedger.from_dict(None).all() == []
