"""Tests for Redis-backed workspace state."""

from datetime import date
from typing import Dict, List, Optional

import pytest
from redis.exceptions import LockNotOwnedError

import agenda.services.workspace as workspace_mod
from agenda.services.errors import WorkspaceBusyError
from agenda.services.history import UndoRedoController
from agenda.services.holidays import HolidayCalendar
from agenda.services.ledger import PendingTreatmentLedger
from conftest import make_booking


@pytest.fixture
def ttls() -> Dict[str, Optional[int]]:
    return {}


@pytest.fixture
def cache_store(monkeypatch, ttls) -> Dict[str, str]:
    store: Dict[str, str] = {}

    def fake_cache_set(key: str, value: str, ex: Optional[int] = None) -> bool:
        store[key] = value
        ttls[key] = ex
        return True

    monkeypatch.setattr(workspace_mod, "cache_set", fake_cache_set)
    monkeypatch.setattr(workspace_mod, "cache_get", store.get)
    monkeypatch.setattr(workspace_mod, "cache_delete", lambda key: store.pop(key, None) is not None)
    return store


def test_missing_workspace_starts_empty(cache_store) -> None:
    state = workspace_mod.load_workspace("ws")

    assert state == workspace_mod.new_workspace_state()
    assert state is not workspace_mod.DEFAULT_WORKSPACE_STATE


def test_invalid_json_resets_the_workspace(cache_store) -> None:
    cache_store["agenda:workspace:ws"] = "{not json"

    assert workspace_mod.load_workspace("ws")["ledger"] == {}


def test_state_round_trip(cache_store, ttls) -> None:
    ledger = PendingTreatmentLedger()
    bundle = ledger.add_session(10, 1, today=date(2025, 6, 1))
    history = UndoRedoController()
    history.push([make_booking(1, date(2025, 6, 10), "17:00")])
    calendar = HolidayCalendar()
    holiday = calendar.add_custom_holiday("Recesso", date(2025, 6, 10))

    state = workspace_mod.new_workspace_state()
    workspace_mod.update_state(state, ledger=ledger, history=history, calendar=calendar)
    workspace_mod.save_workspace("ws", state, ttl_seconds=600)

    loaded = workspace_mod.load_workspace("ws")
    assert workspace_mod.ledger_from_state(loaded).get(10, bundle.id) == bundle
    assert workspace_mod.history_from_state(loaded, limit=50).current[0].id == 1
    assert workspace_mod.holidays_from_state(loaded) == [holiday]
    assert ttls["agenda:workspace:ws"] == 600


def test_corrupt_components_fall_back_to_empty(cache_store) -> None:
    state = {
        "ledger": {"10": [{"id": "x", "sessions_pending": 2}]},
        "history": {"states": [[{"id": "not-a-number"}]]},
        "custom_holidays": [{"name": "no date"}],
    }

    assert workspace_mod.ledger_from_state(state).all() == []
    assert workspace_mod.history_from_state(state, limit=5).current == ()
    assert workspace_mod.holidays_from_state(state) == []


def test_delete_workspace(cache_store) -> None:
    workspace_mod.save_workspace("ws", workspace_mod.new_workspace_state())

    workspace_mod.delete_workspace("ws")

    assert "agenda:workspace:ws" not in cache_store


class RecordingLock:
    def __init__(self, free: bool = True, expired: bool = False) -> None:
        self.free = free
        self.expired = expired
        self.events: List[str] = []

    def acquire(self) -> bool:
        self.events.append("acquire")
        return self.free

    def release(self) -> None:
        self.events.append("release")
        if self.expired:
            raise LockNotOwnedError("Cannot release a lock that's no longer owned")


def test_workspace_lock_wraps_the_block(monkeypatch) -> None:
    lock = RecordingLock()
    requested = {}

    def fake_cache_lock(key: str, timeout: float, blocking_timeout: float) -> RecordingLock:
        requested.update(key=key, timeout=timeout, blocking_timeout=blocking_timeout)
        return lock

    monkeypatch.setattr(workspace_mod, "cache_lock", fake_cache_lock)

    with workspace_mod.workspace_lock("ws", timeout=5, wait=2):
        lock.events.append("work")

    assert lock.events == ["acquire", "work", "release"]
    assert requested == {"key": "agenda:workspace:ws:lock", "timeout": 5, "blocking_timeout": 2}


def test_workspace_lock_releases_when_the_block_fails(monkeypatch) -> None:
    lock = RecordingLock()
    monkeypatch.setattr(workspace_mod, "cache_lock", lambda *args, **kwargs: lock)

    with pytest.raises(RuntimeError):
        with workspace_mod.workspace_lock("ws"):
            raise RuntimeError("boom")

    assert lock.events == ["acquire", "release"]


def test_busy_workspace_raises(monkeypatch) -> None:
    lock = RecordingLock(free=False)
    monkeypatch.setattr(workspace_mod, "cache_lock", lambda *args, **kwargs: lock)

    with pytest.raises(WorkspaceBusyError):
        with workspace_mod.workspace_lock("ws"):
            pass

    assert lock.events == ["acquire"]


def test_expired_lock_release_is_logged(monkeypatch, caplog) -> None:
    lock = RecordingLock(expired=True)
    monkeypatch.setattr(workspace_mod, "cache_lock", lambda *args, **kwargs: lock)

    with workspace_mod.workspace_lock("ws"):
        pass

    assert "lock expired" in caplog.text
