"""Per-workspace scheduling state persisted in Redis.

A workspace is one front-end session: its pending-treatment ledger, the
undo/redo history of the visible booking list and the custom holidays the
staff added. State is loaded at the start of a request and saved at the end,
while the request holds the workspace lock.
"""

from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from copy import deepcopy
from typing import Any, Dict, Iterator, List, Optional

from pydantic import ValidationError as PydanticValidationError
from redis.exceptions import LockError

from agenda.services.cache import cache_delete, cache_get, cache_lock, cache_set
from agenda.services.errors import WorkspaceBusyError
from agenda.services.history import UndoRedoController
from agenda.services.holidays import Holiday, HolidayCalendar
from agenda.services.ledger import PendingTreatmentLedger

LOGGER = logging.getLogger(__name__)
WORKSPACE_PREFIX = "agenda:workspace:"
WORKSPACE_TTL_SECONDS = 86400
WORKSPACE_LOCK_TIMEOUT_SECONDS = 30.0
WORKSPACE_LOCK_WAIT_SECONDS = 10.0

DEFAULT_WORKSPACE_STATE: Dict[str, Any] = {
    "ledger": {},
    "history": {},
    "custom_holidays": [],
    "metadata": {},
}


def _workspace_key(workspace_id: str) -> str:
    return f"{WORKSPACE_PREFIX}{workspace_id}"


def new_workspace_state() -> Dict[str, Any]:
    """Return an isolated copy of the default workspace payload."""

    return deepcopy(DEFAULT_WORKSPACE_STATE)


def load_workspace(workspace_id: str) -> Dict[str, Any]:
    """Load a workspace from Redis, creating a new one if missing."""

    raw_state = cache_get(_workspace_key(workspace_id))
    if raw_state is None:
        LOGGER.debug("Workspace %s not found; creating new state", workspace_id)
        return new_workspace_state()

    try:
        state: Dict[str, Any] = json.loads(raw_state)
    except json.JSONDecodeError:
        LOGGER.warning("Workspace %s payload invalid JSON; resetting", workspace_id)
        return new_workspace_state()

    for key, default in DEFAULT_WORKSPACE_STATE.items():
        state.setdefault(key, deepcopy(default))
    return state


def save_workspace(
    workspace_id: str,
    state: Dict[str, Any],
    ttl_seconds: int = WORKSPACE_TTL_SECONDS,
) -> None:
    """Persist workspace state to Redis with a TTL."""

    cache_set(
        _workspace_key(workspace_id),
        json.dumps(state),
        ex=ttl_seconds,
    )


@contextmanager
def workspace_lock(
    workspace_id: str,
    *,
    timeout: float = WORKSPACE_LOCK_TIMEOUT_SECONDS,
    wait: float = WORKSPACE_LOCK_WAIT_SECONDS,
) -> Iterator[None]:
    """Serialise load, act and save for one workspace.

    Raises ``WorkspaceBusyError`` when the lock is not free within ``wait``
    seconds. The lock expires after ``timeout`` seconds if never released.
    """

    lock = cache_lock(f"{_workspace_key(workspace_id)}:lock", timeout=timeout, blocking_timeout=wait)
    if not lock.acquire():
        LOGGER.warning("Workspace %s still locked after %ss", workspace_id, wait)
        raise WorkspaceBusyError(f"Workspace {workspace_id} is busy, try again")
    try:
        yield
    finally:
        try:
            lock.release()
        except LockError:
            LOGGER.warning("Workspace %s lock expired before release", workspace_id)


def delete_workspace(workspace_id: str) -> None:
    """Remove a workspace from Redis."""

    cache_delete(_workspace_key(workspace_id))


def ledger_from_state(state: Dict[str, Any]) -> PendingTreatmentLedger:
    try:
        return PendingTreatmentLedger.from_dict(state.get("ledger"))
    except (PydanticValidationError, TypeError, ValueError) as exc:
        LOGGER.warning("Workspace ledger invalid; starting empty: %s", exc)
        return PendingTreatmentLedger()


def history_from_state(state: Dict[str, Any], limit: int) -> UndoRedoController:
    try:
        return UndoRedoController.from_dict(state.get("history"), limit=limit)
    except (PydanticValidationError, TypeError, ValueError) as exc:
        LOGGER.warning("Workspace history invalid; starting empty: %s", exc)
        return UndoRedoController(limit=limit)


def holidays_from_state(state: Dict[str, Any]) -> List[Holiday]:
    holidays: List[Holiday] = []
    for item in state.get("custom_holidays") or []:
        try:
            holidays.append(Holiday.model_validate(item))
        except PydanticValidationError:
            LOGGER.warning("Dropping invalid custom holiday: %s", item)
    return holidays


def update_state(
    state: Dict[str, Any],
    *,
    ledger: Optional[PendingTreatmentLedger] = None,
    history: Optional[UndoRedoController] = None,
    calendar: Optional[HolidayCalendar] = None,
) -> None:
    """Write the given components back into the workspace payload."""

    if ledger is not None:
        state["ledger"] = ledger.to_dict()
    if history is not None:
        state["history"] = history.to_dict()
    if calendar is not None:
        state["custom_holidays"] = [
            holiday.model_dump(mode="json") for holiday in calendar.custom_holidays
        ]
