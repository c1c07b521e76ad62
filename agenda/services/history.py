"""Bounded undo/redo history of booking-list snapshots."""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Tuple

from agenda.services.domain import Booking

Snapshot = Tuple[Booking, ...]

DEFAULT_HISTORY_LIMIT = 50


class UndoRedoController:
    """Linear history: pushing after an undo discards the redo branch."""

    def __init__(
        self,
        initial: Iterable[Booking] = (),
        *,
        limit: int = DEFAULT_HISTORY_LIMIT,
    ) -> None:
        if limit < 1:
            raise ValueError("history limit must be at least 1")
        self.limit = limit
        self._states: List[Snapshot] = [tuple(initial)]
        self._index = 0

    @property
    def current(self) -> Snapshot:
        return self._states[self._index]

    @property
    def can_undo(self) -> bool:
        return self._index > 0

    @property
    def can_redo(self) -> bool:
        return self._index < len(self._states) - 1

    def __len__(self) -> int:
        return len(self._states)

    def push(self, state: Iterable[Booking]) -> Snapshot:
        snapshot = tuple(state)
        del self._states[self._index + 1 :]
        self._states.append(snapshot)
        overflow = len(self._states) - self.limit
        if overflow > 0:
            del self._states[:overflow]
        self._index = len(self._states) - 1
        return snapshot

    def undo(self) -> Optional[Snapshot]:
        if not self.can_undo:
            return None
        self._index -= 1
        return self.current

    def redo(self) -> Optional[Snapshot]:
        if not self.can_redo:
            return None
        self._index += 1
        return self.current

    def reset(self, state: Iterable[Booking]) -> None:
        """Drop all history and start over from ``state``."""

        self._states = [tuple(state)]
        self._index = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "limit": self.limit,
            "index": self._index,
            "states": [
                [booking.model_dump(mode="json") for booking in snapshot]
                for snapshot in self._states
            ],
        }

    @classmethod
    def from_dict(
        cls,
        payload: Optional[Dict[str, Any]],
        *,
        limit: int = DEFAULT_HISTORY_LIMIT,
    ) -> "UndoRedoController":
        controller = cls(limit=limit)
        if not payload or not payload.get("states"):
            return controller

        states = [
            tuple(Booking.model_validate(item) for item in snapshot)
            for snapshot in payload["states"]
        ]
        dropped = max(len(states) - limit, 0)
        controller._states = states[dropped:]
        index = int(payload.get("index", 0)) - dropped
        controller._index = min(max(index, 0), len(controller._states) - 1)
        return controller
