"""Scheduling error taxonomy."""

from __future__ import annotations


class SchedulingError(Exception):
    """Base class for expected scheduling failures."""

    code = "scheduling_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(SchedulingError):
    """A referenced bundle, booking, patient or therapy does not exist."""

    code = "not_found"


class ValidationError(SchedulingError):
    """Malformed input to an operation."""

    code = "validation_error"


class SlotOverflowError(ValidationError):
    """The computed start time falls at or past midnight."""

    code = "slot_overflow"


class StoreError(SchedulingError):
    """The booking store adapter reported a failure."""

    code = "store_error"


class WorkspaceBusyError(SchedulingError):
    """Another request holds the workspace lock."""

    code = "workspace_busy"
