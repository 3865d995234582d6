# src/taskdeck/core/errors.py

"""
Error taxonomy of the tracker core.

NotFound / ValidationFailed / PermissionDenied are raised before any local
state changes. PersistenceFailed is raised after the optimistic local update
already applied; the caller decides whether to retry or warn the operator.
"""

from __future__ import annotations


class TrackerError(Exception):
    """Base class for all tracker errors."""

    def __init__(self, message: str = "Tracker error") -> None:
        super().__init__(message)


class NotFound(TrackerError):
    """A task/subtask/sprint/comment id is not in the current store snapshot."""

    def __init__(self, kind: str, entity_id: str, message: str | None = None) -> None:
        self.kind = kind
        self.entity_id = entity_id
        super().__init__(message or f"{kind} {entity_id!r} not found")


class PermissionDenied(TrackerError):
    """Comment deletion attempted by someone who is neither the owner nor an admin."""

    def __init__(self, message: str = "Permission denied") -> None:
        super().__init__(message)


class ValidationFailed(TrackerError):
    """Required field missing or inconsistent (e.g. sprint end before start)."""

    def __init__(self, message: str = "Validation failed") -> None:
        super().__init__(message)


class PersistenceFailed(TrackerError):
    """The storage collaborator rejected a write that was already applied locally."""

    def __init__(
        self,
        *,
        entity_kind: str,
        entity_id: str,
        operation: str,
        message: str | None = None,
    ) -> None:
        self.entity_kind = entity_kind
        self.entity_id = entity_id
        self.operation = operation
        super().__init__(
            message or f"Persisting {operation} of {entity_kind} {entity_id!r} failed"
        )
