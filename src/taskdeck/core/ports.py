# src/taskdeck/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The core depends on Protocols instead of concrete implementations.
This keeps storage/directory/audio swappable and makes testing easier.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol

Document = dict[str, Any]
# Persisted shape of a task or sprint (camelCase keys, ISO timestamps).


class TaskPersistence(Protocol):
    """
    Storage-side port for tasks.

    update_task receives only the changed fields (e.g. {"subtasks": [...], "updatedAt": ...}).
    """

    def list_tasks(self) -> list[Document]: ...
    def create_task(self, doc: Document) -> str: ...
    def update_task(self, task_id: str, fields: Document) -> None: ...
    def delete_task(self, task_id: str) -> None: ...


class SprintPersistence(Protocol):
    def list_sprints(self) -> list[Document]: ...
    def create_sprint(self, doc: Document) -> str: ...
    def update_sprint(self, sprint_id: str, fields: Document) -> None: ...
    def delete_sprint(self, sprint_id: str) -> None: ...


class Persistence(TaskPersistence, SprintPersistence, Protocol):
    """Both collections behind one handle (what the entity store is given)."""


@dataclass(slots=True, frozen=True)
class UserInfo:
    display_name: str
    photo_url: str | None = None


class Directory(Protocol):
    """
    Identity/directory lookups used for presentation only.

    Never consulted for authorization decisions.
    """

    def resolve_user(self, user_id: str) -> UserInfo | None: ...
    def resolve_app(self, app_id: str) -> str | None: ...


class CuePlayer(Protocol):
    """Fire-and-forget audio/visual signals. Failures must not affect task state."""

    def play_completion_cue(self) -> None: ...
    def play_alarm_cue(self) -> None: ...
    def stop_alarm_cue(self) -> None: ...


class Clock(Protocol):
    def now(self) -> datetime: ...
