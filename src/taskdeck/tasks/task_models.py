# src/taskdeck/tasks/task_models.py

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from enum import StrEnum
from typing import Any


class TaskStatus(StrEnum):
    """
    Task lifecycle status.

    backlog -> open -> in-progress <-> paused -> completed, open -> closed,
    completed/closed -> open (reopen). Transitions are operator-initiated only.
    """

    BACKLOG = "backlog"
    OPEN = "open"
    IN_PROGRESS = "in-progress"
    PAUSED = "paused"
    COMPLETED = "completed"
    CLOSED = "closed"

    @classmethod
    def from_db(cls, raw: str | None) -> TaskStatus:
        if not raw:
            return cls.OPEN
        try:
            return cls(raw)
        except ValueError:
            return cls.OPEN


# Statuses the alarm monitor ignores for top-level tasks.
RESOLVED_STATUSES: frozenset[TaskStatus] = frozenset({TaskStatus.COMPLETED, TaskStatus.CLOSED})


class Priority(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def from_db(cls, raw: str | None) -> Priority:
        if not raw:
            return cls.MEDIUM
        try:
            return cls(raw)
        except ValueError:
            return cls.MEDIUM


class SprintStatus(StrEnum):
    PLANNING = "planning"
    ACTIVE = "active"
    COMPLETED = "completed"

    @classmethod
    def from_db(cls, raw: str | None) -> SprintStatus:
        if not raw:
            return cls.PLANNING
        try:
            return cls(raw)
        except ValueError:
            return cls.PLANNING


def parse_timestamp(value: Any) -> datetime | None:
    """
    Coerce a stored/user-supplied timestamp into an aware datetime.

    Accepts datetime, date and ISO-8601 strings ("2024-05-01T14:00", "...Z").
    Naive values are taken as UTC. Missing or malformed input returns None.
    """
    if value is None:
        return None

    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        raw = value.strip()
        if not raw:
            return None
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(raw)
        except ValueError:
            return None
    else:
        return None

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt


def format_timestamp(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


@dataclass(slots=True, frozen=True)
class Actor:
    """Caller identity as supplied by the host (never looked up by the core)."""

    user_id: str
    display_name: str = ""
    photo_url: str | None = None
    is_admin: bool = False


@dataclass(slots=True)
class Comment:
    id: str
    text: str
    created_at: datetime
    created_by: str
    created_by_name: str
    created_by_photo_url: str | None = None
    # Ordered, duplicate-free: behaves as a set of user ids.
    likes: list[str] = field(default_factory=list)

    def to_doc(self) -> dict[str, Any]:
        doc: dict[str, Any] = {
            "id": self.id,
            "text": self.text,
            "createdAt": format_timestamp(self.created_at),
            "createdBy": self.created_by,
            "createdByName": self.created_by_name,
            "likes": list(self.likes),
        }
        if self.created_by_photo_url:
            doc["createdByPhotoURL"] = self.created_by_photo_url
        return doc

    @classmethod
    def from_doc(cls, doc: dict[str, Any]) -> Comment:
        likes_raw = doc.get("likes") or []
        likes: list[str] = []
        for uid in likes_raw:
            s = str(uid)
            if s not in likes:
                likes.append(s)
        return cls(
            id=str(doc.get("id") or ""),
            text=str(doc.get("text") or ""),
            created_at=parse_timestamp(doc.get("createdAt")) or datetime.fromtimestamp(0, UTC),
            created_by=str(doc.get("createdBy") or ""),
            created_by_name=str(doc.get("createdByName") or ""),
            created_by_photo_url=doc.get("createdByPhotoURL") or None,
            likes=likes,
        )


@dataclass(slots=True)
class Subtask:
    id: str
    title: str
    completed: bool = False
    due_date: datetime | None = None
    comments: list[Comment] = field(default_factory=list)
    sprint_id: str | None = None

    def to_doc(self) -> dict[str, Any]:
        doc: dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "completed": self.completed,
            "comments": [c.to_doc() for c in self.comments],
        }
        if self.due_date is not None:
            doc["dueDate"] = format_timestamp(self.due_date)
        if self.sprint_id:
            doc["sprintId"] = self.sprint_id
        return doc

    @classmethod
    def from_doc(cls, doc: dict[str, Any]) -> Subtask:
        return cls(
            id=str(doc.get("id") or ""),
            title=str(doc.get("title") or ""),
            completed=bool(doc.get("completed", False)),
            due_date=parse_timestamp(doc.get("dueDate")),
            comments=[Comment.from_doc(c) for c in (doc.get("comments") or []) if isinstance(c, dict)],
            sprint_id=doc.get("sprintId") or None,
        )


@dataclass(slots=True)
class Task:
    id: str
    title: str
    description: str
    priority: Priority
    status: TaskStatus
    # Always set for tasks created through the store; None only for corrupt stored records.
    due_date: datetime | None

    created_at: datetime
    updated_at: datetime
    created_by: str
    created_by_name: str = ""

    assigned_to: str | None = None
    app_id: str | None = None
    sprint_id: str | None = None

    subtasks: list[Subtask] = field(default_factory=list)
    comments: list[Comment] = field(default_factory=list)

    # Presentation enrichment (directory lookups); not persisted.
    assigned_to_name: str = ""
    assigned_to_photo_url: str | None = None
    app_name: str = ""

    def find_subtask(self, subtask_id: str) -> Subtask | None:
        for st in self.subtasks:
            if st.id == subtask_id:
                return st
        return None

    def to_doc(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "priority": self.priority.value,
            "status": self.status.value,
            "dueDate": format_timestamp(self.due_date),
            "assignedTo": self.assigned_to or "",
            "appId": self.app_id or "",
            "sprintId": self.sprint_id,
            "createdAt": format_timestamp(self.created_at),
            "updatedAt": format_timestamp(self.updated_at),
            "createdBy": self.created_by,
            "createdByName": self.created_by_name,
            "subtasks": [st.to_doc() for st in self.subtasks],
            "comments": [c.to_doc() for c in self.comments],
        }

    @classmethod
    def from_doc(cls, doc: dict[str, Any]) -> Task:
        epoch = datetime.fromtimestamp(0, UTC)
        created_at = parse_timestamp(doc.get("createdAt")) or epoch
        return cls(
            id=str(doc.get("id") or ""),
            title=str(doc.get("title") or ""),
            description=str(doc.get("description") or ""),
            priority=Priority.from_db(doc.get("priority")),
            status=TaskStatus.from_db(doc.get("status")),
            due_date=parse_timestamp(doc.get("dueDate")),
            created_at=created_at,
            updated_at=parse_timestamp(doc.get("updatedAt")) or created_at,
            created_by=str(doc.get("createdBy") or ""),
            created_by_name=str(doc.get("createdByName") or ""),
            assigned_to=doc.get("assignedTo") or None,
            app_id=doc.get("appId") or None,
            sprint_id=doc.get("sprintId") or None,
            subtasks=[Subtask.from_doc(s) for s in (doc.get("subtasks") or []) if isinstance(s, dict)],
            comments=[Comment.from_doc(c) for c in (doc.get("comments") or []) if isinstance(c, dict)],
        )


@dataclass(slots=True)
class Sprint:
    id: str
    name: str
    start_date: date
    end_date: date
    status: SprintStatus
    created_at: datetime
    created_by: str
    created_by_name: str = ""
    description: str = ""
    goal: str = ""
    updated_at: datetime | None = None

    def to_doc(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "startDate": self.start_date.isoformat(),
            "endDate": self.end_date.isoformat(),
            "status": self.status.value,
            "createdAt": format_timestamp(self.created_at),
            "createdBy": self.created_by,
            "createdByName": self.created_by_name,
            "description": self.description,
            "goal": self.goal,
            "updatedAt": format_timestamp(self.updated_at),
        }

    @classmethod
    def from_doc(cls, doc: dict[str, Any]) -> Sprint:
        epoch = datetime.fromtimestamp(0, UTC)
        created_at = parse_timestamp(doc.get("createdAt")) or epoch
        start = parse_timestamp(doc.get("startDate")) or created_at
        end = parse_timestamp(doc.get("endDate")) or start
        return cls(
            id=str(doc.get("id") or ""),
            name=str(doc.get("name") or ""),
            start_date=start.date(),
            end_date=end.date(),
            status=SprintStatus.from_db(doc.get("status")),
            created_at=created_at,
            created_by=str(doc.get("createdBy") or ""),
            created_by_name=str(doc.get("createdByName") or ""),
            description=str(doc.get("description") or ""),
            goal=str(doc.get("goal") or ""),
            updated_at=parse_timestamp(doc.get("updatedAt")),
        )
