# src/taskdeck/tasks/task_store.py

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Iterable, Mapping
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Generic, TypeVar

from ..core.errors import NotFound, PersistenceFailed, ValidationFailed
from ..core.ports import Clock, CuePlayer, Directory, Persistence
from ..notify.cue_player import safe_cue
from .status import coerce_status, enters_completed, transition
from .task_models import (
    Actor,
    Priority,
    Sprint,
    SprintStatus,
    Subtask,
    Task,
    TaskStatus,
    parse_timestamp,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Python field name -> persisted document key, for fields update_task accepts.
EDITABLE_TASK_FIELDS: dict[str, str] = {
    "title": "title",
    "description": "description",
    "priority": "priority",
    "status": "status",
    "due_date": "dueDate",
    "assigned_to": "assignedTo",
    "app_id": "appId",
}


def new_id() -> str:
    return uuid.uuid4().hex


@dataclass(slots=True)
class MutationResult(Generic[T]):
    """
    Outcome of an optimistic write.

    `entity` is already applied to the local store. `write` resolves when the
    storage collaborator accepted the change, or fails with PersistenceFailed.
    Callers that don't care about durability can ignore `write`.
    """

    entity: T
    write: Future[None]

    def wait(self, timeout: float | None = None) -> T:
        """Block until persisted; re-raises PersistenceFailed. Local state is kept either way."""
        self.write.result(timeout=timeout)
        return self.entity

    @classmethod
    def settled(cls, entity: T) -> MutationResult[T]:
        """Result for a write that had nothing to persist."""
        done: Future[None] = Future()
        done.set_result(None)
        return cls(entity, done)

    @property
    def persisted(self) -> bool:
        return self.write.done() and not self.write.cancelled() and self.write.exception() is None


def require_text(value: Any, field_name: str) -> str:
    text = str(value or "").strip()
    if not text:
        raise ValidationFailed(f"{field_name} is required.")
    return text


def require_due_date(value: Any, field_name: str = "due_date") -> datetime:
    if value is None or value == "":
        raise ValidationFailed(f"{field_name} is required.")
    dt = parse_timestamp(value)
    if dt is None:
        raise ValidationFailed(f"Invalid {field_name}: {value!r} (expected ISO-8601 date/time).")
    return dt


def coerce_priority(value: Priority | str) -> Priority:
    if isinstance(value, Priority):
        return value
    try:
        return Priority(str(value).strip().lower())
    except ValueError:
        raise ValidationFailed(f"Unknown priority {value!r} (expected low, medium or high)") from None


class EntityStore:
    """
    Canonical in-memory collections of tasks (with nested subtasks/comments) and sprints.

    Write protocol:
    - validate (NotFound / ValidationFailed raised with no local effect),
    - apply locally,
    - submit the partial-field write to the persistence executor,
    - return MutationResult(entity, write).

    The store never notifies anyone; callers re-derive views after each write.
    Collections are swapped copy-on-write so a background reader (alarm monitor)
    always iterates a consistent snapshot.
    """

    def __init__(
        self,
        persistence: Persistence,
        *,
        clock: Clock,
        cues: CuePlayer,
        directory: Directory | None = None,
        executor: Executor | None = None,
    ) -> None:
        self._persistence = persistence
        self._clock = clock
        self._cues = cues
        self._directory = directory
        self._owns_executor = executor is None
        self._executor: Executor = executor or ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="taskdeck-persist"
        )

        self._tasks: dict[str, Task] = {}
        self._sprints: dict[str, Sprint] = {}

        self.failed_writes: list[PersistenceFailed] = []

    # ---- lifecycle ----

    def load(self) -> None:
        """Replace local collections with what storage has (newest tasks first)."""
        task_docs = self._persistence.list_tasks()
        sprint_docs = self._persistence.list_sprints()

        tasks: list[Task] = []
        for doc in task_docs:
            try:
                task = Task.from_doc(doc)
            except Exception:
                logger.exception("Skipping unreadable task document id=%s", doc.get("id"))
                continue
            if not task.id:
                continue
            if task.due_date is None:
                logger.warning("Task %s has a missing/malformed due date.", task.id)
            tasks.append(self._enrich(task))
        tasks.sort(key=lambda t: t.created_at, reverse=True)

        sprints = [Sprint.from_doc(d) for d in sprint_docs if d.get("id")]
        sprints.sort(key=lambda s: s.created_at, reverse=True)

        self._tasks = {t.id: t for t in tasks}
        self._sprints = {s.id: s for s in sprints}
        logger.info("EntityStore loaded tasks=%d sprints=%d", len(self._tasks), len(self._sprints))

    def close(self) -> None:
        """Wait for queued writes, then stop the executor (if we own it)."""
        if self._owns_executor:
            self._executor.shutdown(wait=True)

    def now(self) -> datetime:
        return self._clock.now()

    # ---- reads ----

    def tasks(self) -> list[Task]:
        return list(self._tasks.values())

    def get_task(self, task_id: str) -> Task:
        task = self._tasks.get(task_id)
        if task is None:
            raise NotFound("task", task_id)
        return task

    def get_subtask(self, task_id: str, subtask_id: str) -> Subtask:
        task = self.get_task(task_id)
        st = task.find_subtask(subtask_id)
        if st is None:
            raise NotFound("subtask", subtask_id, f"subtask {subtask_id!r} not found on task {task_id!r}")
        return st

    def sprints(self) -> list[Sprint]:
        return list(self._sprints.values())

    def get_sprint(self, sprint_id: str) -> Sprint:
        sprint = self._sprints.get(sprint_id)
        if sprint is None:
            raise NotFound("sprint", sprint_id)
        return sprint

    def has_sprint(self, sprint_id: str | None) -> bool:
        return bool(sprint_id) and sprint_id in self._sprints

    # ---- task writes ----

    def create_task(self, fields: Mapping[str, Any], actor: Actor) -> MutationResult[Task]:
        title = require_text(fields.get("title"), "title")
        due_date = require_due_date(fields.get("due_date"))
        priority = coerce_priority(fields.get("priority") or Priority.MEDIUM)
        status = coerce_status(fields.get("status") or TaskStatus.OPEN)

        sprint_id = fields.get("sprint_id") or None
        if sprint_id and sprint_id not in self._sprints:
            raise NotFound("sprint", sprint_id)

        now = self.now()
        task = Task(
            id=new_id(),
            title=title,
            description=str(fields.get("description") or "").strip(),
            priority=priority,
            status=status,
            due_date=due_date,
            created_at=now,
            updated_at=now,
            created_by=actor.user_id,
            created_by_name=actor.display_name,
            assigned_to=fields.get("assigned_to") or None,
            app_id=fields.get("app_id") or None,
            sprint_id=sprint_id,
        )
        task = self._enrich(task)

        self._tasks = {task.id: task, **self._tasks}
        logger.info("Task created id=%s title=%r due=%s", task.id, task.title, task.due_date)

        doc = task.to_doc()
        write = self._submit("task", task.id, "create", self._persist_create_task, doc)
        return MutationResult(task, write)

    def update_task(self, task_id: str, fields: Mapping[str, Any]) -> MutationResult[Task]:
        current = self.get_task(task_id)

        unknown = set(fields) - set(EDITABLE_TASK_FIELDS)
        if unknown:
            raise ValidationFailed(f"Unknown task field(s): {', '.join(sorted(unknown))}")

        changes: dict[str, Any] = {}
        if "title" in fields:
            changes["title"] = require_text(fields["title"], "title")
        if "description" in fields:
            changes["description"] = str(fields["description"] or "").strip()
        if "priority" in fields:
            changes["priority"] = coerce_priority(fields["priority"])
        if "status" in fields:
            changes["status"] = coerce_status(fields["status"])
        if "due_date" in fields:
            changes["due_date"] = require_due_date(fields["due_date"])
        if "assigned_to" in fields:
            changes["assigned_to"] = fields["assigned_to"] or None
        if "app_id" in fields:
            changes["app_id"] = fields["app_id"] or None

        updated = replace(current, **changes, updated_at=self.now())
        if "assigned_to" in changes or "app_id" in changes:
            updated = self._enrich(updated)

        completing = "status" in changes and enters_completed(current.status, updated.status)
        doc_keys = [EDITABLE_TASK_FIELDS[k] for k in changes] + ["updatedAt"]
        result = self.commit_task(updated, doc_keys)
        if completing:
            safe_cue(self._cues, "play_completion_cue")
        return result

    def change_status(self, task_id: str, new_status: TaskStatus | str) -> MutationResult[Task]:
        current = self.get_task(task_id)
        updated = transition(current, new_status, now=self.now())

        result = self.commit_task(updated, ["status", "updatedAt"])
        logger.info("Task %s status %s -> %s", task_id, current.status.value, updated.status.value)
        if enters_completed(current.status, updated.status):
            safe_cue(self._cues, "play_completion_cue")
        return result

    def delete_task(self, task_id: str) -> MutationResult[Task]:
        """Hard delete; subtasks and comments go with the task."""
        task = self.get_task(task_id)
        self._tasks = {k: v for k, v in self._tasks.items() if k != task_id}
        logger.info("Task deleted id=%s", task_id)
        write = self._submit("task", task_id, "delete", self._persistence.delete_task, task_id)
        return MutationResult(task, write)

    # ---- subtask writes ----

    def add_subtask(
        self,
        task_id: str,
        title: str,
        *,
        due_date: datetime | str | None = None,
        sprint_id: str | None = None,
    ) -> MutationResult[Task]:
        task = self.get_task(task_id)
        clean_title = require_text(title, "title")

        due: datetime | None = None
        if due_date is not None and due_date != "":
            due = require_due_date(due_date)
        if sprint_id and sprint_id not in self._sprints:
            raise NotFound("sprint", sprint_id)

        existing = {st.id for st in task.subtasks}
        sub_id = new_id()[:12]
        while sub_id in existing:
            sub_id = new_id()[:12]

        subtask = Subtask(id=sub_id, title=clean_title, due_date=due, sprint_id=sprint_id or None)
        updated = replace(task, subtasks=[*task.subtasks, subtask], updated_at=self.now())
        return self.commit_task(updated, ["subtasks", "updatedAt"])

    def toggle_subtask(self, task_id: str, subtask_id: str) -> MutationResult[Task]:
        subtask = self.get_subtask(task_id, subtask_id)
        completing = not subtask.completed

        result = self.update_subtask(task_id, subtask_id, lambda st: replace(st, completed=not st.completed))
        if completing:
            safe_cue(self._cues, "play_completion_cue")
        return result

    def set_subtask_due_date(
        self,
        task_id: str,
        subtask_id: str,
        due_date: datetime | str | None,
    ) -> MutationResult[Task]:
        self.get_subtask(task_id, subtask_id)
        due: datetime | None = None
        if due_date is not None and due_date != "":
            due = require_due_date(due_date)
        return self.update_subtask(task_id, subtask_id, lambda st: replace(st, due_date=due))

    def update_subtask(
        self,
        task_id: str,
        subtask_id: str,
        change: Callable[[Subtask], Subtask],
    ) -> MutationResult[Task]:
        """Apply `change` to one subtask and persist the parent's subtask list."""
        task = self.get_task(task_id)
        if task.find_subtask(subtask_id) is None:
            raise NotFound("subtask", subtask_id, f"subtask {subtask_id!r} not found on task {task_id!r}")

        subtasks = [change(st) if st.id == subtask_id else st for st in task.subtasks]
        updated = replace(task, subtasks=subtasks, updated_at=self.now())
        return self.commit_task(updated, ["subtasks", "updatedAt"])

    # ---- low-level commits (used by sprint/comment services) ----

    def commit_task(self, task: Task, doc_keys: Iterable[str]) -> MutationResult[Task]:
        """Store `task` locally and persist only `doc_keys` of its document."""
        if task.id not in self._tasks:
            raise NotFound("task", task.id)

        self._tasks = {k: (task if k == task.id else v) for k, v in self._tasks.items()}

        doc = task.to_doc()
        fields = {k: doc[k] for k in doc_keys}
        write = self._submit("task", task.id, "update", self._persistence.update_task, task.id, fields)
        return MutationResult(task, write)

    def insert_sprint(self, sprint: Sprint) -> MutationResult[Sprint]:
        self._sprints = {sprint.id: sprint, **self._sprints}
        write = self._submit("sprint", sprint.id, "create", self._persist_create_sprint, sprint.to_doc())
        return MutationResult(sprint, write)

    def commit_sprint(self, sprint: Sprint, doc_keys: Iterable[str]) -> MutationResult[Sprint]:
        if sprint.id not in self._sprints:
            raise NotFound("sprint", sprint.id)

        self._sprints = {k: (sprint if k == sprint.id else v) for k, v in self._sprints.items()}

        doc = sprint.to_doc()
        fields = {k: doc[k] for k in doc_keys}
        write = self._submit(
            "sprint", sprint.id, "update", self._persistence.update_sprint, sprint.id, fields
        )
        return MutationResult(sprint, write)

    def discard_sprint(self, sprint_id: str) -> MutationResult[Sprint]:
        sprint = self.get_sprint(sprint_id)
        self._sprints = {k: v for k, v in self._sprints.items() if k != sprint_id}
        write = self._submit("sprint", sprint_id, "delete", self._persistence.delete_sprint, sprint_id)
        return MutationResult(sprint, write)

    def active_sprints(self) -> list[Sprint]:
        return [s for s in self._sprints.values() if s.status == SprintStatus.ACTIVE]

    # ---- helpers ----

    def _persist_create_task(self, doc: dict[str, Any]) -> None:
        stored_id = self._persistence.create_task(doc)
        if stored_id and stored_id != doc["id"]:
            logger.warning("Storage assigned id=%s to task %s; keeping local id.", stored_id, doc["id"])

    def _persist_create_sprint(self, doc: dict[str, Any]) -> None:
        stored_id = self._persistence.create_sprint(doc)
        if stored_id and stored_id != doc["id"]:
            logger.warning("Storage assigned id=%s to sprint %s; keeping local id.", stored_id, doc["id"])

    def _submit(
        self,
        kind: str,
        entity_id: str,
        operation: str,
        fn: Callable[..., Any],
        *args: Any,
    ) -> Future[None]:
        def run() -> None:
            try:
                fn(*args)
            except Exception as e:
                logger.exception("Persisting %s of %s %s failed", operation, kind, entity_id)
                err = PersistenceFailed(entity_kind=kind, entity_id=entity_id, operation=operation)
                self.failed_writes.append(err)
                raise err from e

        return self._executor.submit(run)

    def _enrich(self, task: Task) -> Task:
        """Fill display names from the directory (presentation only, best-effort)."""
        if self._directory is None:
            return task

        name = ""
        photo: str | None = None
        app_name = ""

        if task.assigned_to:
            try:
                info = self._directory.resolve_user(task.assigned_to)
            except Exception:
                logger.exception("Directory lookup failed user_id=%s", task.assigned_to)
                info = None
            if info is not None:
                name = info.display_name
                photo = info.photo_url

        if task.app_id:
            try:
                app_name = self._directory.resolve_app(task.app_id) or ""
            except Exception:
                logger.exception("Directory lookup failed app_id=%s", task.app_id)

        return replace(task, assigned_to_name=name, assigned_to_photo_url=photo, app_name=app_name)
