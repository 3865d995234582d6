# src/taskdeck/tasks/sprints.py

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import replace
from datetime import date, datetime, timedelta
from typing import Any

from ..core.errors import NotFound, ValidationFailed
from .task_models import Actor, Sprint, SprintStatus, Task, parse_timestamp
from .task_store import EntityStore, MutationResult, new_id, require_text

logger = logging.getLogger(__name__)

DEFAULT_SPRINT_LENGTH = timedelta(days=14)

EDITABLE_SPRINT_FIELDS: dict[str, str] = {
    "name": "name",
    "start_date": "startDate",
    "end_date": "endDate",
    "description": "description",
    "goal": "goal",
}


def coerce_sprint_status(value: SprintStatus | str) -> SprintStatus:
    if isinstance(value, SprintStatus):
        return value
    try:
        return SprintStatus(str(value).strip().lower())
    except ValueError:
        raise ValidationFailed(
            f"Unknown sprint status {value!r} (expected planning, active or completed)"
        ) from None


def coerce_date(value: Any, field_name: str) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    dt = parse_timestamp(value)
    if dt is None:
        raise ValidationFailed(f"Invalid {field_name}: {value!r} (expected YYYY-MM-DD).")
    return dt.date()


def _check_range(start: date, end: date) -> None:
    if end < start:
        raise ValidationFailed(f"Sprint end date {end} is before start date {start}.")


class SprintManager:
    """
    Sprint CRUD plus task/subtask assignment.

    Invariant: at most one sprint is active. Activating a sprint demotes every
    other active sprint to completed, and `active_sprint_id` follows the target.
    """

    def __init__(self, store: EntityStore) -> None:
        self._store = store
        self.active_sprint_id: str | None = None
        self.refresh_active()

    def refresh_active(self) -> None:
        """
        Re-derive the active reference from the store (after load()).

        Storage may hold several active sprints; the newest stays active and
        the rest are demoted to completed, as activation would have done.
        """
        active = self._store.active_sprints()
        if len(active) > 1:
            logger.warning(
                "Found %d active sprints in storage; keeping %s, completing the rest.",
                len(active),
                active[0].id,
            )
            now = self._store.now()
            for extra in active[1:]:
                demoted = replace(extra, status=SprintStatus.COMPLETED, updated_at=now)
                self._store.commit_sprint(demoted, ["status", "updatedAt"])
        self.active_sprint_id = active[0].id if active else None

    # ---- reads ----

    def active_sprint(self) -> Sprint | None:
        if not self.active_sprint_id:
            return None
        try:
            return self._store.get_sprint(self.active_sprint_id)
        except NotFound:
            return None

    def selectable_sprints(self) -> list[Sprint]:
        """Sprints an operator can still pick (everything not completed)."""
        return [s for s in self._store.sprints() if s.status != SprintStatus.COMPLETED]

    def resolve_sprint_id(self, sprint_id: str | None) -> str | None:
        """Weak reference lookup: orphaned ids degrade to "no sprint"."""
        return sprint_id if self._store.has_sprint(sprint_id) else None

    def tasks_in_sprint(self, sprint_id: str) -> list[Task]:
        return [t for t in self._store.tasks() if t.sprint_id == sprint_id]

    # ---- sprint writes ----

    def create_sprint(self, fields: Mapping[str, Any], actor: Actor) -> MutationResult[Sprint]:
        name = require_text(fields.get("name"), "name")

        start_raw = fields.get("start_date")
        start = coerce_date(start_raw, "start_date") if start_raw else self._store.now().date()
        end_raw = fields.get("end_date")
        end = coerce_date(end_raw, "end_date") if end_raw else start + DEFAULT_SPRINT_LENGTH
        _check_range(start, end)

        status = coerce_sprint_status(fields.get("status") or SprintStatus.PLANNING)

        now = self._store.now()
        sprint = Sprint(
            id=new_id(),
            name=name,
            start_date=start,
            end_date=end,
            status=SprintStatus.PLANNING,
            created_at=now,
            created_by=actor.user_id,
            created_by_name=actor.display_name,
            description=str(fields.get("description") or "").strip(),
            goal=str(fields.get("goal") or "").strip(),
            updated_at=now,
        )
        result = self._store.insert_sprint(sprint)
        logger.info("Sprint created id=%s name=%r %s..%s", sprint.id, sprint.name, start, end)

        if status != SprintStatus.PLANNING:
            return self.set_sprint_status(sprint.id, status)
        return result

    def update_sprint(self, sprint_id: str, fields: Mapping[str, Any]) -> MutationResult[Sprint]:
        current = self._store.get_sprint(sprint_id)

        allowed = set(EDITABLE_SPRINT_FIELDS) | {"status"}
        unknown = set(fields) - allowed
        if unknown:
            raise ValidationFailed(f"Unknown sprint field(s): {', '.join(sorted(unknown))}")

        changes: dict[str, Any] = {}
        if "name" in fields:
            changes["name"] = require_text(fields["name"], "name")
        if "start_date" in fields:
            changes["start_date"] = coerce_date(fields["start_date"], "start_date")
        if "end_date" in fields:
            changes["end_date"] = coerce_date(fields["end_date"], "end_date")
        if "description" in fields:
            changes["description"] = str(fields["description"] or "").strip()
        if "goal" in fields:
            changes["goal"] = str(fields["goal"] or "").strip()

        new_status = coerce_sprint_status(fields["status"]) if "status" in fields else None

        _check_range(changes.get("start_date", current.start_date), changes.get("end_date", current.end_date))

        result: MutationResult[Sprint] | None = None
        if changes:
            updated = replace(current, **changes, updated_at=self._store.now())
            keys = [EDITABLE_SPRINT_FIELDS[k] for k in changes] + ["updatedAt"]
            result = self._store.commit_sprint(updated, keys)

        if new_status is not None and new_status != current.status:
            return self.set_sprint_status(sprint_id, new_status)
        if result is None:
            result = MutationResult.settled(current)
        return result

    def set_sprint_status(self, sprint_id: str, status: SprintStatus | str) -> MutationResult[Sprint]:
        target = self._store.get_sprint(sprint_id)
        new_status = coerce_sprint_status(status)
        now = self._store.now()

        if new_status == SprintStatus.ACTIVE:
            for other in self._store.active_sprints():
                if other.id == sprint_id:
                    continue
                demoted = replace(other, status=SprintStatus.COMPLETED, updated_at=now)
                self._store.commit_sprint(demoted, ["status", "updatedAt"])
                logger.info("Sprint %s demoted to completed (activating %s)", other.id, sprint_id)

        updated = replace(target, status=new_status, updated_at=now)
        result = self._store.commit_sprint(updated, ["status", "updatedAt"])

        if new_status == SprintStatus.ACTIVE:
            self.active_sprint_id = sprint_id
        elif self.active_sprint_id == sprint_id:
            self.active_sprint_id = None

        logger.info("Sprint %s status %s -> %s", sprint_id, target.status.value, new_status.value)
        return result

    def advance_sprint(self, sprint_id: str) -> MutationResult[Sprint]:
        """planning -> active ("start sprint"), otherwise -> completed ("complete sprint")."""
        sprint = self._store.get_sprint(sprint_id)
        if sprint.status == SprintStatus.PLANNING:
            return self.set_sprint_status(sprint_id, SprintStatus.ACTIVE)
        return self.set_sprint_status(sprint_id, SprintStatus.COMPLETED)

    def delete_sprint(self, sprint_id: str) -> MutationResult[Sprint]:
        """Tasks keep their sprint_id; it simply stops resolving."""
        result = self._store.discard_sprint(sprint_id)
        if self.active_sprint_id == sprint_id:
            self.active_sprint_id = None
        logger.info("Sprint deleted id=%s", sprint_id)
        return result

    # ---- assignment ----

    def assign_task_to_sprint(self, task_id: str, sprint_id: str | None) -> MutationResult[Task]:
        task = self._store.get_task(task_id)
        if sprint_id:
            self._store.get_sprint(sprint_id)

        updated = replace(task, sprint_id=sprint_id or None, updated_at=self._store.now())
        return self._store.commit_task(updated, ["sprintId", "updatedAt"])

    def assign_subtask_to_sprint(
        self,
        task_id: str,
        subtask_id: str,
        sprint_id: str | None,
    ) -> MutationResult[Task]:
        self._store.get_subtask(task_id, subtask_id)
        if sprint_id:
            self._store.get_sprint(sprint_id)

        return self._store.update_subtask(
            task_id, subtask_id, lambda st: replace(st, sprint_id=sprint_id or None)
        )
