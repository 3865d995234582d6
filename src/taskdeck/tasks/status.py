# src/taskdeck/tasks/status.py

from __future__ import annotations

"""
Task status state machine.

The machine is permissive: any TaskStatus can follow any other, because
operators need to fix mistakes without walking the lifecycle. What it does
enforce is the side-effect contract:

- updated_at is stamped on every transition,
- the completion cue is due only when a task *enters* completed,
- nothing else on the task changes.
"""

from dataclasses import replace
from datetime import datetime

from ..core.errors import ValidationFailed
from .task_models import Task, TaskStatus

# The lifecycle as operators normally walk it (documentation and UI hints only).
CONVENTIONAL_TRANSITIONS: dict[TaskStatus, tuple[TaskStatus, ...]] = {
    TaskStatus.BACKLOG: (TaskStatus.OPEN,),
    TaskStatus.OPEN: (TaskStatus.IN_PROGRESS, TaskStatus.COMPLETED, TaskStatus.CLOSED),
    TaskStatus.IN_PROGRESS: (TaskStatus.PAUSED, TaskStatus.COMPLETED),
    TaskStatus.PAUSED: (TaskStatus.IN_PROGRESS, TaskStatus.COMPLETED),
    TaskStatus.COMPLETED: (TaskStatus.OPEN,),
    TaskStatus.CLOSED: (TaskStatus.OPEN,),
}


def coerce_status(value: TaskStatus | str) -> TaskStatus:
    """Accept enum members or their string values; reject anything else."""
    if isinstance(value, TaskStatus):
        return value
    try:
        return TaskStatus(str(value).strip().lower())
    except ValueError:
        allowed = ", ".join(s.value for s in TaskStatus)
        raise ValidationFailed(f"Unknown task status {value!r} (expected one of: {allowed})") from None


def suggested_transitions(status: TaskStatus) -> tuple[TaskStatus, ...]:
    return CONVENTIONAL_TRANSITIONS.get(status, ())


def is_conventional(current: TaskStatus, new: TaskStatus) -> bool:
    return new in CONVENTIONAL_TRANSITIONS.get(current, ())


def enters_completed(current: TaskStatus, new: TaskStatus) -> bool:
    return new == TaskStatus.COMPLETED and current != TaskStatus.COMPLETED


def transition(task: Task, new_status: TaskStatus | str, *, now: datetime) -> Task:
    """Return a copy of `task` in `new_status`; only status and updated_at differ."""
    status = coerce_status(new_status)
    return replace(task, status=status, updated_at=now)
