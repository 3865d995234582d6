# src/taskdeck/tasks/views.py

from __future__ import annotations

"""
View projections (calendar, board, list).

Pure functions over a list of tasks: nothing here mutates a task or keeps
state between calls. Callers recompute after every mutation or filter change.
"""

import calendar
import math
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date
from enum import StrEnum

from ..core.errors import ValidationFailed
from .task_models import Priority, Task, TaskStatus

DEFAULT_PAGE_SIZE = 10

BOARD_COLUMNS: tuple[TaskStatus, ...] = (
    TaskStatus.BACKLOG,
    TaskStatus.OPEN,
    TaskStatus.IN_PROGRESS,
    TaskStatus.PAUSED,
    TaskStatus.COMPLETED,
    TaskStatus.CLOSED,
)

ALL = "all"


# ---- calendar ----


class CalendarView(dict[str, list[Task]]):
    """ISO date -> tasks due that day. Days without tasks read as an empty list."""

    def __missing__(self, key: str) -> list[Task]:
        return []


@dataclass(slots=True, frozen=True)
class CalendarCell:
    """One cell of a month grid; leading blanks have day == 0 and no date."""

    day: int
    date: date | None
    tasks: tuple[Task, ...] = ()


def calendar_view(tasks: Iterable[Task]) -> CalendarView:
    view = CalendarView()
    for task in tasks:
        if task.due_date is None:
            continue
        key = task.due_date.date().isoformat()
        view.setdefault(key, []).append(task)
    return view


def calendar_month(tasks: Iterable[Task], year: int, month: int) -> list[CalendarCell]:
    """Sunday-first month grid with every day present (empty days have no tasks)."""
    if not 1 <= month <= 12:
        raise ValidationFailed(f"Invalid month: {month}")

    buckets = calendar_view(tasks)
    first = date(year, month, 1)
    leading = (first.weekday() + 1) % 7
    days_in_month = calendar.monthrange(year, month)[1]

    cells = [CalendarCell(day=0, date=None) for _ in range(leading)]
    for day in range(1, days_in_month + 1):
        d = date(year, month, day)
        cells.append(CalendarCell(day=day, date=d, tasks=tuple(buckets[d.isoformat()])))
    return cells


# ---- board ----


def board_view(tasks: Iterable[Task], sprint_id: str | None = None) -> dict[TaskStatus, list[Task]]:
    """Fixed status columns; with a sprint filter only that sprint's tasks are kept."""
    columns: dict[TaskStatus, list[Task]] = {status: [] for status in BOARD_COLUMNS}
    for task in tasks:
        if sprint_id and task.sprint_id != sprint_id:
            continue
        bucket = columns.get(task.status)
        if bucket is not None:
            bucket.append(task)
    return columns


# ---- list ----


@dataclass(slots=True, frozen=True)
class ListFilters:
    search: str = ""
    status: TaskStatus | str = ALL
    priority: Priority | str = ALL


@dataclass(slots=True, frozen=True)
class ListPage:
    items: tuple[Task, ...]
    page: int
    page_size: int
    total: int
    total_pages: int

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_previous(self) -> bool:
        return self.page > 1


def matches_search(task: Task, term: str) -> bool:
    needle = term.strip().lower()
    if not needle:
        return True
    haystacks = (task.title, task.description, task.assigned_to_name, task.app_name)
    return any(needle in (h or "").lower() for h in haystacks)


def filter_tasks(tasks: Iterable[Task], filters: ListFilters) -> list[Task]:
    status = str(filters.status or ALL)
    priority = str(filters.priority or ALL)

    out: list[Task] = []
    for task in tasks:
        if not matches_search(task, filters.search):
            continue
        if status != ALL and task.status.value != status:
            continue
        if priority != ALL and task.priority.value != priority:
            continue
        out.append(task)
    return out


def completed_last(tasks: Iterable[Task]) -> list[Task]:
    """Stable partition: completed tasks move to the end, relative order otherwise kept."""
    items = list(tasks)
    pending = [t for t in items if t.status != TaskStatus.COMPLETED]
    done = [t for t in items if t.status == TaskStatus.COMPLETED]
    return pending + done


def paginate(tasks: Iterable[Task], page: int = 1, page_size: int = DEFAULT_PAGE_SIZE) -> ListPage:
    if page_size <= 0:
        raise ValidationFailed(f"page_size must be positive, got {page_size}")

    items = list(tasks)
    total = len(items)
    total_pages = math.ceil(total / page_size)
    page = min(max(1, int(page)), max(1, total_pages))

    start = (page - 1) * page_size
    return ListPage(
        items=tuple(items[start : start + page_size]),
        page=page,
        page_size=page_size,
        total=total,
        total_pages=total_pages,
    )


def list_view(
    tasks: Iterable[Task],
    filters: ListFilters | None = None,
    page: int = 1,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> ListPage:
    ordered = completed_last(filter_tasks(tasks, filters or ListFilters()))
    return paginate(ordered, page=page, page_size=page_size)


# ---- urgency ----


class Urgency(StrEnum):
    OVERDUE = "overdue"
    DUE_SOON = "due_soon"
    ON_TRACK = "on_track"


DUE_SOON_DAYS = 2


def due_urgency(task: Task, today: date) -> Urgency | None:
    """Day-granular urgency marker for open tasks (None for any other status)."""
    if task.status != TaskStatus.OPEN or task.due_date is None:
        return None
    days = (task.due_date.date() - today).days
    if days < 0:
        return Urgency.OVERDUE
    if days <= DUE_SOON_DAYS:
        return Urgency.DUE_SOON
    return Urgency.ON_TRACK
