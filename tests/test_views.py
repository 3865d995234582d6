# tests/test_views.py

from __future__ import annotations

from datetime import UTC, date, datetime

import pytest

from taskdeck.core.errors import ValidationFailed
from taskdeck.tasks.task_models import Priority, Task, TaskStatus
from taskdeck.tasks.views import (
    BOARD_COLUMNS,
    ListFilters,
    Urgency,
    board_view,
    calendar_month,
    calendar_view,
    completed_last,
    due_urgency,
    filter_tasks,
    list_view,
    paginate,
)

T0 = datetime(2024, 1, 1, 9, 0, tzinfo=UTC)


def make_task(
    task_id: str,
    *,
    title: str | None = None,
    status: TaskStatus = TaskStatus.OPEN,
    priority: Priority = Priority.MEDIUM,
    due: datetime | None = datetime(2024, 1, 10, 12, 0, tzinfo=UTC),
    sprint_id: str | None = None,
    **extra,
) -> Task:
    return Task(
        id=task_id,
        title=title or task_id,
        description=extra.pop("description", ""),
        priority=priority,
        status=status,
        due_date=due,
        created_at=T0,
        updated_at=T0,
        created_by="alice",
        sprint_id=sprint_id,
        **extra,
    )


# ---- calendar ----


def test_calendar_groups_by_due_day() -> None:
    a = make_task("a", due=datetime(2024, 1, 5, 8, 0, tzinfo=UTC))
    b = make_task("b", due=datetime(2024, 1, 5, 23, 59, tzinfo=UTC))
    c = make_task("c", due=datetime(2024, 1, 6, 0, 0, tzinfo=UTC))
    orphan = make_task("d", due=None)

    view = calendar_view([a, b, c, orphan])

    assert view["2024-01-05"] == [a, b]
    assert view["2024-01-06"] == [c]
    assert sum(len(v) for v in view.values()) == 3


def test_calendar_empty_day_is_empty_list_without_insert() -> None:
    view = calendar_view([])
    assert view["2024-02-29"] == []
    assert "2024-02-29" not in view


def test_calendar_month_grid_is_sunday_first() -> None:
    # 2024-01-01 is a Monday: one leading blank.
    cells = calendar_month([make_task("a", due=datetime(2024, 1, 31, tzinfo=UTC))], 2024, 1)

    assert cells[0].date is None
    assert cells[1].date == date(2024, 1, 1)
    assert len([c for c in cells if c.date is not None]) == 31
    assert [t.id for t in cells[-1].tasks] == ["a"]


def test_calendar_month_rejects_bad_month() -> None:
    with pytest.raises(ValidationFailed):
        calendar_month([], 2024, 13)


# ---- board ----


def test_board_has_every_column() -> None:
    board = board_view([])
    assert list(board) == list(BOARD_COLUMNS)
    assert all(bucket == [] for bucket in board.values())


def test_board_buckets_by_status_and_sprint() -> None:
    t1 = make_task("t1", status=TaskStatus.IN_PROGRESS, sprint_id="s1")
    t2 = make_task("t2", status=TaskStatus.IN_PROGRESS, sprint_id="s2")
    t3 = make_task("t3", status=TaskStatus.BACKLOG, sprint_id="s1")

    everything = board_view([t1, t2, t3])
    assert everything[TaskStatus.IN_PROGRESS] == [t1, t2]

    sprint = board_view([t1, t2, t3], sprint_id="s1")
    assert sprint[TaskStatus.IN_PROGRESS] == [t1]
    assert sprint[TaskStatus.BACKLOG] == [t3]
    assert sum(len(b) for b in sprint.values()) == 2


# ---- list ----


def test_search_is_case_insensitive_over_text_fields() -> None:
    tasks = [
        make_task("a", title="Quarterly REPORT"),
        make_task("b", description="see the report draft"),
        make_task("c", assigned_to_name="Report Bot"),
        make_task("d", app_name="reporting"),
        make_task("e", title="unrelated"),
    ]
    found = filter_tasks(tasks, ListFilters(search="report"))
    assert [t.id for t in found] == ["a", "b", "c", "d"]


def test_status_and_priority_filters() -> None:
    tasks = [
        make_task("a", status=TaskStatus.OPEN, priority=Priority.HIGH),
        make_task("b", status=TaskStatus.OPEN, priority=Priority.LOW),
        make_task("c", status=TaskStatus.PAUSED, priority=Priority.HIGH),
    ]
    assert [t.id for t in filter_tasks(tasks, ListFilters(status="open"))] == ["a", "b"]
    assert [t.id for t in filter_tasks(tasks, ListFilters(priority=Priority.HIGH))] == ["a", "c"]
    assert [t.id for t in filter_tasks(tasks, ListFilters(status="open", priority="high"))] == ["a"]


def test_completed_last_is_stable() -> None:
    tasks = [
        make_task("c1", status=TaskStatus.COMPLETED),
        make_task("o1"),
        make_task("c2", status=TaskStatus.COMPLETED),
        make_task("p1", status=TaskStatus.PAUSED),
        make_task("x1", status=TaskStatus.CLOSED),
    ]
    assert [t.id for t in completed_last(tasks)] == ["o1", "p1", "x1", "c1", "c2"]


def test_pagination_sizes_and_clamping() -> None:
    tasks = [make_task(f"t{i:02d}") for i in range(23)]

    first = paginate(tasks, 1)
    assert len(first.items) == 10
    assert first.total_pages == 3
    assert first.has_next and not first.has_previous

    last = paginate(tasks, 3)
    assert [t.id for t in last.items] == ["t20", "t21", "t22"]

    beyond = paginate(tasks, 99)
    assert beyond.page == 3
    assert beyond.items == last.items

    assert paginate(tasks, 0).page == 1


def test_pagination_of_empty_set() -> None:
    page = paginate([], 5)
    assert page.page == 1
    assert page.items == ()
    assert page.total == 0


def test_pagination_rejects_bad_page_size() -> None:
    with pytest.raises(ValidationFailed):
        paginate([], 1, page_size=0)


def test_list_view_filters_sorts_then_pages() -> None:
    tasks = [make_task(f"done{i}", status=TaskStatus.COMPLETED) for i in range(3)]
    tasks += [make_task(f"open{i}") for i in range(3)]

    page = list_view(tasks, ListFilters(), page=1, page_size=4)

    assert [t.id for t in page.items] == ["open0", "open1", "open2", "done0"]
    assert page.total_pages == 2


@pytest.mark.parametrize("page_size", [1, 3, 4, 7, 50])
def test_pages_join_back_into_the_ordered_list(page_size) -> None:
    statuses = list(TaskStatus)
    priorities = list(Priority)
    tasks = [
        make_task(
            f"t{i:02d}",
            title=f"report {i}" if i % 3 else f"memo {i}",
            status=statuses[i % len(statuses)],
            priority=priorities[i % len(priorities)],
        )
        for i in range(20)
    ]
    filters = ListFilters(search="report", priority="all")
    expected = completed_last(filter_tasks(tasks, filters))

    first = list_view(tasks, filters, page=1, page_size=page_size)
    joined = list(first.items)
    for page in range(2, first.total_pages + 1):
        joined.extend(list_view(tasks, filters, page=page, page_size=page_size).items)

    assert [t.id for t in joined] == [t.id for t in expected]
    assert len({t.id for t in joined}) == len(joined) == first.total


# ---- urgency ----


@pytest.mark.parametrize(
    ("due_day", "expected"),
    [
        (date(2024, 1, 9), Urgency.OVERDUE),
        (date(2024, 1, 10), Urgency.DUE_SOON),
        (date(2024, 1, 12), Urgency.DUE_SOON),
        (date(2024, 1, 13), Urgency.ON_TRACK),
    ],
)
def test_due_urgency_for_open_tasks(due_day, expected) -> None:
    due = datetime(due_day.year, due_day.month, due_day.day, 17, 0, tzinfo=UTC)
    assert due_urgency(make_task("a", due=due), date(2024, 1, 10)) == expected


def test_due_urgency_only_for_open() -> None:
    task = make_task("a", status=TaskStatus.IN_PROGRESS, due=datetime(2023, 1, 1, tzinfo=UTC))
    assert due_urgency(task, date(2024, 1, 10)) is None
