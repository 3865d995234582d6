# tests/test_task_store.py

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from datetime import UTC, datetime

import pytest

from taskdeck.core.errors import NotFound, PersistenceFailed, ValidationFailed
from taskdeck.core.ports import UserInfo
from taskdeck.storage.memory_store import StaticDirectory
from taskdeck.tasks.task_models import Priority, TaskStatus
from taskdeck.tasks.task_store import EntityStore

from .fakes import BrokenDirectory, FakeCuePlayer, FakePersistence, InlineExecutor


def _create(store, actor, title="Task", due="2024-01-05T12:00", **extra):
    return store.create_task({"title": title, "due_date": due, **extra}, actor).entity


def test_create_task_defaults_and_prepends(store, alice, clock, persistence) -> None:
    first = _create(store, alice, "first")
    clock.advance(minutes=1)
    second = _create(store, alice, "second", priority="high")

    assert [t.id for t in store.tasks()] == [second.id, first.id]
    assert first.status == TaskStatus.OPEN
    assert first.priority == Priority.MEDIUM
    assert second.priority == Priority.HIGH
    assert first.created_by == "alice"
    assert first.created_by_name == "Alice"
    assert first.due_date == datetime(2024, 1, 5, 12, 0, tzinfo=UTC)

    op, _, doc_id, doc = persistence.calls[0]
    assert (op, doc_id) == ("create_task", first.id)
    assert doc is not None and doc["dueDate"] == "2024-01-05T12:00:00+00:00"


@pytest.mark.parametrize(
    "fields",
    [
        {"title": "", "due_date": "2024-01-05"},
        {"title": "   ", "due_date": "2024-01-05"},
        {"title": "x"},
        {"title": "x", "due_date": "not a date"},
        {"title": "x", "due_date": "2024-01-05", "priority": "urgent"},
    ],
)
def test_create_task_validation(store, alice, persistence, fields) -> None:
    with pytest.raises(ValidationFailed):
        store.create_task(fields, alice)
    assert store.tasks() == []
    assert persistence.calls == []


def test_create_task_with_unknown_sprint(store, alice) -> None:
    with pytest.raises(NotFound):
        _create(store, alice, sprint_id="nope")
    assert store.tasks() == []


def test_update_task_partial_fields(store, alice, persistence) -> None:
    task = _create(store, alice)

    result = store.update_task(task.id, {"title": "Renamed", "priority": "low"})

    assert result.entity.title == "Renamed"
    assert store.get_task(task.id).priority == Priority.LOW
    op, _, _, fields = persistence.last_call()
    assert op == "update_task"
    assert fields is not None and set(fields) == {"title", "priority", "updatedAt"}


def test_update_task_rejects_unknown_fields(store, alice) -> None:
    task = _create(store, alice)
    with pytest.raises(ValidationFailed):
        store.update_task(task.id, {"created_by": "mallory"})
    assert store.get_task(task.id).created_by == "alice"


def test_update_task_into_completed_plays_cue(store, alice, cues) -> None:
    task = _create(store, alice)
    store.update_task(task.id, {"status": "completed"})
    store.update_task(task.id, {"title": "still done"})
    assert cues.completion == 1


def test_delete_task_removes_nested_data(store, alice, persistence) -> None:
    task = _create(store, alice)
    store.add_subtask(task.id, "child")

    store.delete_task(task.id)

    with pytest.raises(NotFound):
        store.get_task(task.id)
    assert persistence.last_call()[0] == "delete_task"
    assert task.id not in persistence.docs["tasks"]


def test_unknown_ids_raise_not_found(store, alice) -> None:
    task = _create(store, alice)
    with pytest.raises(NotFound):
        store.update_task("missing", {"title": "x"})
    with pytest.raises(NotFound):
        store.delete_task("missing")
    with pytest.raises(NotFound):
        store.toggle_subtask(task.id, "missing")


# ---- subtasks ----


def test_subtasks_add_toggle_and_due_date(store, alice, cues, persistence) -> None:
    task = _create(store, alice)
    task = store.add_subtask(task.id, "draft", due_date="2024-01-03T10:00").entity
    sub = task.subtasks[0]

    assert sub.completed is False
    assert sub.due_date == datetime(2024, 1, 3, 10, 0, tzinfo=UTC)
    assert len(sub.id) == 12

    store.toggle_subtask(task.id, sub.id)
    assert store.get_subtask(task.id, sub.id).completed is True
    assert cues.completion == 1

    store.toggle_subtask(task.id, sub.id)
    assert store.get_subtask(task.id, sub.id).completed is False
    assert cues.completion == 1

    store.set_subtask_due_date(task.id, sub.id, None)
    assert store.get_subtask(task.id, sub.id).due_date is None

    _, _, _, fields = persistence.last_call()
    assert fields is not None and set(fields) == {"subtasks", "updatedAt"}


def test_add_subtask_requires_title(store, alice) -> None:
    task = _create(store, alice)
    with pytest.raises(ValidationFailed):
        store.add_subtask(task.id, "  ")
    assert store.get_task(task.id).subtasks == []


def test_subtask_ids_unique_within_task(store, alice) -> None:
    task = _create(store, alice)
    for i in range(20):
        task = store.add_subtask(task.id, f"s{i}").entity
    ids = [st.id for st in task.subtasks]
    assert len(ids) == len(set(ids))


# ---- persistence failures ----


def test_failed_write_keeps_local_state(store, alice, persistence) -> None:
    task = _create(store, alice)
    persistence.fail_ops.add("update_task")

    result = store.change_status(task.id, TaskStatus.IN_PROGRESS)

    assert store.get_task(task.id).status == TaskStatus.IN_PROGRESS
    assert not result.persisted
    with pytest.raises(PersistenceFailed) as exc_info:
        result.wait()
    assert exc_info.value.entity_id == task.id
    assert exc_info.value.operation == "update"
    assert isinstance(exc_info.value.__cause__, RuntimeError)
    assert store.failed_writes == [exc_info.value]


def test_successful_write_reports_persisted(store, alice) -> None:
    result = store.create_task({"title": "ok", "due_date": "2024-01-02"}, alice)
    assert result.persisted
    assert result.wait() is result.entity


def test_writes_are_applied_in_submission_order(alice, clock) -> None:
    persistence = FakePersistence()
    with ThreadPoolExecutor(max_workers=1) as pool:
        store = EntityStore(persistence, clock=clock, cues=FakeCuePlayer(), executor=pool)
        task = store.create_task({"title": "t", "due_date": "2024-01-02"}, alice).entity
        last = None
        for status in ("in-progress", "paused", "in-progress", "completed"):
            last = store.change_status(task.id, status)
        assert last is not None
        last.wait(timeout=5)

    assert persistence.docs["tasks"][task.id]["status"] == "completed"


# ---- load / enrichment ----


def _doc(task_id: str, created: str, **extra):
    doc = {
        "id": task_id,
        "title": task_id,
        "status": "open",
        "priority": "medium",
        "dueDate": "2024-01-10T00:00:00Z",
        "createdAt": created,
        "createdBy": "alice",
    }
    doc.update(extra)
    return doc


def test_load_orders_newest_first_and_tolerates_bad_dates(clock) -> None:
    persistence = FakePersistence(
        tasks=[
            _doc("old", "2023-12-01T00:00:00Z"),
            _doc("new", "2023-12-03T00:00:00Z", dueDate="garbage"),
            _doc("mid", "2023-12-02T00:00:00Z", status="weird"),
        ]
    )
    store = EntityStore(persistence, clock=clock, cues=FakeCuePlayer(), executor=InlineExecutor())
    store.load()

    assert [t.id for t in store.tasks()] == ["new", "mid", "old"]
    assert store.get_task("new").due_date is None
    assert store.get_task("mid").status == TaskStatus.OPEN


def test_load_enriches_names_from_directory(clock) -> None:
    directory = StaticDirectory(
        users={"bob": UserInfo("Bob B.", "https://img/bob.png")},
        apps={"crm": "CRM Portal"},
    )
    persistence = FakePersistence(tasks=[_doc("t1", "2024-01-01T00:00:00Z", assignedTo="bob", appId="crm")])
    store = EntityStore(
        persistence, clock=clock, cues=FakeCuePlayer(), directory=directory, executor=InlineExecutor()
    )
    store.load()

    task = store.get_task("t1")
    assert task.assigned_to_name == "Bob B."
    assert task.assigned_to_photo_url == "https://img/bob.png"
    assert task.app_name == "CRM Portal"
    # Presentation fields are never written back.
    assert "assignedToName" not in task.to_doc()


def test_directory_failure_leaves_names_empty(clock, alice) -> None:
    store = EntityStore(
        FakePersistence(),
        clock=clock,
        cues=FakeCuePlayer(),
        directory=BrokenDirectory(),
        executor=InlineExecutor(),
    )
    task = store.create_task(
        {"title": "t", "due_date": "2024-01-02", "assigned_to": "bob", "app_id": "crm"}, alice
    ).entity
    assert task.assigned_to == "bob"
    assert task.assigned_to_name == ""
    assert task.app_name == ""


def test_tasks_returns_a_snapshot(store, alice) -> None:
    _create(store, alice, "a")
    snapshot = store.tasks()
    _create(store, alice, "b")
    assert len(snapshot) == 1
    assert len(store.tasks()) == 2
