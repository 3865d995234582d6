# tests/conftest.py

from __future__ import annotations

from pathlib import Path

import pytest

from taskdeck.cli.bootstrap import create_initial_state
from taskdeck.config import Settings
from taskdeck.core.clock import ManualClock
from taskdeck.core.state import AppState
from taskdeck.tasks.alarm_monitor import AlarmMonitor
from taskdeck.tasks.comments import CommentService
from taskdeck.tasks.sprints import SprintManager
from taskdeck.tasks.task_models import Actor
from taskdeck.tasks.task_store import EntityStore

from .fakes import FakeCuePlayer, FakePersistence, InlineExecutor


@pytest.fixture()
def clock() -> ManualClock:
    # 2024-01-01 09:00 UTC (a Monday)
    return ManualClock()


@pytest.fixture()
def cues() -> FakeCuePlayer:
    return FakeCuePlayer()


@pytest.fixture()
def persistence() -> FakePersistence:
    return FakePersistence()


@pytest.fixture()
def store(persistence: FakePersistence, clock: ManualClock, cues: FakeCuePlayer) -> EntityStore:
    """
    EntityStore wired with deterministic fakes.

    Writes run inline, so persistence calls are visible as soon as a mutation returns.
    """
    s = EntityStore(persistence, clock=clock, cues=cues, executor=InlineExecutor())
    s.load()
    return s


@pytest.fixture()
def sprints(store: EntityStore) -> SprintManager:
    return SprintManager(store)


@pytest.fixture()
def comments(store: EntityStore) -> CommentService:
    return CommentService(store)


@pytest.fixture()
def monitor(store: EntityStore, clock: ManualClock, cues: FakeCuePlayer) -> AlarmMonitor:
    return AlarmMonitor(store, clock=clock, cues=cues)


@pytest.fixture()
def alice() -> Actor:
    return Actor(user_id="alice", display_name="Alice")


@pytest.fixture()
def bob() -> Actor:
    return Actor(user_id="bob", display_name="Bob")


@pytest.fixture()
def admin() -> Actor:
    return Actor(user_id="root", display_name="Admin", is_admin=True)


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    """Explicit settings (never read from the environment in tests)."""
    return Settings(
        data_dir=tmp_path,
        db_path=tmp_path / "taskdeck.sqlite3",
        page_size=3,
        operator_id="alice",
        operator_name="Alice",
        operator_is_admin=False,
    )


@pytest.fixture()
def state(
    settings: Settings,
    persistence: FakePersistence,
    clock: ManualClock,
    cues: FakeCuePlayer,
) -> AppState:
    return create_initial_state(
        settings=settings,
        persistence=persistence,
        clock=clock,
        cues=cues,
        executor=InlineExecutor(),
    )
