# src/taskdeck/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires concrete implementations into AppState (storage/clock/cues/alarms).
"""

from __future__ import annotations

import logging
from concurrent.futures import Executor

from ..config import Settings, get_settings
from ..core.clock import SystemClock
from ..core.ports import Clock, CuePlayer, Directory, Persistence
from ..core.state import AppState
from ..notify.cue_player import SoundCuePlayer
from ..storage.memory_store import InMemoryPersistence
from ..storage.sqlite_store import SQLiteDocumentStore
from ..tasks.alarm_monitor import AlarmMonitor
from ..tasks.comments import CommentService
from ..tasks.sprints import SprintManager
from ..tasks.task_models import Actor
from ..tasks.task_store import EntityStore

logger = logging.getLogger(__name__)

IN_MEMORY_DB = ":memory:"


def _ensure_local_dirs(settings: Settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    if str(settings.db_path) != IN_MEMORY_DB:
        settings.db_path.parent.mkdir(parents=True, exist_ok=True)


def build_persistence(settings: Settings) -> Persistence:
    if str(settings.db_path) == IN_MEMORY_DB:
        logger.info("Using in-memory persistence (nothing survives a restart).")
        return InMemoryPersistence()
    return SQLiteDocumentStore(settings.db_path)


def operator_actor(settings: Settings) -> Actor:
    return Actor(
        user_id=settings.operator_id,
        display_name=settings.operator_name,
        is_admin=settings.operator_is_admin,
    )


def create_initial_state(
    *,
    settings: Settings | None = None,
    persistence: Persistence | None = None,
    clock: Clock | None = None,
    cues: CuePlayer | None = None,
    directory: Directory | None = None,
    executor: Executor | None = None,
) -> AppState:
    """
    Create AppState from the provided settings and collaborators.

    Everything is injectable so tests can swap storage, clock and cues.
    If settings is None, falls back to get_settings().
    Nothing is loaded from storage here; call load_state().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    clock = clock or SystemClock()
    cues = cues or SoundCuePlayer(enabled=settings.sound_enabled)
    persistence = persistence or build_persistence(settings)

    store = EntityStore(persistence, clock=clock, cues=cues, directory=directory, executor=executor)
    alarms = AlarmMonitor(store, clock=clock, cues=cues, lead_seconds=settings.alarm_lead_seconds)

    return AppState(
        settings=settings,
        clock=clock,
        store=store,
        sprints=SprintManager(store),
        comments=CommentService(store),
        alarms=alarms,
        cues=cues,
        operator=operator_actor(settings),
    )


def load_state(state: AppState) -> None:
    """Pull tasks/sprints from storage and re-derive the active sprint."""
    state.store.load()
    state.sprints.refresh_active()
    logger.info(
        "Loaded %d tasks, %d sprints (active sprint=%s)",
        len(state.store.tasks()),
        len(state.store.sprints()),
        state.sprints.active_sprint_id,
    )
