# src/taskdeck/core/state.py

from __future__ import annotations

from dataclasses import dataclass

from ..config import Settings
from ..tasks.alarm_monitor import AlarmMonitor
from ..tasks.comments import CommentService
from ..tasks.sprints import SprintManager
from ..tasks.task_models import Actor
from ..tasks.task_store import EntityStore
from .ports import Clock, CuePlayer


@dataclass(slots=True)
class AppState:
    """Everything a connector/command needs, wired once by the composition root."""

    settings: Settings
    clock: Clock
    store: EntityStore
    sprints: SprintManager
    comments: CommentService
    alarms: AlarmMonitor
    cues: CuePlayer
    operator: Actor

    @property
    def page_size(self) -> int:
        return self.settings.page_size
