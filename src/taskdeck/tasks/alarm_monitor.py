# src/taskdeck/tasks/alarm_monitor.py

from __future__ import annotations

"""
Alarm monitor.

A small polling loop that:
- scans task and subtask due dates against an injected clock,
- keeps the set of currently due items (the badge count),
- sounds the alarm cue once per newly due item (unless muted or already sounding).

It only reads the entity store and only writes its own alarm state.
Clearing happens on the next check once an item is no longer due (completed,
closed, deleted, or its due date moved forward).
"""

import asyncio
import contextlib
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta

from ..core.ports import Clock, CuePlayer
from ..notify.cue_player import safe_cue
from .task_models import RESOLVED_STATUSES, Task
from .task_store import EntityStore

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class AlarmKey:
    """(task_id) for a task alarm, (task_id, subtask_id) for a subtask alarm."""

    task_id: str
    subtask_id: str | None = None

    def __str__(self) -> str:
        if self.subtask_id is None:
            return f"task_{self.task_id}"
        return f"{self.task_id}_{self.subtask_id}"


@dataclass(slots=True, frozen=True)
class DueItem:
    key: AlarmKey
    title: str
    task_title: str
    due_date: datetime

    @property
    def message(self) -> str:
        if self.key.subtask_id is None:
            return f'Task "{self.title}" is due now!'
        return f'Subtask "{self.title}" from task "{self.task_title}" is due now!'


@dataclass(slots=True, frozen=True)
class AlarmCheck:
    """What one check_due_items() pass changed."""

    raised: tuple[DueItem, ...]
    cleared: tuple[AlarmKey, ...]
    active: frozenset[AlarmKey]
    sounded: bool


class AlarmMonitor:
    def __init__(
        self,
        store: EntityStore,
        *,
        clock: Clock,
        cues: CuePlayer,
        lead_seconds: float = 0.0,
    ) -> None:
        self._store = store
        self._clock = clock
        self._cues = cues
        self.lead = timedelta(seconds=max(0.0, float(lead_seconds)))

        self._active: set[AlarmKey] = set()
        self._muted = False
        self._sounding = False

        # Guards alarm state between the background loop and on-demand calls.
        self._lock = threading.RLock()
        self._task: asyncio.Task[None] | None = None

    # ---- state ----

    @property
    def active_alarms(self) -> frozenset[AlarmKey]:
        with self._lock:
            return frozenset(self._active)

    @property
    def active_count(self) -> int:
        with self._lock:
            return len(self._active)

    @property
    def muted(self) -> bool:
        return self._muted

    @property
    def sounding(self) -> bool:
        return self._sounding

    def is_due(self, due_date: datetime, now: datetime) -> bool:
        return due_date - now <= self.lead

    # ---- detection ----

    def _due_items(self, tasks: list[Task], now: datetime) -> dict[AlarmKey, DueItem]:
        found: dict[AlarmKey, DueItem] = {}

        for task in tasks:
            try:
                if task.status not in RESOLVED_STATUSES and task.due_date is not None:
                    if self.is_due(task.due_date, now):
                        key = AlarmKey(task.id)
                        found[key] = DueItem(key, task.title, task.title, task.due_date)
            except Exception:
                logger.debug("Skipping task %s in alarm check", getattr(task, "id", "?"), exc_info=True)

            for st in task.subtasks or []:
                try:
                    if st.completed or st.due_date is None:
                        continue
                    if self.is_due(st.due_date, now):
                        key = AlarmKey(task.id, st.id)
                        found[key] = DueItem(key, st.title, task.title, st.due_date)
                except Exception:
                    logger.debug(
                        "Skipping subtask %s/%s in alarm check",
                        getattr(task, "id", "?"),
                        getattr(st, "id", "?"),
                        exc_info=True,
                    )

        return found

    def check_due_items(self) -> AlarmCheck:
        """Evaluate every task/subtask once; safe to call any time (idempotent)."""
        now = self._clock.now()
        due = self._due_items(self._store.tasks(), now)

        with self._lock:
            raised = tuple(item for key, item in due.items() if key not in self._active)
            cleared = tuple(key for key in self._active if key not in due)
            self._active = set(due)

            sounded = False
            if raised and not self._muted and not self._sounding:
                safe_cue(self._cues, "play_alarm_cue")
                self._sounding = True
                sounded = True
            elif not self._active and self._sounding:
                self._stop_sound()

            active = frozenset(self._active)

        # One operator-facing line per new alarm, muted or not; muting only silences the cue.
        for item in raised:
            logger.warning("%s", item.message, extra={"alarm_key": str(item.key)})
            logger.debug("Alarm raised %s due %s", item.key, item.due_date.isoformat())
        for key in cleared:
            logger.info("Alarm cleared %s", key)

        return AlarmCheck(raised=raised, cleared=cleared, active=active, sounded=sounded)

    # ---- operator actions ----

    def stop_alarm(self) -> None:
        """Silence the current alarm; overdue items stay flagged."""
        with self._lock:
            if self._sounding:
                self._stop_sound()

    def set_muted(self, muted: bool) -> None:
        with self._lock:
            self._muted = bool(muted)
            if self._muted and self._sounding:
                self._stop_sound()
            elif not self._muted and self._active and not self._sounding:
                safe_cue(self._cues, "play_alarm_cue")
                self._sounding = True
        logger.info("Alarms %s", "muted" if muted else "unmuted")

    def toggle_mute(self) -> bool:
        self.set_muted(not self._muted)
        return self._muted

    def _stop_sound(self) -> None:
        self._sounding = False
        safe_cue(self._cues, "stop_alarm_cue")

    # ---- polling loop ----

    async def run(self, *, interval_seconds: float = 30.0) -> None:
        """
        Check due items every interval_seconds until cancelled.

        To stop the monitor, cancel the coroutine/task (or call stop()).
        """
        sleep_s = max(0.05, float(interval_seconds))
        logger.info("Alarm monitor started (interval=%.2fs lead=%s)", sleep_s, self.lead)
        try:
            while True:
                try:
                    self.check_due_items()
                except Exception:
                    logger.exception("Alarm check failed")
                await asyncio.sleep(sleep_s)
        finally:
            logger.info("Alarm monitor stopped.")

    def start(self, *, interval_seconds: float = 30.0) -> asyncio.Task[None]:
        """Schedule run() on the running event loop."""
        if self._task is not None and not self._task.done():
            return self._task
        self._task = asyncio.get_running_loop().create_task(
            self.run(interval_seconds=interval_seconds), name="taskdeck-alarm-monitor"
        )
        return self._task

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task


@dataclass(slots=True)
class AlarmRunner:
    """Alarm monitor running on its own event loop in a background thread."""

    thread: threading.Thread
    loop: asyncio.AbstractEventLoop
    stop_event: asyncio.Event

    def stop(self) -> None:
        try:
            self.loop.call_soon_threadsafe(self.stop_event.set)
        except Exception:
            logger.debug("Failed to signal alarm runner stop.", exc_info=True)

    def join(self, timeout: float | None = None) -> None:
        self.thread.join(timeout=timeout)


async def _run_until_stopped(monitor: AlarmMonitor, stop_event: asyncio.Event, interval_seconds: float) -> None:
    monitor.start(interval_seconds=interval_seconds)
    try:
        await stop_event.wait()
    finally:
        await monitor.stop()


def start_alarm_runner(monitor: AlarmMonitor, *, interval_seconds: float = 30.0) -> AlarmRunner | None:
    """
    Start the alarm monitor in a background thread (so the console REPL can block on input()).
    """
    ready = threading.Event()
    holder: dict[str, object] = {}

    def runner() -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        stop_event = asyncio.Event()

        holder["loop"] = loop
        holder["stop_event"] = stop_event
        ready.set()

        try:
            loop.run_until_complete(_run_until_stopped(monitor, stop_event, interval_seconds))
        finally:
            with contextlib.suppress(Exception):
                loop.close()

    t = threading.Thread(target=runner, name="taskdeck-alarms", daemon=True)
    t.start()

    ready.wait(timeout=5.0)
    loop = holder.get("loop")
    stop_event = holder.get("stop_event")

    if not isinstance(loop, asyncio.AbstractEventLoop) or not isinstance(stop_event, asyncio.Event):
        logger.error("Alarm thread did not initialize properly.")
        return None

    logger.info("Alarm background thread started.")
    return AlarmRunner(thread=t, loop=loop, stop_event=stop_event)
