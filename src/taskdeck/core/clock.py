# src/taskdeck/core/clock.py

from __future__ import annotations

from datetime import UTC, datetime, timedelta


class SystemClock:
    """Wall clock (timezone-aware, UTC)."""

    def now(self) -> datetime:
        return datetime.now(UTC)


class ManualClock:
    """
    Clock that only moves when told to.

    Used by tests and demos to drive the alarm monitor deterministically.
    """

    def __init__(self, start: datetime | None = None) -> None:
        start = start or datetime(2024, 1, 1, 9, 0, tzinfo=UTC)
        if start.tzinfo is None:
            start = start.replace(tzinfo=UTC)
        self._now = start

    def now(self) -> datetime:
        return self._now

    def set(self, value: datetime) -> None:
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        self._now = value

    def advance(self, *, seconds: float = 0.0, minutes: float = 0.0, days: float = 0.0) -> datetime:
        self._now = self._now + timedelta(seconds=seconds, minutes=minutes, days=days)
        return self._now
