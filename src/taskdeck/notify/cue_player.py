# src/taskdeck/notify/cue_player.py

from __future__ import annotations

import logging
import queue
import threading
from typing import Any

from ..core.ports import CuePlayer

logger = logging.getLogger(__name__)

_COMPLETION = "completion"
_ALARM = "alarm"


def safe_cue(player: CuePlayer | None, action: str) -> None:
    """Call a cue method; a failing cue must never affect task or alarm state."""
    if player is None:
        return
    try:
        getattr(player, action)()
    except Exception:
        logger.exception("Cue %s failed.", action)


class LogCuePlayer:
    """Headless cue player: cues become log lines."""

    def __init__(self) -> None:
        self.alarm_playing = False

    def play_completion_cue(self) -> None:
        logger.info("[cue] task completed")

    def play_alarm_cue(self) -> None:
        self.alarm_playing = True
        logger.warning("[cue] ALARM: something is due")

    def stop_alarm_cue(self) -> None:
        if self.alarm_playing:
            logger.info("[cue] alarm stopped")
        self.alarm_playing = False


class SoundCuePlayer:
    """
    Best-effort audible cues.

    Design goals:
    - Optional dependencies (numpy + sounddevice); missing libs disable sound.
    - Never blocks the caller: tones are played from a worker thread.
    - The alarm tone repeats until stop_alarm_cue() (only one alarm at a time).

    When disabled, cues fall back to LogCuePlayer behaviour.
    """

    def __init__(
        self,
        enabled: bool,
        *,
        volume: float = 0.5,
        sample_rate: int = 44100,
    ) -> None:
        self.enabled = bool(enabled)
        self._fallback = LogCuePlayer()

        self._queue: queue.Queue[str | None] | None = None
        self._worker: threading.Thread | None = None
        self._alarm_stop = threading.Event()
        self._stop_requested = False

        self._np: Any = None
        self._sd: Any = None
        self._volume = max(0.0, min(1.0, float(volume)))
        self._sample_rate = int(sample_rate)

        if not self.enabled:
            logger.info("Sound cues disabled.")
            return

        try:
            import numpy as np  # type: ignore
            import sounddevice as sd  # type: ignore
        except Exception as e:
            self.enabled = False
            logger.warning(
                "Sound cues are enabled, but numpy/sounddevice failed to import. "
                "Install the 'audio' extra to hear cues. Error: %s",
                repr(e),
            )
            return

        self._np = np
        self._sd = sd
        self._queue = queue.Queue()
        self._worker = threading.Thread(target=self._audio_worker, name="taskdeck-cues", daemon=True)
        self._worker.start()
        logger.info("Sound cues ready (sample_rate=%s).", self._sample_rate)

    # ---- CuePlayer ----

    def play_completion_cue(self) -> None:
        if not self.enabled or self._queue is None:
            self._fallback.play_completion_cue()
            return
        self._queue.put(_COMPLETION)

    def play_alarm_cue(self) -> None:
        if not self.enabled or self._queue is None:
            self._fallback.play_alarm_cue()
            return
        self._alarm_stop.clear()
        self._queue.put(_ALARM)

    def stop_alarm_cue(self) -> None:
        if not self.enabled or self._sd is None:
            self._fallback.stop_alarm_cue()
            return
        self._alarm_stop.set()
        try:
            self._sd.stop()
        except Exception as e:
            logger.error("Stopping alarm playback failed: %s", repr(e))

    def shutdown(self) -> None:
        """Request a clean shutdown of the worker (no-op if disabled)."""
        if not self.enabled or self._queue is None:
            return
        if self._stop_requested:
            return
        self._stop_requested = True

        self._alarm_stop.set()
        self._queue.put(None)
        if self._worker is not None:
            self._worker.join(timeout=2.0)
        logger.info("Sound cues stopped.")

    # ---- worker ----

    def _tone(self, freq: float, seconds: float) -> Any:
        np = self._np
        t = np.linspace(0.0, seconds, int(self._sample_rate * seconds), endpoint=False)
        return (self._volume * np.sin(2.0 * np.pi * freq * t)).astype(np.float32)

    def _completion_samples(self) -> Any:
        return self._np.concatenate([self._tone(880.0, 0.08), self._tone(1320.0, 0.12)])

    def _alarm_samples(self) -> Any:
        gap = self._np.zeros(int(self._sample_rate * 0.25), dtype=self._np.float32)
        return self._np.concatenate([self._tone(988.0, 0.25), gap])

    def _play(self, samples: Any) -> None:
        try:
            self._sd.play(samples, self._sample_rate)
            self._sd.wait()
        except Exception as e:
            logger.error("Cue playback failed: %s", repr(e))

    def _drain_between_beeps(self) -> bool:
        """
        Play completion cues queued while the alarm repeats.
        Returns True when shutdown was requested.
        """
        assert self._queue is not None
        while True:
            try:
                item = self._queue.get_nowait()
            except queue.Empty:
                return False
            try:
                if item is None:
                    return True
                if item == _COMPLETION:
                    self._play(self._completion_samples())
                # A second _ALARM while one is already repeating changes nothing.
            finally:
                self._queue.task_done()

    def _audio_worker(self) -> None:
        assert self._queue is not None
        while True:
            item = self._queue.get()
            try:
                if item is None:
                    return

                if item == _COMPLETION:
                    self._play(self._completion_samples())
                    continue

                if item == _ALARM:
                    beep = self._alarm_samples()
                    while not self._alarm_stop.is_set():
                        self._play(beep)
                        if self._drain_between_beeps():
                            return
            finally:
                self._queue.task_done()
