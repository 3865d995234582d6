# tests/test_config_and_cues.py

from __future__ import annotations

import logging
import queue
import threading
import time
from pathlib import Path

from taskdeck.config import Settings
from taskdeck.logging_setup import _ConsoleFormatter, _ConsoleNoiseFilter
from taskdeck.notify.cue_player import LogCuePlayer, SoundCuePlayer, safe_cue

from .fakes import FakeCuePlayer


def test_settings_from_env(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("TASKDECK_DATA_DIR", str(tmp_path))
    monkeypatch.setenv("TASKDECK_ALARM_LEAD_SECONDS", "300")
    monkeypatch.setenv("TASKDECK_PAGE_SIZE", "25")
    monkeypatch.setenv("TASKDECK_SOUND_ENABLED", "yes")
    monkeypatch.setenv("TASKDECK_OPERATOR_IS_ADMIN", "false")
    monkeypatch.setenv("TASKDECK_LOG_LEVEL", "debug")
    monkeypatch.delenv("TASKDECK_DB_PATH", raising=False)

    s = Settings.from_env(dotenv=False)

    assert s.data_dir == tmp_path
    assert s.db_path == tmp_path / "taskdeck.sqlite3"
    assert s.alarm_lead_seconds == 300.0
    assert s.page_size == 25
    assert s.sound_enabled is True
    assert s.operator_is_admin is False
    assert s.log_level == "DEBUG"


def test_settings_fall_back_on_garbage(monkeypatch) -> None:
    monkeypatch.setenv("TASKDECK_PAGE_SIZE", "-3")
    monkeypatch.setenv("TASKDECK_ALARM_INTERVAL_SECONDS", "soon")
    monkeypatch.setenv("TASKDECK_ALARM_LEAD_SECONDS", "-10")

    s = Settings.from_env(dotenv=False)

    assert s.page_size == 10
    assert s.alarm_interval_seconds == 30.0
    assert s.alarm_lead_seconds == 0.0


def test_safe_cue_swallows_player_errors(caplog) -> None:
    player = FakeCuePlayer(broken=True)
    with caplog.at_level(logging.ERROR):
        safe_cue(player, "play_alarm_cue")
    assert player.alarm == 1
    assert "Cue play_alarm_cue failed" in caplog.text


def test_disabled_sound_player_falls_back_to_log(caplog) -> None:
    player = SoundCuePlayer(enabled=False)
    with caplog.at_level(logging.INFO):
        player.play_alarm_cue()
        player.stop_alarm_cue()
        player.play_completion_cue()
    player.shutdown()
    assert "ALARM" in caplog.text
    assert "task completed" in caplog.text


def test_log_cue_player_tracks_alarm_flag() -> None:
    player = LogCuePlayer()
    player.play_alarm_cue()
    assert player.alarm_playing
    player.stop_alarm_cue()
    assert not player.alarm_playing


def test_console_filter_quiets_alarm_loop() -> None:
    f = _ConsoleNoiseFilter()

    def rec(name: str, level: int) -> logging.LogRecord:
        return logging.LogRecord(name, level, __file__, 1, "msg", None, None)

    assert f.filter(rec("taskdeck.tasks.task_store", logging.INFO))
    assert not f.filter(rec("taskdeck.tasks.alarm_monitor", logging.INFO))
    assert f.filter(rec("taskdeck.tasks.alarm_monitor", logging.WARNING))
    assert not f.filter(rec("urllib3", logging.WARNING))


class _SilentDevice:
    def __init__(self) -> None:
        self.stops = 0

    def stop(self) -> None:
        self.stops += 1


def test_completion_cue_plays_while_alarm_repeats() -> None:
    played: list[str] = []
    beeped = threading.Event()
    completed = threading.Event()

    def fake_play(samples: str) -> None:
        played.append(samples)
        (beeped if samples == "beep" else completed).set()
        time.sleep(0.01)

    player = SoundCuePlayer(enabled=False)
    player.enabled = True
    player._queue = queue.Queue()
    player._sd = _SilentDevice()
    player._completion_samples = lambda: "done"
    player._alarm_samples = lambda: "beep"
    player._play = fake_play
    player._worker = threading.Thread(target=player._audio_worker, daemon=True)
    player._worker.start()

    player.play_alarm_cue()
    assert beeped.wait(timeout=2)

    player.play_completion_cue()
    assert completed.wait(timeout=2)
    assert not player._alarm_stop.is_set()

    player.stop_alarm_cue()
    player.shutdown()
    assert not player._worker.is_alive()
    assert player._sd.stops == 1
    assert played[0] == "beep" and "done" in played


def test_console_shows_raised_alarms_as_alarm_lines() -> None:
    f = _ConsoleNoiseFilter()
    fmt = _ConsoleFormatter(fmt="%(levelname)s %(name)s: %(message)s")

    alarm = logging.LogRecord(
        "taskdeck.tasks.alarm_monitor", logging.WARNING, __file__, 1, "%s", ('Task "Ship" is due now!',), None
    )
    alarm.alarm_key = "task_abc"
    plain = logging.LogRecord("taskdeck.cli.commands", logging.INFO, __file__, 1, "hello", None, None)

    assert f.filter(alarm)
    assert fmt.format(alarm) == '[ALARM] Task "Ship" is due now!'
    assert fmt.format(plain) == "INFO taskdeck.cli.commands: hello"
