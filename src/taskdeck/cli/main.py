# src/taskdeck/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, loads tasks/sprints, then starts:
- the alarm monitor in a background thread,
- the console REPL in the main thread (optional).
"""

from __future__ import annotations

import logging
import signal
import threading

from ..cli.bootstrap import create_initial_state, load_state
from ..config import get_settings
from ..connectors.console_connector import run_console_loop
from ..core.state import AppState
from ..logging_setup import setup_logging
from ..tasks.alarm_monitor import AlarmRunner, start_alarm_runner

logger = logging.getLogger(__name__)


def _shutdown(state: AppState) -> None:
    """Best-effort shutdown (no exceptions should escape)."""
    try:
        state.alarms.stop_alarm()
    except Exception:
        logger.debug("Stopping alarm cue failed.", exc_info=True)

    # Drains queued writes before the process exits.
    try:
        state.store.close()
    except Exception:
        logger.exception("Entity store close failed.")

    pending = len(state.store.failed_writes)
    if pending:
        logger.warning("%d write(s) failed to persist during this session.", pending)

    try:
        cues = state.cues
        if hasattr(cues, "shutdown"):
            cues.shutdown()
    except Exception:
        logger.debug("Cue player shutdown failed.", exc_info=True)


def main() -> None:
    settings = get_settings()

    level_name = str(settings.log_level).upper()
    console_level = getattr(logging, level_name, logging.INFO)
    setup_logging(log_dir=settings.data_dir, console_level=console_level)

    logger.info("Starting %s...", settings.app_name)

    state = create_initial_state(settings=settings)
    load_state(state)

    alarm_runner: AlarmRunner | None = start_alarm_runner(
        state.alarms, interval_seconds=settings.alarm_interval_seconds
    )

    stop_main = threading.Event()

    def _handle_signal(signum, _frame) -> None:
        logger.info("Signal %s received, shutting down...", signum)
        stop_main.set()

    try:
        signal.signal(signal.SIGTERM, _handle_signal)
        if not settings.console_enabled:
            signal.signal(signal.SIGINT, _handle_signal)
    except (ValueError, OSError, AttributeError):
        # Some platforms may not support SIGTERM, etc.
        pass

    try:
        if settings.console_enabled:
            run_console_loop(state)
            stop_main.set()
        else:
            logger.info("Console disabled. Running the alarm monitor only. Press Ctrl+C to stop.")
            stop_main.wait()

    finally:
        if alarm_runner is not None:
            alarm_runner.stop()
            alarm_runner.join(timeout=10.0)

        _shutdown(state)
        logger.info("Bye.")


if __name__ == "__main__":
    main()
