# src/taskdeck/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app.
- Nothing required at import time; every key has a working default.
- Settings stay injectable (tests build their own instance).
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv

ENV_PREFIX = "TASKDECK"


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str = "taskdeck"
    log_level: str = "INFO"

    # ---- Local data paths (ignored by git) ----
    data_dir: Path = Path(".local/taskdeck")
    db_path: Path = Path(".local/taskdeck/taskdeck.sqlite3")

    # ---- Alarms ----
    alarm_interval_seconds: float = 30.0
    alarm_lead_seconds: float = 0.0
    sound_enabled: bool = False

    # ---- Connectors ----
    console_enabled: bool = True

    # ---- Views ----
    page_size: int = 10

    # ---- Console operator ----
    operator_id: str = "operator"
    operator_name: str = "Operator"
    operator_is_admin: bool = True

    @staticmethod
    def from_env(*, dotenv: bool = True) -> Settings:
        if dotenv:
            load_dotenv(override=False)

        app_name = _env(_k("APP_NAME"), "taskdeck").strip() or "taskdeck"
        log_level = _env(_k("LOG_LEVEL"), "INFO").strip().upper() or "INFO"

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/taskdeck"))
        db_path = _env_path(_k("DB_PATH"), data_dir / "taskdeck.sqlite3")

        alarm_interval_seconds = max(1.0, _env_float(_k("ALARM_INTERVAL_SECONDS"), 30.0))
        alarm_lead_seconds = max(0.0, _env_float(_k("ALARM_LEAD_SECONDS"), 0.0))
        sound_enabled = _env_bool(_k("SOUND_ENABLED"), False)
        console_enabled = _env_bool(_k("CONSOLE_ENABLED"), True)

        page_size = _env_int(_k("PAGE_SIZE"), 10)
        if page_size <= 0:
            page_size = 10

        operator_id = _env(_k("OPERATOR_ID"), "operator").strip() or "operator"
        operator_name = _env(_k("OPERATOR_NAME"), "Operator").strip() or operator_id
        operator_is_admin = _env_bool(_k("OPERATOR_IS_ADMIN"), True)

        return Settings(
            app_name=app_name,
            log_level=log_level,
            data_dir=data_dir,
            db_path=db_path,
            alarm_interval_seconds=alarm_interval_seconds,
            alarm_lead_seconds=alarm_lead_seconds,
            sound_enabled=sound_enabled,
            console_enabled=console_enabled,
            page_size=page_size,
            operator_id=operator_id,
            operator_name=operator_name,
            operator_is_admin=operator_is_admin,
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()
