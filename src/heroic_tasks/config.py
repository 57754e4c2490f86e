# src/heroic_tasks/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app.
- No secrets required at import time: without Firebase keys the app still runs
  in guest mode.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

ENV_PREFIX = "HEROIC"


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


load_dotenv(override=False)


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
    app_name: str
    log_level: str

    # ---- Connector flags ----
    console_enabled: bool
    sound_muted: bool

    # ---- Remote store (Firebase) ----
    firebase_api_key: str
    firebase_project_id: str
    firebase_database: str
    remote_poll_seconds: float
    http_timeout_seconds: float

    # ---- Focus timer (minutes) ----
    focus_work_minutes: int
    focus_short_break_minutes: int
    focus_long_break_minutes: int

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    guest_db_path: Path
    session_path: Path

    @property
    def remote_configured(self) -> bool:
        return bool(self.firebase_api_key and self.firebase_project_id)

    @staticmethod
    def from_env() -> Settings:
        data_dir = _env_path(_k("DATA_DIR"), Path(".local/heroic"))

        return Settings(
            app_name=_env(_k("APP_NAME"), "heroic-tasks") or "heroic-tasks",
            log_level=_env(_k("LOG_LEVEL"), "INFO"),
            console_enabled=_env_bool(_k("CONSOLE_ENABLED"), True),
            sound_muted=_env_bool(_k("SOUND_MUTED"), False),
            firebase_api_key=_env(_k("FIREBASE_API_KEY")).strip(),
            firebase_project_id=_env(_k("FIREBASE_PROJECT_ID")).strip(),
            firebase_database=_env(_k("FIREBASE_DATABASE"), "(default)").strip() or "(default)",
            remote_poll_seconds=max(0.5, _env_float(_k("REMOTE_POLL_SECONDS"), 2.0)),
            http_timeout_seconds=max(1.0, _env_float(_k("HTTP_TIMEOUT_SECONDS"), 10.0)),
            focus_work_minutes=_env_int(_k("FOCUS_WORK_MINUTES"), 25),
            focus_short_break_minutes=_env_int(_k("FOCUS_SHORT_BREAK_MINUTES"), 5),
            focus_long_break_minutes=_env_int(_k("FOCUS_LONG_BREAK_MINUTES"), 15),
            data_dir=data_dir,
            guest_db_path=_env_path(_k("GUEST_DB_PATH"), data_dir / "guest.sqlite3"),
            session_path=_env_path(_k("SESSION_PATH"), data_dir / "session.json"),
        )


SETTINGS = Settings.from_env()

# ---- Optional local overrides (never committed) ----
# Prefer .env for secrets; use config_local.py only for safe switches.
try:
    import config_local as _config_local  # type: ignore

    if hasattr(_config_local, "CONSOLE_ENABLED"):
        object.__setattr__(SETTINGS, "console_enabled", bool(_config_local.CONSOLE_ENABLED))  # type: ignore[misc]
    if hasattr(_config_local, "SOUND_MUTED"):
        object.__setattr__(SETTINGS, "sound_muted", bool(_config_local.SOUND_MUTED))  # type: ignore[misc]
except ImportError:
    pass


def get_settings() -> Settings:
    return SETTINGS
