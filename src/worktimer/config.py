# src/worktimer/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app.
- Nothing required at import time; every value has a local default.
- Tests build their own Settings (or a SimpleNamespace) instead of reading env.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

ENV_PREFIX = "WORKTIMER"

load_dotenv(override=False)


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

    # ---- Actor ----
    user_id: str

    # ---- Connector flags ----
    console_enabled: bool
    finalize_on_exit: bool

    # ---- Timer / views ----
    tick_interval_ms: int
    history_page_size: int

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    store_db_path: Path
    local_state_path: Path

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "worktimer") or "worktimer"
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        user_id = (_env(_k("USER_ID"), "local") or "local").strip()

        console_enabled = _env_bool(_k("CONSOLE_ENABLED"), True)
        finalize_on_exit = _env_bool(_k("FINALIZE_ON_EXIT"), False)

        # Below 50ms the console redraw is pure noise.
        tick_interval_ms = max(50, _env_int(_k("TICK_INTERVAL_MS"), 250))
        history_page_size = max(1, _env_int(_k("HISTORY_PAGE_SIZE"), 20))

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/worktimer"))
        store_db_path = _env_path(_k("STORE_DB_PATH"), data_dir / "store.sqlite3")
        local_state_path = _env_path(_k("LOCAL_STATE_PATH"), data_dir / "local_state.json")

        return Settings(
            app_name=app_name,
            log_level=log_level,
            user_id=user_id,
            console_enabled=console_enabled,
            finalize_on_exit=finalize_on_exit,
            tick_interval_ms=tick_interval_ms,
            history_page_size=history_page_size,
            data_dir=data_dir,
            store_db_path=store_db_path,
            local_state_path=local_state_path,
        )


SETTINGS = Settings.from_env()


def get_settings() -> Settings:
    return SETTINGS
