# src/taskmirror/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object per process, passed explicitly into the session.
- No secrets required at import time.
- Every tunable of the cache / filter / pagination pipeline lives here.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

ENV_PREFIX = "TASKMIRROR"

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
    console_enabled: bool

    # ---- Session ----
    user_id: str
    tasks_collection: str
    categories_collection: str
    analytics_collection: str

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    store_db_path: Path

    # ---- Cache ----
    cache_ttl_seconds: float
    cache_cleanup_interval_seconds: float
    filter_memo_limit: int

    # ---- Filters / pagination ----
    search_debounce_ms: int
    page_size: int
    load_more_threshold: float

    @property
    def search_debounce_seconds(self) -> float:
        return max(0, self.search_debounce_ms) / 1000.0

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "taskmirror") or "taskmirror"
        log_level = _env(_k("LOG_LEVEL"), "INFO")
        console_enabled = _env_bool(_k("CONSOLE_ENABLED"), True)

        user_id = (_env(_k("USER_ID"), "local") or "local").strip()
        tasks_collection = (_env(_k("TASKS_COLLECTION"), "tasks") or "tasks").strip()
        categories_collection = (_env(_k("CATEGORIES_COLLECTION"), "categories") or "categories").strip()
        analytics_collection = (_env(_k("ANALYTICS_COLLECTION"), "analytics") or "analytics").strip()

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/taskmirror"))
        store_db_path = _env_path(_k("STORE_DB_PATH"), data_dir / "tasks.sqlite3")

        cache_ttl_seconds = _env_float(_k("CACHE_TTL_SECONDS"), 300.0)
        cache_cleanup_interval_seconds = _env_float(_k("CACHE_CLEANUP_INTERVAL_SECONDS"), 60.0)
        filter_memo_limit = _env_int(_k("FILTER_MEMO_LIMIT"), 10)

        search_debounce_ms = _env_int(_k("SEARCH_DEBOUNCE_MS"), 300)
        page_size = _env_int(_k("PAGE_SIZE"), 20)
        load_more_threshold = _env_float(_k("LOAD_MORE_THRESHOLD"), 200.0)

        return Settings(
            app_name=app_name,
            log_level=log_level,
            console_enabled=console_enabled,
            user_id=user_id,
            tasks_collection=tasks_collection,
            categories_collection=categories_collection,
            analytics_collection=analytics_collection,
            data_dir=data_dir,
            store_db_path=store_db_path,
            cache_ttl_seconds=cache_ttl_seconds,
            cache_cleanup_interval_seconds=cache_cleanup_interval_seconds,
            filter_memo_limit=filter_memo_limit,
            search_debounce_ms=search_debounce_ms,
            page_size=max(1, page_size),
            load_more_threshold=load_more_threshold,
        )


SETTINGS = Settings.from_env()


def get_settings() -> Settings:
    return SETTINGS
