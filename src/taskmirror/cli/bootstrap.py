# src/taskmirror/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires the store, cache, subscription manager, service and provider into AppState,
- tears the session down again.
"""

from __future__ import annotations

import logging

from ..config import get_settings
from ..core.ports import RemoteTaskStore
from ..core.state import AppState
from ..store.sqlite_store import SqliteTaskStore
from ..tasks.subscriptions import SubscriptionManager
from ..tasks.task_cache import TaskCache
from ..tasks.task_provider import TaskProvider
from ..tasks.task_service import TaskService

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.store_db_path.parent.mkdir(parents=True, exist_ok=True)


def create_initial_state(*, settings=None, store: RemoteTaskStore | None = None) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings (and the store) injectable makes the session easy to test
    and avoids hidden global config reads. If settings is None, falls back to
    get_settings(); if store is None, a local SQLite store is opened.
    """
    if settings is None:
        settings = get_settings()

    if store is None:
        _ensure_local_dirs(settings)
        store = SqliteTaskStore(settings.store_db_path)

    cache = TaskCache(ttl_seconds=settings.cache_ttl_seconds)
    subscriptions = SubscriptionManager(store, cache, collection=settings.tasks_collection)
    service = TaskService(
        store,
        collection=settings.tasks_collection,
        categories_collection=settings.categories_collection,
        analytics_collection=settings.analytics_collection,
    )
    provider = TaskProvider(
        subscriptions,
        service,
        page_size=settings.page_size,
        search_debounce_seconds=settings.search_debounce_seconds,
        filter_memo_limit=settings.filter_memo_limit,
        load_more_threshold=settings.load_more_threshold,
    )

    return AppState(
        settings=settings,
        store=store,
        cache=cache,
        subscriptions=subscriptions,
        service=service,
        provider=provider,
        user_id=settings.user_id,
    )


def start_session(state: AppState) -> None:
    """Start background work (needs a running loop) and begin mirroring the user's tasks."""
    state.cache.start_cleanup(getattr(state.settings, "cache_cleanup_interval_seconds", 60.0))
    state.provider.load_tasks(state.user_id)


async def shutdown_state(state: AppState) -> None:
    """Best-effort shutdown (no exceptions should escape)."""
    try:
        state.provider.close()
    except Exception:
        logger.exception("Provider close failed.")

    try:
        state.subscriptions.close()
    except Exception:
        logger.exception("Subscription manager close failed.")

    try:
        await state.cache.close()
    except Exception:
        logger.exception("Cache close failed.")
