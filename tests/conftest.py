# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from taskmirror.core.state import AppState
from taskmirror.tasks.subscriptions import SubscriptionManager
from taskmirror.tasks.task_cache import TaskCache
from taskmirror.tasks.task_provider import TaskProvider
from taskmirror.tasks.task_service import TaskService

from .fakes import FakeClock, FakeRemoteStore


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with AppState and bootstrap.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        app_name="taskmirror-test",
        log_level="DEBUG",
        console_enabled=False,
        user_id="u1",
        tasks_collection="tasks",
        categories_collection="categories",
        analytics_collection="analytics",
        # Paths (tmp per test run)
        data_dir=tmp_path,
        store_db_path=tmp_path / "tasks.sqlite3",
        # Cache / filters / pagination
        cache_ttl_seconds=300.0,
        cache_cleanup_interval_seconds=60.0,
        filter_memo_limit=10,
        search_debounce_ms=300,
        search_debounce_seconds=0.3,
        page_size=20,
        load_more_threshold=200.0,
    )


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def store() -> FakeRemoteStore:
    return FakeRemoteStore()


@pytest.fixture()
def cache(clock: FakeClock) -> TaskCache:
    return TaskCache(ttl_seconds=300.0, clock=clock)


@pytest.fixture()
def manager(store: FakeRemoteStore, cache: TaskCache) -> SubscriptionManager:
    return SubscriptionManager(store, cache)


@pytest.fixture()
def service(store: FakeRemoteStore, clock: FakeClock) -> TaskService:
    return TaskService(store, clock=clock)


@pytest.fixture()
def provider(manager: SubscriptionManager, service: TaskService, clock: FakeClock) -> TaskProvider:
    return TaskProvider(
        manager,
        service,
        page_size=20,
        search_debounce_seconds=0.05,
        filter_memo_limit=10,
        clock=clock,
    )


@pytest.fixture()
def state(
    settings: SimpleNamespace,
    store: FakeRemoteStore,
    cache: TaskCache,
    manager: SubscriptionManager,
    service: TaskService,
    provider: TaskProvider,
) -> AppState:
    """AppState wired with the in-memory fake store."""
    return AppState(
        settings=settings,
        store=store,
        cache=cache,
        subscriptions=manager,
        service=service,
        provider=provider,
        user_id="u1",
    )
