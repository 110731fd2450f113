# src/taskmirror/core/state.py

from __future__ import annotations

from dataclasses import dataclass

from ..tasks.subscriptions import SubscriptionManager
from ..tasks.task_cache import TaskCache
from ..tasks.task_provider import TaskProvider
from ..tasks.task_service import TaskService
from .ports import RemoteTaskStore


@dataclass
class AppState:
    """
    One session's worth of components.

    Everything is constructed explicitly (see cli/bootstrap.py) and torn down
    with the session; nothing here is a process-wide singleton.
    """

    # Settings object (real Settings or a test SimpleNamespace).
    settings: object

    store: RemoteTaskStore
    cache: TaskCache
    subscriptions: SubscriptionManager
    service: TaskService
    provider: TaskProvider

    user_id: str
