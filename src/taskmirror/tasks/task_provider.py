# src/taskmirror/tasks/task_provider.py

from __future__ import annotations

"""
TaskProvider: the surface application / UI code talks to.

- load_tasks(user_id) wires the cache/subscription pipeline (idempotent),
- read accessors are synchronous views over the last materialized snapshot,
- filter mutators recompute synchronously, except the search query (debounced),
- mutations pass straight through to the store and report a MutationResult;
  the snapshot only changes when the next push arrives.
"""

import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, replace
from typing import Any

from ..core.errors import MutationError, SubscriptionError
from ..core.ports import Record
from .paginator import DEFAULT_LOAD_MORE_THRESHOLD, Paginator, should_load_more
from .subscriptions import SubscriptionManager, TaskStream
from .task_filter import Debouncer, FilterMemo, TaskFilter, filter_partitioned, partition_by_status
from .task_models import Task, TaskPriority, TaskStatus
from .task_service import DEFAULT_CATEGORY_COLOR, TaskService
from .task_views import overdue_tasks, task_statistics, tasks_due_soon, tasks_due_today

logger = logging.getLogger(__name__)

Listener = Callable[[], None]


@dataclass(frozen=True, slots=True)
class MutationResult:
    ok: bool
    error: MutationError | None = None
    task_id: str | None = None

    def __bool__(self) -> bool:
        return self.ok


class TaskProvider:
    def __init__(
        self,
        subscriptions: SubscriptionManager,
        service: TaskService,
        *,
        page_size: int = 20,
        search_debounce_seconds: float = 0.3,
        filter_memo_limit: int = 10,
        load_more_threshold: float = DEFAULT_LOAD_MORE_THRESHOLD,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._subscriptions = subscriptions
        self._service = service
        self._clock = clock
        self._load_more_threshold = load_more_threshold

        self._all_tasks: list[Task] = []
        self._by_status: dict[TaskStatus, list[Task]] = partition_by_status([])
        self._filter = TaskFilter()
        self._memo = FilterMemo(limit=filter_memo_limit)
        self._search = Debouncer(search_debounce_seconds, self._apply_search_query)
        self.paginator = Paginator(page_size)

        self._user_id: str | None = None
        self._stream: TaskStream | None = None
        self._listeners: list[Listener] = []

        self.is_loading = False
        self.error: Exception | None = None
        self.categories: list[Record] = []
        self.analytics: Record = {}

    # ---- change notification ----

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception:
                logger.exception("TaskProvider listener crashed")

    # ---- loading ----

    @property
    def user_id(self) -> str | None:
        return self._user_id

    def load_tasks(self, user_id: str) -> None:
        """Safe to call on every rebuild: a live pipeline for the same user is reused."""
        if not user_id:
            raise ValueError("user_id is required")

        if (
            user_id == self._user_id
            and self._stream is not None
            and not self._stream.closed
            and self._subscriptions.is_active(user_id)
        ):
            logger.debug("Skipping task reload - live data available user=%s", user_id)
            return

        previous = self._user_id
        if self._stream is not None:
            self._stream.cancel()
            self._stream = None
        if previous is not None and previous != user_id:
            self._subscriptions.unsubscribe(previous)
            self._set_tasks([])
            self.paginator.reset()
            self.categories = []
            self.analytics = {}

        self._user_id = user_id
        self.error = None
        self.is_loading = True
        logger.info("Loading tasks for user=%s", user_id)

        stream = self._subscriptions.subscribe(user_id)
        self._stream = stream
        # A cache hit is delivered synchronously from inside listen().
        stream.listen(self._on_tasks, self._on_error)
        self._notify()

    def _on_tasks(self, tasks: list[Task]) -> None:
        self._set_tasks(tasks)
        self.is_loading = False
        self._notify()

    def _on_error(self, err: SubscriptionError) -> None:
        logger.warning("Task stream failed user=%s: %s", self._user_id, err)
        self.error = err
        self.is_loading = False
        self._notify()

    def _set_tasks(self, tasks: list[Task]) -> None:
        self._all_tasks = list(tasks)
        self._by_status = partition_by_status(self._all_tasks)
        self._memo.invalidate()

    # ---- read accessors ----

    @property
    def filter(self) -> TaskFilter:
        return self._filter

    @property
    def tasks(self) -> list[Task]:
        """Filtered view (memoized per filter signature for the current snapshot)."""
        spec = self._filter
        result = self._memo.get_or_compute(
            spec, lambda: filter_partitioned(self._all_tasks, self._by_status, spec)
        )
        return list(result)

    @property
    def filter_computations(self) -> int:
        return self._memo.computations

    @property
    def all_tasks(self) -> list[Task]:
        return list(self._all_tasks)

    @property
    def visible_tasks(self) -> list[Task]:
        return self.paginator.visible_slice(self.tasks)

    def get_tasks_by_status(self, status: TaskStatus) -> list[Task]:
        return list(self._by_status.get(status, []))

    @property
    def overdue_tasks(self) -> list[Task]:
        return overdue_tasks(self._all_tasks, self._clock())

    @property
    def tasks_due_today(self) -> list[Task]:
        return tasks_due_today(self._all_tasks, self._clock())

    @property
    def tasks_due_soon(self) -> list[Task]:
        return tasks_due_soon(self._all_tasks, self._clock())

    def statistics(self) -> dict[str, int]:
        return task_statistics(self._all_tasks, self._clock())

    @property
    def total_count(self) -> int:
        return len(self._all_tasks)

    @property
    def pending_count(self) -> int:
        return len(self._by_status[TaskStatus.PENDING])

    @property
    def in_progress_count(self) -> int:
        return len(self._by_status[TaskStatus.IN_PROGRESS])

    @property
    def completed_count(self) -> int:
        return len(self._by_status[TaskStatus.COMPLETED])

    # ---- pagination ----

    def load_more(self) -> bool:
        self.visible_tasks  # refresh the paginator's view of the list length
        advanced = self.paginator.advance()
        if advanced:
            self._notify()
        return advanced

    def on_scroll(self, pixels: float, max_extent: float) -> bool:
        if should_load_more(pixels, max_extent, self._load_more_threshold):
            return self.load_more()
        return False

    # ---- filters ----

    def _set_filter(self, spec: TaskFilter) -> None:
        if spec == self._filter:
            return
        self._filter = spec
        self.paginator.reset()
        self._notify()

    def set_status_filter(self, status: TaskStatus | None) -> None:
        self._set_filter(replace(self._filter, status=status))

    def set_priority_filter(self, priority: TaskPriority | None) -> None:
        self._set_filter(replace(self._filter, priority=priority))

    def set_category_filter(self, category: str | None) -> None:
        self._set_filter(replace(self._filter, category=category))

    def set_search_query(self, query: str) -> None:
        """Debounced: only the last query within the quiet period is applied."""
        self._search.call(query)

    def _apply_search_query(self, query: str) -> None:
        self._set_filter(replace(self._filter, search_query=query))

    def clear_filters(self) -> None:
        self._search.cancel()
        self._set_filter(TaskFilter())

    def clear_error(self) -> None:
        self.error = None
        self._notify()

    # ---- mutations ----

    async def _mutate(self, operation: str, call: Callable[[], Awaitable[Any]]) -> MutationResult:
        self.is_loading = True
        self.error = None
        self._notify()
        try:
            value = await call()
        except MutationError as e:
            logger.debug("%s reported failure: %s", operation, e)
            self.error = e
            return MutationResult(ok=False, error=e)
        finally:
            self.is_loading = False
            self._notify()
        return MutationResult(ok=True, task_id=value if isinstance(value, str) else None)

    async def create_task(self, task: Task) -> MutationResult:
        return await self._mutate("create_task", lambda: self._service.create_task(task))

    async def update_task(self, task: Task) -> MutationResult:
        return await self._mutate("update_task", lambda: self._service.update_task(task))

    async def delete_task(self, task_id: str) -> MutationResult:
        return await self._mutate("delete_task", lambda: self._service.delete_task(task_id))

    async def complete_task(self, task_id: str) -> MutationResult:
        return await self._mutate("complete_task", lambda: self._service.complete_task(task_id))

    async def update_task_status(self, task_id: str, status: TaskStatus) -> MutationResult:
        return await self._mutate(
            "update_task_status", lambda: self._service.update_task_status(task_id, status)
        )

    async def update_task_priority(self, task_id: str, priority: TaskPriority) -> MutationResult:
        return await self._mutate(
            "update_task_priority", lambda: self._service.update_task_priority(task_id, priority)
        )

    async def update_task_progress(self, task_id: str, progress: float) -> MutationResult:
        return await self._mutate(
            "update_task_progress", lambda: self._service.update_task_progress(task_id, progress)
        )

    async def toggle_subtask(self, task_id: str, subtask_id: str) -> MutationResult:
        return await self._mutate(
            "toggle_subtask", lambda: self._service.toggle_subtask(task_id, subtask_id)
        )

    async def add_attachment(self, task_id: str, *, name: str, url: str, size: int = 0) -> MutationResult:
        return await self._mutate(
            "add_attachment",
            lambda: self._service.add_attachment(task_id, name=name, url=url, size=size),
        )

    async def remove_attachment(self, task_id: str, attachment_id: str) -> MutationResult:
        return await self._mutate(
            "remove_attachment", lambda: self._service.remove_attachment(task_id, attachment_id)
        )

    async def bulk_update_tasks(self, task_ids: list[str], patch: Record) -> MutationResult:
        return await self._mutate(
            "bulk_update_tasks", lambda: self._service.bulk_update_tasks(task_ids, patch)
        )

    async def bulk_delete_tasks(self, task_ids: list[str]) -> MutationResult:
        return await self._mutate("bulk_delete_tasks", lambda: self._service.bulk_delete_tasks(task_ids))

    async def delete_all_tasks(self) -> MutationResult:
        user_id = self._user_id or ""
        return await self._mutate(
            "delete_all_tasks", lambda: self._service.delete_all_user_tasks(user_id)
        )

    async def create_category(self, name: str, color: str = DEFAULT_CATEGORY_COLOR) -> MutationResult:
        """On success `task_id` carries the new category id; the category list is refreshed."""
        user_id = self._user_id or ""
        result = await self._mutate(
            "create_category", lambda: self._service.create_category(user_id, name, color)
        )
        if result:
            await self.refresh_categories()
        return result

    # ---- side data (categories, activity counters) ----

    async def refresh_categories(self) -> list[Record]:
        if self._user_id is None:
            return self.categories
        try:
            self.categories = await self._service.get_user_categories(self._user_id)
        except MutationError as e:
            logger.warning("Loading categories failed user=%s: %s", self._user_id, e)
            return self.categories
        self._notify()
        return self.categories

    async def refresh_analytics(self) -> Record:
        if self._user_id is None:
            return self.analytics
        try:
            self.analytics = await self._service.get_user_analytics(self._user_id)
        except MutationError as e:
            logger.warning("Loading analytics failed user=%s: %s", self._user_id, e)
            return self.analytics
        self._notify()
        return self.analytics

    # ---- teardown ----

    def close(self) -> None:
        self._search.cancel()
        if self._stream is not None:
            self._stream.cancel()
            self._stream = None
        if self._user_id is not None:
            self._subscriptions.unsubscribe(self._user_id)
        self._listeners.clear()
