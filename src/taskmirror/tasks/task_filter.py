# src/taskmirror/tasks/task_filter.py

from __future__ import annotations

"""
Filter engine.

filter_tasks() is a pure function: same list + same TaskFilter -> same result,
input never mutated. That is what makes memoizing by TaskFilter valid.
"""

import asyncio
import logging
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, replace
from typing import Generic, TypeVar

from .task_models import Task, TaskPriority, TaskStatus

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class TaskFilter:
    """Filter signature. An unset field matches everything."""

    status: TaskStatus | None = None
    priority: TaskPriority | None = None
    category: str | None = None
    search_query: str = ""

    def __post_init__(self) -> None:
        # Empty category means "no category filter".
        if self.category is not None and not self.category:
            object.__setattr__(self, "category", None)

    @property
    def is_empty(self) -> bool:
        return (
            self.status is None
            and self.priority is None
            and self.category is None
            and not self.search_query
        )


def matches_search(task: Task, query: str) -> bool:
    """Case-insensitive substring match against title, description or any tag."""
    if not query:
        return True
    q = query.lower()
    return (
        q in task.title.lower()
        or q in task.description.lower()
        or any(q in tag.lower() for tag in task.tags)
    )


def matches_filter(task: Task, spec: TaskFilter) -> bool:
    if spec.status is not None and task.status != spec.status:
        return False
    if spec.priority is not None and task.priority != spec.priority:
        return False
    if spec.category is not None and task.category != spec.category:
        return False
    return matches_search(task, spec.search_query)


def filter_tasks(tasks: Iterable[Task], spec: TaskFilter) -> list[Task]:
    return [t for t in tasks if matches_filter(t, spec)]


def partition_by_status(tasks: Iterable[Task]) -> dict[TaskStatus, list[Task]]:
    """Pre-partitioned lists (order preserved) so a status filter is a dict lookup."""
    out: dict[TaskStatus, list[Task]] = {s: [] for s in TaskStatus}
    for t in tasks:
        out[t.status].append(t)
    return out


def filter_partitioned(
        tasks: Sequence[Task],
        by_status: dict[TaskStatus, list[Task]],
        spec: TaskFilter,
) -> list[Task]:
    """Same result as filter_tasks(tasks, spec), starting from the status partition."""
    if spec.status is None:
        return filter_tasks(tasks, spec)
    return filter_tasks(by_status.get(spec.status, []), replace(spec, status=None))


class FilterMemo:
    """
    TaskFilter -> result, valid for ONE generation of the task list.

    invalidate() must be called whenever a new snapshot arrives. Once more
    than `limit` signatures are tracked the whole memo is dropped.
    """

    def __init__(self, limit: int = 10) -> None:
        self._limit = max(1, int(limit))
        self._results: dict[TaskFilter, list[Task]] = {}
        self.computations = 0

    def __len__(self) -> int:
        return len(self._results)

    def get_or_compute(self, spec: TaskFilter, compute: Callable[[], list[Task]]) -> list[Task]:
        hit = self._results.get(spec)
        if hit is not None:
            return hit
        result = compute()
        self.computations += 1
        self._results[spec] = result
        if len(self._results) > self._limit:
            self._results.clear()
        return result

    def invalidate(self) -> None:
        self._results.clear()


class Debouncer(Generic[T]):
    """
    Coalesce rapid calls: only the last value is delivered, delay_seconds after
    the last call. Must be used from inside a running event loop.
    """

    def __init__(self, delay_seconds: float, callback: Callable[[T], None]) -> None:
        self._delay = max(0.0, float(delay_seconds))
        self._callback = callback
        self._handle: asyncio.TimerHandle | None = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def call(self, value: T) -> None:
        self.cancel()
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self._delay, self._fire, value)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self, value: T) -> None:
        self._handle = None
        try:
            self._callback(value)
        except Exception:
            logger.exception("Debounced callback failed")
