# src/taskmirror/tasks/task_views.py

from __future__ import annotations

import time
from collections.abc import Iterable
from datetime import datetime, timedelta

from .task_models import Task, TaskStatus


def overdue_tasks(tasks: Iterable[Task], now: float | None = None) -> list[Task]:
    ts = time.time() if now is None else now
    return [t for t in tasks if t.is_overdue(ts)]


def tasks_due_soon(tasks: Iterable[Task], now: float | None = None) -> list[Task]:
    ts = time.time() if now is None else now
    return [t for t in tasks if t.is_due_soon(ts)]


def _local_day_bounds(now: float) -> tuple[float, float]:
    start = datetime.fromtimestamp(now).replace(hour=0, minute=0, second=0, microsecond=0)
    return start.timestamp(), (start + timedelta(days=1)).timestamp()


def is_due_today(task: Task, now: float | None = None) -> bool:
    """Due date falls inside the local calendar day of `now` (any status)."""
    if task.due_at is None:
        return False
    start, end = _local_day_bounds(time.time() if now is None else now)
    return start <= task.due_at < end


def tasks_due_today(tasks: Iterable[Task], now: float | None = None) -> list[Task]:
    ts = time.time() if now is None else now
    return [t for t in tasks if is_due_today(t, ts)]


def task_statistics(tasks: Iterable[Task], now: float | None = None) -> dict[str, int]:
    ts = time.time() if now is None else now
    items = list(tasks)
    by_status = {s: 0 for s in TaskStatus}
    for t in items:
        by_status[t.status] += 1

    return {
        "total": len(items),
        "pending": by_status[TaskStatus.PENDING],
        "in_progress": by_status[TaskStatus.IN_PROGRESS],
        "completed": by_status[TaskStatus.COMPLETED],
        "cancelled": by_status[TaskStatus.CANCELLED],
        "overdue": sum(1 for t in items if t.is_overdue(ts)),
        "due_soon": sum(1 for t in items if t.is_due_soon(ts)),
        "due_today": sum(1 for t in items if is_due_today(t, ts)),
    }
