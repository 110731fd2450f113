# tests/test_task_filter.py

from __future__ import annotations

import asyncio
from dataclasses import replace

import pytest

from taskmirror.tasks.task_filter import (
    Debouncer,
    FilterMemo,
    TaskFilter,
    filter_partitioned,
    filter_tasks,
    partition_by_status,
)
from taskmirror.tasks.task_models import Task, TaskPriority, TaskStatus


def _task(tid: str, title: str, **kw) -> Task:
    base = Task.create(title=title, user_id="u1", now=1.0)
    return replace(base, id=tid, **kw)


@pytest.fixture()
def tasks() -> list[Task]:
    return [
        _task("1", "Buy milk", priority=TaskPriority.HIGH, category="home", tags=("errands",)),
        _task("2", "Write report", status=TaskStatus.IN_PROGRESS, category="work", description="Quarterly NUMBERS"),
        _task("3", "Call plumber", priority=TaskPriority.HIGH, status=TaskStatus.COMPLETED, category="home"),
        _task("4", "Plan sprint", priority=TaskPriority.LOW, category="work", tags=("Planning",)),
    ]


def _ids(items: list[Task]) -> list[str]:
    return [t.id for t in items]


def test_empty_filter_returns_everything_in_order(tasks: list[Task]) -> None:
    assert _ids(filter_tasks(tasks, TaskFilter())) == ["1", "2", "3", "4"]


def test_filters_compose_as_logical_and(tasks: list[Task]) -> None:
    spec = TaskFilter(priority=TaskPriority.HIGH, category="home")
    assert _ids(filter_tasks(tasks, spec)) == ["1", "3"]
    spec = replace(spec, status=TaskStatus.PENDING)
    assert _ids(filter_tasks(tasks, spec)) == ["1"]


@pytest.mark.parametrize(
    ("query", "expected"),
    [("MILK", ["1"]), ("numbers", ["2"]), ("planning", ["4"]), ("pl", ["3", "4"]), ("zzz", [])],
)
def test_search_is_case_insensitive_over_title_description_tags(
    tasks: list[Task], query: str, expected: list[str]
) -> None:
    assert _ids(filter_tasks(tasks, TaskFilter(search_query=query))) == expected


def test_filter_is_pure(tasks: list[Task]) -> None:
    before = list(tasks)
    spec = TaskFilter(category="work", search_query="p")
    first = filter_tasks(tasks, spec)
    second = filter_tasks(tasks, spec)
    assert first == second
    assert first is not second
    assert tasks == before


def test_empty_category_means_unset() -> None:
    assert TaskFilter(category="") == TaskFilter()
    assert TaskFilter(category="").is_empty


def test_partitioned_status_filter_matches_plain_filter(tasks: list[Task]) -> None:
    by_status = partition_by_status(tasks)
    for status in TaskStatus:
        for spec in (TaskFilter(status=status), TaskFilter(status=status, category="home")):
            assert filter_partitioned(tasks, by_status, spec) == filter_tasks(tasks, spec)


def test_memo_computes_once_per_signature() -> None:
    memo = FilterMemo(limit=10)
    calls = []

    def compute() -> list[Task]:
        calls.append(1)
        return []

    spec = TaskFilter(status=TaskStatus.PENDING)
    memo.get_or_compute(spec, compute)
    memo.get_or_compute(TaskFilter(status=TaskStatus.PENDING), compute)
    assert len(calls) == 1
    assert memo.computations == 1

    memo.invalidate()
    memo.get_or_compute(spec, compute)
    assert len(calls) == 2


def test_memo_is_cleared_when_it_exceeds_limit() -> None:
    memo = FilterMemo(limit=2)
    for q in ("a", "b"):
        memo.get_or_compute(TaskFilter(search_query=q), list)
    assert len(memo) == 2
    memo.get_or_compute(TaskFilter(search_query="c"), list)
    assert len(memo) == 0


@pytest.mark.asyncio
async def test_debouncer_delivers_only_last_value() -> None:
    delivered: list[str] = []
    debouncer: Debouncer[str] = Debouncer(0.05, delivered.append)

    for q in ("m", "mi", "mil", "milk"):
        debouncer.call(q)
        await asyncio.sleep(0.01)
    assert delivered == []
    assert debouncer.pending

    await asyncio.sleep(0.1)
    assert delivered == ["milk"]
    assert not debouncer.pending


@pytest.mark.asyncio
async def test_debouncer_cancel_drops_pending_value() -> None:
    delivered: list[str] = []
    debouncer: Debouncer[str] = Debouncer(0.02, delivered.append)
    debouncer.call("x")
    debouncer.cancel()
    await asyncio.sleep(0.05)
    assert delivered == []
