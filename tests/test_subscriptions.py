# tests/test_subscriptions.py

from __future__ import annotations

import asyncio

import pytest

from taskmirror.core.errors import SubscriptionError
from taskmirror.core.ports import Document
from taskmirror.tasks.subscriptions import SubscriptionManager
from taskmirror.tasks.task_cache import TaskCache, cache_key

from .fakes import FakeClock, FakeRemoteStore, make_record


def _doc(doc_id: str, updated_at: float, user_id: str = "u1") -> Document:
    return Document(doc_id, make_record(user_id, doc_id, created_at=1.0, updated_at=updated_at))


def test_miss_opens_one_filtered_query(store: FakeRemoteStore, manager: SubscriptionManager) -> None:
    manager.subscribe("u1")
    assert len(store.queries) == 1
    q = store.queries[0]
    assert q.collection == "tasks"
    assert [(p.field, p.op, p.value) for p in q.predicates] == [("userId", "==", "u1")]
    assert manager.is_active("u1")
    assert manager.active_count == 1


def test_push_is_sorted_cached_and_forwarded(
    store: FakeRemoteStore, manager: SubscriptionManager, cache: TaskCache
) -> None:
    received = []
    manager.subscribe("u1").listen(received.append)
    store.queries[0].push([_doc("a", 1.0), _doc("b", 3.0), _doc("c", 2.0)])

    assert [t.id for t in received[-1]] == ["b", "c", "a"]
    assert [t.id for t in cache.get(cache_key("u1"))] == ["b", "c", "a"]


def test_bad_records_are_dropped_and_counted(store: FakeRemoteStore, manager: SubscriptionManager) -> None:
    received = []
    manager.subscribe("u1").listen(received.append)
    store.queries[0].push([_doc("a", 1.0), Document("bad", {"userId": "u1"})])

    assert [t.id for t in received[-1]] == ["a"]
    assert manager.dropped_records == 1


def test_cache_hit_with_live_query_attaches_without_store_call(
    store: FakeRemoteStore, manager: SubscriptionManager
) -> None:
    manager.subscribe("u1")
    store.queries[0].push([_doc("a", 1.0)])

    second = []
    stream = manager.subscribe("u1").listen(second.append)
    # Resolved synchronously from the cache.
    assert [t.id for t in second[0]] == ["a"]
    assert len(store.queries) == 1

    # Later pushes reach the attached stream too.
    store.queries[0].push([_doc("a", 1.0), _doc("b", 2.0)])
    assert [t.id for t in second[-1]] == ["b", "a"]
    assert stream.generation == manager.generation_of("u1")


def test_cache_hit_without_live_query_resolves_from_cache_only(
    store: FakeRemoteStore, manager: SubscriptionManager, clock: FakeClock
) -> None:
    first = manager.subscribe("u1")
    store.queries[0].push([_doc("a", 1.0)])
    first.cancel()
    assert not manager.is_active("u1")
    assert store.queries[0].cancelled

    seen = []
    stream = manager.subscribe("u1").listen(seen.append)
    assert [t.id for t in seen[0]] == ["a"]
    assert stream.closed
    assert len(store.queries) == 1
    assert not manager.is_active("u1")

    # Once the entry expires the next subscribe goes back to the store.
    clock.advance(301)
    manager.subscribe("u1")
    assert len(store.queries) == 2
    assert manager.is_active("u1")


@pytest.mark.asyncio
async def test_cache_only_stream_yields_once_then_ends(store: FakeRemoteStore, manager: SubscriptionManager) -> None:
    manager.subscribe("u1")
    store.queries[0].push([_doc("a", 1.0)])
    manager.unsubscribe("u1")

    snapshots = [tasks async for tasks in manager.subscribe("u1")]
    assert [[t.id for t in s] for s in snapshots] == [["a"]]


def test_out_of_range_record_does_not_block_the_push(
    store: FakeRemoteStore, manager: SubscriptionManager, cache: TaskCache
) -> None:
    seen = []
    manager.subscribe("u1").listen(seen.append)
    store.queries[0].push(
        [
            _doc("ok", 1.0),
            Document("far", make_record("u1", "far", dueDate=10**400)),
            Document("inf", make_record("u1", "inf", attachments=[{"size": float("inf"), "uploadedAt": 1}])),
        ]
    )

    assert [t.id for t in seen[-1]] == ["ok"]
    assert [t.id for t in cache.get(cache_key("u1"))] == ["ok"]
    assert manager.dropped_records == 2

    store.queries[0].push([_doc("ok", 1.0), _doc("next", 2.0)])
    assert [t.id for t in seen[-1]] == ["next", "ok"]


def test_cache_miss_replaces_live_query_and_rejects_stale_push(
    store: FakeRemoteStore, manager: SubscriptionManager, cache: TaskCache, clock: FakeClock
) -> None:
    old_stream = manager.subscribe("u1")
    store.queries[0].push([_doc("a", 1.0)])
    old_gen = manager.generation_of("u1")

    clock.advance(301)  # entry expires -> next subscribe is a miss
    new_seen = []
    new_stream = manager.subscribe("u1").listen(new_seen.append)

    assert store.queries[0].cancelled
    assert old_stream.closed
    assert len(store.live) == 1
    assert manager.generation_of("u1") != old_gen

    # A late delivery from the superseded query changes nothing.
    store.queries[0].push([_doc("stale", 9.0)])
    assert new_seen == []
    assert cache.get(cache_key("u1")) is None

    store.queries[1].push([_doc("fresh", 2.0)])
    assert [t.id for t in new_seen[-1]] == ["fresh"]
    assert not new_stream.closed


def test_unsubscribe_is_idempotent(store: FakeRemoteStore, manager: SubscriptionManager) -> None:
    stream = manager.subscribe("u1")
    manager.unsubscribe("u1")
    manager.unsubscribe("u1")
    assert store.queries[0].cancelled
    assert stream.closed
    assert manager.active_count == 0


def test_detach_keeps_query_while_other_streams_remain(
    store: FakeRemoteStore, manager: SubscriptionManager
) -> None:
    a = manager.subscribe("u1")
    store.queries[0].push([_doc("x", 1.0)])
    b = manager.subscribe("u1")

    a.cancel()
    assert not store.queries[0].cancelled
    b.cancel()
    assert store.queries[0].cancelled


def test_transport_error_is_surfaced_and_manager_recovers(
    store: FakeRemoteStore, manager: SubscriptionManager, cache: TaskCache
) -> None:
    errors = []
    stream = manager.subscribe("u1").listen(lambda _: None, errors.append)
    store.queries[0].push([_doc("a", 1.0)])
    store.queries[0].fail(PermissionError("denied"))

    assert len(errors) == 1
    assert isinstance(errors[0], SubscriptionError)
    assert isinstance(errors[0].cause, PermissionError)
    assert stream.closed
    assert not manager.is_active("u1")
    assert cache.get(cache_key("u1")) is None

    seen = []
    manager.subscribe("u1").listen(seen.append)
    assert len(store.queries) == 2
    store.queries[1].push([_doc("b", 2.0)])
    assert [t.id for t in seen[-1]] == ["b"]


def test_stale_error_is_ignored(store: FakeRemoteStore, manager: SubscriptionManager, clock: FakeClock) -> None:
    manager.subscribe("u1")
    clock.advance(301)
    errors = []
    manager.subscribe("u1").listen(lambda _: None, errors.append)

    store.queries[0].fail(RuntimeError("late"))
    assert errors == []
    assert manager.is_active("u1")


def test_query_raising_synchronously_fails_the_stream(store: FakeRemoteStore, manager: SubscriptionManager) -> None:
    store.query_error = ConnectionError("offline")
    errors = []
    stream = manager.subscribe("u1").listen(lambda _: None, errors.append)

    assert stream.closed
    assert isinstance(stream.error, SubscriptionError)
    assert len(errors) == 1
    assert not manager.is_active("u1")


def test_subscribe_requires_user_id(manager: SubscriptionManager) -> None:
    with pytest.raises(ValueError):
        manager.subscribe("")


@pytest.mark.asyncio
async def test_async_iteration_conflates_unread_snapshots(store: FakeRemoteStore, manager: SubscriptionManager) -> None:
    stream = manager.subscribe("u1")
    q = store.queries[0]
    q.push([_doc("a", 1.0)])
    q.push([_doc("a", 1.0), _doc("b", 2.0)])

    it = stream.__aiter__()
    latest = await asyncio.wait_for(it.__anext__(), timeout=1)
    assert [t.id for t in latest] == ["b", "a"]

    q.fail(RuntimeError("boom"))
    with pytest.raises(SubscriptionError):
        await asyncio.wait_for(it.__anext__(), timeout=1)


@pytest.mark.asyncio
async def test_async_iteration_ends_on_cancel(store: FakeRemoteStore, manager: SubscriptionManager) -> None:
    stream = manager.subscribe("u1")
    collected = []

    async def consume() -> None:
        async for tasks in stream:
            collected.append(tasks)

    consumer = asyncio.create_task(consume())
    await asyncio.sleep(0)
    store.queries[0].push([_doc("a", 1.0)])
    await asyncio.sleep(0)
    stream.cancel()
    await asyncio.wait_for(consumer, timeout=1)

    assert [[t.id for t in batch] for batch in collected] == [["a"]]


def test_close_cancels_everything(store: FakeRemoteStore) -> None:
    manager = SubscriptionManager(store, TaskCache(clock=FakeClock()))
    manager.subscribe("u1")
    manager.subscribe("u2")
    manager.close()
    assert manager.active_count == 0
    assert store.live == []
