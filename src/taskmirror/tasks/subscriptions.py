# src/taskmirror/tasks/subscriptions.py

from __future__ import annotations

"""
Subscription manager.

Owns at most ONE live query per cache key and fans its pushes out:
- decode each record (bad records are dropped and counted, never fatal),
- sort the batch by updated_at descending,
- replace the cache entry,
- emit the snapshot to every attached TaskStream.

Every live query is tagged with a generation number. A callback carrying a
generation that is no longer current for its key belongs to a superseded
query and is discarded before it can touch the cache or any stream.
"""

import asyncio
import functools
import logging
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field

from ..core.errors import SubscriptionError
from ..core.ports import Document, RemoteTaskStore, Subscription
from ..core.query import where
from .task_cache import TaskCache, cache_key
from .task_codec import decode_batch
from .task_models import Task

logger = logging.getLogger(__name__)

DataListener = Callable[[list[Task]], None]
ErrorListener = Callable[[SubscriptionError], None]


class TaskStream:
    """
    Downstream side of a subscription.

    Two ways to consume it:
    - listen(on_data, on_error): callbacks, invoked synchronously on every push;
      an already-resolved snapshot (cache hit) is delivered immediately;
    - `async for tasks in stream`: snapshots the consumer has not picked up yet
      are conflated to the latest one. An error is raised from the iterator.

    cancel() detaches the stream; the manager cancels the underlying live
    query once no stream is attached any more.
    """

    def __init__(self, key: str, *, on_cancel: Callable[[TaskStream], None] | None = None) -> None:
        self.key = key
        self.generation: int | None = None
        self.latest: list[Task] | None = None
        self.error: SubscriptionError | None = None

        self._on_cancel = on_cancel
        self._listeners: list[tuple[DataListener, ErrorListener | None]] = []
        self._pending: deque[list[Task] | SubscriptionError] = deque()
        self._wakeup = asyncio.Event()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def listen(self, on_data: DataListener, on_error: ErrorListener | None = None) -> TaskStream:
        if self.latest is not None:
            on_data(list(self.latest))
        if self.error is not None and on_error is not None:
            on_error(self.error)
        if not self._closed:
            self._listeners.append((on_data, on_error))
        return self

    def cancel(self) -> None:
        if self._closed:
            return
        self._close()
        if self._on_cancel is not None:
            self._on_cancel(self)

    # ---- async iteration ----

    def __aiter__(self) -> TaskStream:
        return self

    async def __anext__(self) -> list[Task]:
        while not self._pending:
            if self._closed:
                raise StopAsyncIteration
            self._wakeup.clear()
            await self._wakeup.wait()
        item = self._pending.popleft()
        if isinstance(item, SubscriptionError):
            raise item
        return list(item)

    # ---- manager side ----

    def _emit(self, tasks: list[Task]) -> None:
        if self._closed:
            return
        self.latest = tasks
        if self._pending and not isinstance(self._pending[-1], SubscriptionError):
            self._pending[-1] = tasks
        else:
            self._pending.append(tasks)
        self._wakeup.set()

        for on_data, _ in list(self._listeners):
            try:
                on_data(list(tasks))
            except Exception:
                logger.exception("Task stream listener crashed key=%s", self.key)

    def _fail(self, err: SubscriptionError) -> None:
        if self._closed:
            return
        self.error = err
        self._pending.append(err)
        for _, on_error in list(self._listeners):
            if on_error is None:
                continue
            try:
                on_error(err)
            except Exception:
                logger.exception("Task stream error listener crashed key=%s", self.key)
        self._close()

    def _close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._listeners.clear()
        self._wakeup.set()


@dataclass(slots=True)
class _LiveQuery:
    generation: int
    streams: list[TaskStream] = field(default_factory=list)
    handle: Subscription | None = None


class SubscriptionManager:
    """
    Maps each user to at most one live query against the remote store.

    subscribe(user_id):
    - cache hit + live query  -> stream resolved from cache, attached to the live query
    - cache hit, no live query -> stream resolved from cache and closed; no store call
    - cache miss              -> cancel the previous live query (if any), open a new one
    """

    def __init__(
        self,
        store: RemoteTaskStore,
        cache: TaskCache,
        *,
        collection: str = "tasks",
    ) -> None:
        self._store = store
        self._cache = cache
        self._collection = collection
        self._active: dict[str, _LiveQuery] = {}
        self._generation = 0
        self.dropped_records = 0

    @property
    def cache(self) -> TaskCache:
        return self._cache

    @property
    def active_count(self) -> int:
        return len(self._active)

    def is_active(self, user_id: str) -> bool:
        return cache_key(user_id) in self._active

    def generation_of(self, user_id: str) -> int | None:
        live = self._active.get(cache_key(user_id))
        return None if live is None else live.generation

    def subscribe(self, user_id: str) -> TaskStream:
        if not user_id:
            raise ValueError("user_id is required")

        key = cache_key(user_id)
        stream = TaskStream(key, on_cancel=self._detach)
        live = self._active.get(key)

        cached = self._cache.get(key)
        if cached is not None:
            logger.debug("Returning cached tasks key=%s count=%d", key, len(cached))
            stream._emit(cached)
            if live is not None:
                stream.generation = live.generation
                live.streams.append(stream)
            else:
                stream._close()
            return stream

        if live is not None:
            logger.debug("Replacing live query key=%s generation=%s", key, live.generation)
            self._cancel(key, live)

        self._open(user_id, key, stream)
        return stream

    def unsubscribe(self, user_id: str) -> None:
        key = cache_key(user_id)
        live = self._active.get(key)
        if live is None:
            return
        self._cancel(key, live)
        logger.debug("Unsubscribed key=%s generation=%s", key, live.generation)

    def close(self) -> None:
        for key, live in list(self._active.items()):
            self._cancel(key, live)

    # ---- internals ----

    def _open(self, user_id: str, key: str, stream: TaskStream) -> None:
        self._generation += 1
        gen = self._generation
        live = _LiveQuery(generation=gen, streams=[stream])
        stream.generation = gen
        # Registered before query() so a synchronous first push passes the generation check.
        self._active[key] = live

        try:
            handle = self._store.query(
                self._collection,
                [where("userId", "==", user_id)],
                on_snapshot=functools.partial(self._on_snapshot, key, gen),
                on_error=functools.partial(self._on_error, key, gen),
            )
        except Exception as e:
            logger.warning("Opening live query failed key=%s: %s", key, e)
            if self._active.get(key) is live:
                del self._active[key]
            self._cache.invalidate(key)
            stream._fail(SubscriptionError(key, e))
            return

        if self._active.get(key) is live:
            live.handle = handle
            logger.debug("Live query opened key=%s generation=%s", key, gen)
        else:
            # Failed or superseded while opening.
            self._cancel_handle(key, handle)

    def _cancel(self, key: str, live: _LiveQuery) -> None:
        if self._active.get(key) is live:
            del self._active[key]
        if live.handle is not None:
            self._cancel_handle(key, live.handle)
            live.handle = None
        for s in live.streams:
            s._close()
        live.streams.clear()

    @staticmethod
    def _cancel_handle(key: str, handle: Subscription) -> None:
        try:
            handle.cancel()
        except Exception:
            logger.exception("Cancelling live query failed key=%s", key)

    def _detach(self, stream: TaskStream) -> None:
        live = self._active.get(stream.key)
        if live is None or stream not in live.streams:
            return
        live.streams.remove(stream)
        if not live.streams:
            self._cancel(stream.key, live)

    def _current(self, key: str, gen: int) -> _LiveQuery | None:
        live = self._active.get(key)
        if live is None or live.generation != gen:
            return None
        return live

    def _on_snapshot(self, key: str, gen: int, docs: list[Document]) -> None:
        live = self._current(key, gen)
        if live is None:
            logger.debug("Discarding stale push key=%s generation=%s", key, gen)
            return

        tasks, dropped = decode_batch(docs)
        if dropped:
            self.dropped_records += dropped

        tasks.sort(key=lambda t: t.updated_at, reverse=True)
        self._cache.put(key, tasks)
        logger.debug("Received %d tasks key=%s dropped=%d", len(tasks), key, dropped)

        for s in list(live.streams):
            s._emit(tasks)

    def _on_error(self, key: str, gen: int, exc: BaseException) -> None:
        live = self._current(key, gen)
        if live is None:
            logger.debug("Discarding stale error key=%s generation=%s: %s", key, gen, exc)
            return

        logger.warning("Live query failed key=%s generation=%s: %s", key, gen, exc)
        err = exc if isinstance(exc, SubscriptionError) else SubscriptionError(key, exc)

        del self._active[key]
        self._cache.invalidate(key)
        if live.handle is not None:
            self._cancel_handle(key, live.handle)
            live.handle = None

        streams, live.streams = live.streams, []
        for s in streams:
            s._fail(err)
