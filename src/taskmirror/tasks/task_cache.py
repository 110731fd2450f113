# src/taskmirror/tasks/task_cache.py

from __future__ import annotations

"""
Time-boxed in-memory mirror of query results.

An entry is the last FULL snapshot pushed for a key (user id + filter
signature). It is replaced wholesale, never merged, and is considered stale
once its age reaches the TTL:
- get() evicts a stale entry on access,
- run_cache_cleanup() evicts stale entries periodically, so keys nobody reads
  any more do not pin memory.
"""

import asyncio
import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from .task_models import Task

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 300.0
DEFAULT_CLEANUP_INTERVAL_SECONDS = 60.0


def cache_key(user_id: str, signature: str = "all") -> str:
    return f"user_tasks:{user_id}:{signature}"


@dataclass(slots=True, frozen=True)
class _Entry:
    tasks: tuple[Task, ...]
    stored_at: float


class TaskCache:
    """
    TTL cache of task snapshots.

    Single event-loop ownership: no locking. The clock is injectable so the
    TTL can be tested without sleeping.
    """

    def __init__(
        self,
        *,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self._ttl = float(ttl_seconds)
        self._clock = clock
        self._entries: dict[str, _Entry] = {}
        self._cleanup_task: asyncio.Task[None] | None = None

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        """Inspection only: does NOT evict, does NOT check age."""
        return key in self._entries

    def get(self, key: str) -> list[Task] | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() - entry.stored_at < self._ttl:
            return list(entry.tasks)
        del self._entries[key]
        logger.debug("Cache entry expired key=%s", key)
        return None

    def put(self, key: str, tasks: Iterable[Task]) -> None:
        self._entries[key] = _Entry(tasks=tuple(tasks), stored_at=self._clock())

    def age(self, key: str) -> float | None:
        entry = self._entries.get(key)
        return None if entry is None else self._clock() - entry.stored_at

    def invalidate(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def evict_expired(self) -> int:
        now = self._clock()
        expired = [k for k, e in self._entries.items() if now - e.stored_at >= self._ttl]
        for k in expired:
            del self._entries[k]
        if expired:
            logger.debug("Cleaned up %d expired cache entries", len(expired))
        return len(expired)

    # ---- periodic cleanup ----

    def start_cleanup(self, interval_seconds: float = DEFAULT_CLEANUP_INTERVAL_SECONDS) -> None:
        """Start the background eviction loop (requires a running event loop). Idempotent."""
        if self._cleanup_task is not None and not self._cleanup_task.done():
            return
        self._cleanup_task = asyncio.get_running_loop().create_task(
            run_cache_cleanup(self, interval_seconds=interval_seconds)
        )

    async def close(self) -> None:
        task, self._cleanup_task = self._cleanup_task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._entries.clear()


async def run_cache_cleanup(
        cache: TaskCache,
        *,
        interval_seconds: float = DEFAULT_CLEANUP_INTERVAL_SECONDS,
) -> None:
    """
    Evict expired entries every interval_seconds.

    To stop the loop, cancel the coroutine/task.
    """
    sleep_s = max(0.01, float(interval_seconds))
    while True:
        await asyncio.sleep(sleep_s)
        try:
            cache.evict_expired()
        except Exception:
            logger.exception("evict_expired failed")
