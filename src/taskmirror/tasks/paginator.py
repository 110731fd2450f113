# src/taskmirror/tasks/paginator.py

from __future__ import annotations

from collections.abc import Sequence
from typing import TypeVar

T = TypeVar("T")

DEFAULT_PAGE_SIZE = 20
DEFAULT_LOAD_MORE_THRESHOLD = 200.0


def should_load_more(
        pixels: float,
        max_extent: float,
        threshold: float = DEFAULT_LOAD_MORE_THRESHOLD,
) -> bool:
    """Scroll trigger: is the viewport within `threshold` units of the end?"""
    return pixels >= max_extent - threshold


class Paginator:
    """
    Growable prefix window over a (filtered) list.

    The window only grows through advance(); it is reset to one page by the
    owner whenever the filter or the loaded list changes.
    """

    def __init__(self, page_size: int = DEFAULT_PAGE_SIZE) -> None:
        if page_size < 1:
            raise ValueError("page_size must be >= 1")
        self.page_size = page_size
        self.page_count = 1
        self._last_total: int | None = None

    @property
    def limit(self) -> int:
        return self.page_size * self.page_count

    @property
    def is_fully_expanded(self) -> bool:
        return self._last_total is not None and self.limit >= self._last_total

    def visible_slice(self, items: Sequence[T]) -> list[T]:
        self._last_total = len(items)
        return list(items[: self.limit])

    def advance(self) -> bool:
        """Grow by one page unless the last slice already covered the whole list."""
        if self._last_total is None or self.is_fully_expanded:
            return False
        self.page_count += 1
        return True

    def reset(self) -> None:
        self.page_count = 1
        self._last_total = None
