# src/taskmirror/core/errors.py

from __future__ import annotations

"""
Error taxonomy.

- RecordParseError: one pushed record could not be decoded (recovered locally).
- SubscriptionError: transport / permission failure of a live query (surfaced on the stream).
- MutationError: create/update/delete failed (surfaced to the caller as a failure result).
"""


class TaskMirrorError(Exception):
    """Base class for all errors raised by taskmirror."""


class RecordParseError(TaskMirrorError):
    def __init__(self, doc_id: str, reason: str) -> None:
        super().__init__(f"Cannot parse task record {doc_id!r}: {reason}")
        self.doc_id = doc_id
        self.reason = reason


class SubscriptionError(TaskMirrorError):
    def __init__(self, key: str, cause: BaseException | None = None) -> None:
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Live query failed for {key}{detail}")
        self.key = key
        self.cause = cause


class MutationError(TaskMirrorError):
    def __init__(
            self,
            operation: str,
            task_id: str | None = None,
            cause: BaseException | str | None = None,
    ) -> None:
        target = f" task_id={task_id}" if task_id else ""
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"{operation} failed{target}{detail}")
        self.operation = operation
        self.task_id = task_id
        self.cause = cause
