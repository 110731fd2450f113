# src/taskmirror/tasks/task_codec.py

from __future__ import annotations

"""
Versioned record <-> Task codec.

Records are plain dicts with camelCase fields (the remote store's shape).
Decoding is strict about the fields a task cannot exist without (owner, title,
creation time) and lenient about everything else: optional fields default,
enums fall back (priority -> medium, status -> pending, repeat -> none).
"""

import logging
import math
from collections.abc import Iterable
from datetime import datetime
from typing import Any

from ..core.errors import RecordParseError
from ..core.ports import Document, Record
from .task_models import (
    Attachment,
    ReminderConfig,
    RepeatRule,
    Subtask,
    Task,
    TaskPriority,
    TaskStatus,
)

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1


class _Reject(Exception):
    """Internal: field-level decode failure, converted to RecordParseError."""


def _ts(raw: Any, name: str) -> float:
    if isinstance(raw, bool):
        raise _Reject(f"{name} must be a timestamp, got bool")
    if isinstance(raw, (int, float)):
        return _finite(raw, name)
    if isinstance(raw, datetime):
        try:
            return raw.timestamp()
        except (OverflowError, OSError, ValueError):
            raise _Reject(f"{name} is out of range: {raw!r}") from None
    if isinstance(raw, str):
        try:
            return datetime.fromisoformat(raw).timestamp()
        except (OverflowError, OSError, ValueError):
            raise _Reject(f"{name} is not an ISO-8601 timestamp: {raw!r}") from None
    raise _Reject(f"{name} must be a timestamp, got {type(raw).__name__}")


def _finite(raw: int | float, name: str) -> float:
    try:
        value = float(raw)
    except OverflowError:
        raise _Reject(f"{name} is out of range") from None
    if not math.isfinite(value):
        raise _Reject(f"{name} must be finite, got {value!r}")
    return value


def _opt_ts(data: Record, key: str) -> float | None:
    raw = data.get(key)
    return None if raw is None else _ts(raw, key)


def _str(data: Record, key: str, default: str | None = None) -> str:
    raw = data.get(key, default)
    if raw is None and default is not None:
        return default
    if not isinstance(raw, str):
        raise _Reject(f"{key} must be a string")
    return raw


def _opt_str(data: Record, key: str) -> str | None:
    raw = data.get(key)
    if raw is None:
        return None
    if not isinstance(raw, str):
        raise _Reject(f"{key} must be a string")
    return raw


def _list(data: Record, key: str) -> list[Any]:
    raw = data.get(key)
    if raw is None:
        return []
    if not isinstance(raw, (list, tuple)):
        raise _Reject(f"{key} must be a list")
    return list(raw)


def _subtask(raw: Any) -> Subtask:
    if not isinstance(raw, dict):
        raise _Reject("subtask entries must be objects")
    if "createdAt" not in raw or raw["createdAt"] is None:
        raise _Reject("subtask is missing createdAt")
    return Subtask(
        id=_str(raw, "id", ""),
        title=_str(raw, "title", ""),
        is_completed=bool(raw.get("isCompleted", False)),
        created_at=_ts(raw["createdAt"], "subtask.createdAt"),
        completed_at=_opt_ts(raw, "completedAt"),
    )


def _attachment(raw: Any) -> Attachment:
    if not isinstance(raw, dict):
        raise _Reject("attachment entries must be objects")
    if "uploadedAt" not in raw or raw["uploadedAt"] is None:
        raise _Reject("attachment is missing uploadedAt")
    size = raw.get("size", 0)
    if isinstance(size, bool) or not isinstance(size, (int, float)):
        raise _Reject("attachment.size must be a number")
    if isinstance(size, float):
        size = _finite(size, "attachment.size")
    return Attachment(
        id=_str(raw, "id", ""),
        name=_str(raw, "name", ""),
        url=_str(raw, "url", ""),
        kind=_str(raw, "type", "other"),
        size=int(size),
        uploaded_at=_ts(raw["uploadedAt"], "attachment.uploadedAt"),
    )


def _progress(data: Record) -> float:
    raw = data.get("progress")
    if raw is None:
        return 0.0
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        raise _Reject("progress must be a number")
    return max(0.0, min(1.0, _finite(raw, "progress")))


def _reminder(data: Record) -> ReminderConfig | None:
    enabled = data.get("hasReminder")
    remind_at = _opt_ts(data, "reminderDate")
    if not enabled and remind_at is None:
        return None
    return ReminderConfig(
        enabled=bool(enabled),
        remind_at=remind_at,
        kind=_str(data, "reminderType", "notification"),
    )


def _enum_raw(data: Record, key: str) -> str | None:
    raw = data.get(key)
    if raw is None:
        return None
    if not isinstance(raw, str):
        raise _Reject(f"{key} must be a string")
    return raw


def task_from_record(doc_id: str, data: Any) -> Task:
    """Decode one stored record. Raises RecordParseError on a malformed record."""
    if not isinstance(data, dict):
        raise RecordParseError(doc_id, "record is not an object")

    try:
        user_id = data.get("userId")
        if not isinstance(user_id, str) or not user_id:
            raise _Reject("userId is missing")
        if not isinstance(data.get("title"), str):
            raise _Reject("title is missing")
        if data.get("createdAt") is None:
            raise _Reject("createdAt is missing")

        created_at = _ts(data["createdAt"], "createdAt")
        updated_at = _opt_ts(data, "updatedAt")

        tags = _list(data, "tags")
        if not all(isinstance(t, str) for t in tags):
            raise _Reject("tags must be strings")

        return Task(
            id=doc_id,
            user_id=user_id,
            title=data["title"],
            description=_str(data, "description", ""),
            priority=TaskPriority.from_db(_enum_raw(data, "priority")),
            status=TaskStatus.from_db(_enum_raw(data, "status")),
            created_at=created_at,
            updated_at=created_at if updated_at is None else updated_at,
            due_at=_opt_ts(data, "dueDate"),
            tags=tuple(tags),
            category=_opt_str(data, "category") or None,
            progress=_progress(data),
            subtasks=tuple(_subtask(s) for s in _list(data, "subtasks")),
            attachments=tuple(_attachment(a) for a in _list(data, "attachments")),
            reminder=_reminder(data),
            repeat=RepeatRule.from_db(_enum_raw(data, "repeatOption")),
            completed_at=_opt_ts(data, "completedAt"),
            assigned_to=_opt_str(data, "assignedTo"),
            next_due_at=_opt_ts(data, "nextDueDate"),
        )
    except _Reject as e:
        raise RecordParseError(doc_id, str(e)) from None
    except (ArithmeticError, OSError, TypeError, ValueError) as e:
        # Conversions of well-typed but out-of-range values.
        raise RecordParseError(doc_id, f"{type(e).__name__}: {e}") from None


def decode_batch(docs: Iterable[Document]) -> tuple[list[Task], int]:
    """
    Decode a pushed snapshot. Bad records are dropped (and logged), never fatal.

    Returns (tasks, dropped_count).
    """
    tasks: list[Task] = []
    dropped = 0
    for doc in docs:
        try:
            tasks.append(task_from_record(doc.id, doc.data))
        except RecordParseError as e:
            dropped += 1
            logger.warning("Dropping task record id=%s: %s", doc.id, e.reason)
    return tasks, dropped


def subtask_to_record(s: Subtask) -> Record:
    return {
        "id": s.id,
        "title": s.title,
        "isCompleted": s.is_completed,
        "createdAt": s.created_at,
        "completedAt": s.completed_at,
    }


def attachment_to_record(a: Attachment) -> Record:
    return {
        "id": a.id,
        "name": a.name,
        "url": a.url,
        "type": a.kind,
        "size": a.size,
        "uploadedAt": a.uploaded_at,
    }


def task_to_record(task: Task) -> Record:
    """Encode a task for the store. The id is not part of the payload."""
    reminder = task.reminder
    return {
        "schemaVersion": SCHEMA_VERSION,
        "userId": task.user_id,
        "title": task.title,
        "description": task.description,
        "priority": task.priority.value,
        "status": task.status.value,
        "createdAt": task.created_at,
        "updatedAt": task.updated_at,
        "dueDate": task.due_at,
        "tags": list(task.tags),
        "category": task.category,
        "progress": task.progress,
        "subtasks": [subtask_to_record(s) for s in task.subtasks],
        "attachments": [attachment_to_record(a) for a in task.attachments],
        "hasReminder": bool(reminder and reminder.enabled),
        "reminderDate": reminder.remind_at if reminder else None,
        "reminderType": reminder.kind if reminder else "notification",
        "repeatOption": task.repeat.value if task.repeat is not None else None,
        "completedAt": task.completed_at,
        "assignedTo": task.assigned_to,
        "nextDueDate": task.next_due_at,
    }
