# src/taskmirror/tasks/task_models.py

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, replace
from enum import StrEnum

MAX_TITLE_LENGTH = 100
MAX_DESCRIPTION_LENGTH = 1000

_DUE_SOON_WINDOW_SECONDS = 24 * 60 * 60


class TaskStatus(StrEnum):
    """
    Task lifecycle status.

    Notes:
    - "inProgress" is the legacy encoded spelling; it still decodes.
    - Anything unrecognized decodes to PENDING (explicit fallback, not an accident).
    """

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @classmethod
    def from_db(cls, raw: str | None) -> TaskStatus:
        if not raw:
            return cls.PENDING
        if raw == "inProgress":
            return cls.IN_PROGRESS
        try:
            return cls(raw)
        except ValueError:
            return cls.PENDING


class TaskPriority(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"

    @classmethod
    def from_db(cls, raw: str | None) -> TaskPriority:
        if not raw:
            return cls.MEDIUM
        try:
            return cls(raw)
        except ValueError:
            return cls.MEDIUM


class RepeatRule(StrEnum):
    NONE = "none"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"

    @classmethod
    def from_db(cls, raw: str | None) -> RepeatRule | None:
        if raw is None:
            return None
        try:
            return cls(raw)
        except ValueError:
            return cls.NONE


_IMAGE_EXTENSIONS = {"jpg", "jpeg", "png", "gif"}
_DOCUMENT_EXTENSIONS = {"pdf", "doc", "docx", "txt"}


def attachment_kind_for(file_name: str) -> str:
    """Map a file name to the coarse attachment kind: image / document / other."""
    ext = file_name.rsplit(".", 1)[-1].lower() if "." in file_name else ""
    if ext in _IMAGE_EXTENSIONS:
        return "image"
    if ext in _DOCUMENT_EXTENSIONS:
        return "document"
    return "other"


@dataclass(frozen=True, slots=True)
class Attachment:
    id: str
    name: str
    url: str
    kind: str
    size: int
    uploaded_at: float


@dataclass(frozen=True, slots=True)
class Subtask:
    id: str
    title: str
    is_completed: bool
    created_at: float
    completed_at: float | None = None

    @staticmethod
    def create(title: str, *, now: float | None = None) -> Subtask:
        ts = time.time() if now is None else now
        return Subtask(id=uuid.uuid4().hex, title=title.strip(), is_completed=False, created_at=ts)

    def toggled(self, now: float) -> Subtask:
        if self.is_completed:
            return replace(self, is_completed=False, completed_at=None)
        return replace(self, is_completed=True, completed_at=now)


@dataclass(frozen=True, slots=True)
class ReminderConfig:
    enabled: bool
    remind_at: float | None = None
    kind: str = "notification"


@dataclass(frozen=True, slots=True)
class Task:
    """
    A task as mirrored from the remote store.

    Timestamps are epoch seconds. Collections are tuples so a cached snapshot
    can be shared between views without anyone mutating it underneath.
    """

    id: str
    user_id: str
    title: str
    description: str
    priority: TaskPriority
    status: TaskStatus
    created_at: float
    updated_at: float

    due_at: float | None = None
    tags: tuple[str, ...] = ()
    category: str | None = None
    progress: float = 0.0
    subtasks: tuple[Subtask, ...] = ()
    attachments: tuple[Attachment, ...] = ()
    reminder: ReminderConfig | None = None
    repeat: RepeatRule | None = None
    completed_at: float | None = None
    assigned_to: str | None = None
    next_due_at: float | None = None

    @staticmethod
    def create(
        *,
        title: str,
        user_id: str,
        description: str = "",
        due_at: float | None = None,
        priority: TaskPriority = TaskPriority.MEDIUM,
        tags: list[str] | tuple[str, ...] = (),
        subtasks: list[Subtask] | tuple[Subtask, ...] = (),
        category: str | None = None,
        reminder: ReminderConfig | None = None,
        repeat: RepeatRule | None = None,
        next_due_at: float | None = None,
        now: float | None = None,
    ) -> Task:
        """Factory for a not-yet-persisted task (id is assigned by the store)."""
        if not user_id:
            raise ValueError("user_id is required")
        title = (title or "").strip()
        if not title:
            raise ValueError("title is required")
        if len(title) > MAX_TITLE_LENGTH:
            raise ValueError(f"title is longer than {MAX_TITLE_LENGTH} characters")
        if len(description) > MAX_DESCRIPTION_LENGTH:
            raise ValueError(f"description is longer than {MAX_DESCRIPTION_LENGTH} characters")

        ts = time.time() if now is None else now
        return Task(
            id="",
            user_id=user_id,
            title=title,
            description=description,
            priority=priority,
            status=TaskStatus.PENDING,
            created_at=ts,
            updated_at=ts,
            due_at=due_at,
            tags=tuple(dict.fromkeys(tags)),
            category=category or None,
            progress=0.0,
            subtasks=tuple(subtasks),
            attachments=(),
            reminder=reminder,
            repeat=repeat,
            next_due_at=next_due_at,
        )

    # ---- derived (never stored) ----

    def is_overdue(self, now: float | None = None) -> bool:
        if self.due_at is None or self.status == TaskStatus.COMPLETED:
            return False
        ts = time.time() if now is None else now
        return self.due_at < ts

    def is_due_soon(self, now: float | None = None) -> bool:
        if self.due_at is None or self.status == TaskStatus.COMPLETED:
            return False
        ts = time.time() if now is None else now
        remaining = self.due_at - ts
        return 0 < remaining <= _DUE_SOON_WINDOW_SECONDS

    @property
    def completed_subtasks_count(self) -> int:
        return sum(1 for s in self.subtasks if s.is_completed)

    @property
    def subtask_progress(self) -> float:
        if not self.subtasks:
            return 0.0
        return self.completed_subtasks_count / len(self.subtasks)

    # ---- lifecycle helpers (return new instances) ----

    def mark_completed(self, now: float | None = None) -> Task:
        ts = time.time() if now is None else now
        return replace(
            self,
            status=TaskStatus.COMPLETED,
            completed_at=ts,
            updated_at=ts,
            progress=1.0,
        )

    def with_status(self, status: TaskStatus, now: float | None = None) -> Task:
        """Status change; completing stamps completed_at, anything else clears it."""
        if status == TaskStatus.COMPLETED:
            return self.mark_completed(now)
        ts = time.time() if now is None else now
        return replace(self, status=status, completed_at=None, progress=0.0, updated_at=ts)

    def toggle_subtask(self, subtask_id: str, now: float | None = None) -> Task:
        """
        Flip one subtask. Completing the last open subtask completes the task;
        reopening a subtask later leaves the task status alone.
        """
        ts = time.time() if now is None else now
        found = False
        updated: list[Subtask] = []
        for s in self.subtasks:
            if s.id == subtask_id:
                updated.append(s.toggled(ts))
                found = True
            else:
                updated.append(s)
        if not found:
            raise KeyError(subtask_id)

        task = replace(self, subtasks=tuple(updated), updated_at=ts)
        all_done = bool(updated) and all(s.is_completed for s in updated)
        if all_done and task.status != TaskStatus.COMPLETED:
            task = replace(task, status=TaskStatus.COMPLETED, completed_at=ts)
        return task
