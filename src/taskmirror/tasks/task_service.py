# src/taskmirror/tasks/task_service.py

from __future__ import annotations

"""
Mutation pass-through to the remote store.

Nothing here touches the cache: the effect of a write becomes visible only
through the next live-query push. Every failure is raised as MutationError
(chained to the store's exception); there is no retry and no rollback.

Bulk operations go through one RemoteTaskStore.commit() batch, so they land
completely or not at all. Per-user activity counters (tasksCreated,
tasksCompleted, tasksDeleted) are bumped after the task write succeeded; a
failing counter update is logged and does not fail the task write.
"""

import logging
import time
import uuid
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import Any, TypeVar

from ..core.errors import MutationError
from ..core.ports import Document, Increment, Record, RemoteTaskStore, WriteOp
from ..core.query import where
from .task_codec import attachment_to_record, task_from_record, task_to_record
from .task_models import Attachment, Task, TaskPriority, TaskStatus, attachment_kind_for

logger = logging.getLogger(__name__)

R = TypeVar("R")

COUNTERS = ("tasksCreated", "tasksCompleted", "tasksDeleted")
DEFAULT_CATEGORY_COLOR = "#2196F3"


class TaskService:
    def __init__(
        self,
        store: RemoteTaskStore,
        *,
        collection: str = "tasks",
        categories_collection: str = "categories",
        analytics_collection: str = "analytics",
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._collection = collection
        self._categories = categories_collection
        self._analytics = analytics_collection
        self._clock = clock

    async def _run(self, operation: str, task_id: str | None, call: Callable[[], Awaitable[R]]) -> R:
        try:
            return await call()
        except MutationError:
            raise
        except Exception as e:
            logger.warning("%s failed task_id=%s: %s", operation, task_id, e)
            raise MutationError(operation, task_id, e) from e

    async def _load(self, operation: str, task_id: str) -> Task:
        if not task_id:
            raise MutationError(operation, task_id, "task id is required")
        data = await self._run(operation, task_id, lambda: self._store.get(self._collection, task_id))
        if data is None:
            raise MutationError(operation, task_id, "task not found")
        try:
            return task_from_record(task_id, data)
        except Exception as e:
            raise MutationError(operation, task_id, e) from e

    async def _patch(self, operation: str, task_id: str, patch: Record) -> None:
        patch = {**patch, "updatedAt": self._clock()}
        await self._run(operation, task_id, lambda: self._store.mutate(self._collection, task_id, patch))

    async def _count(self, user_id: str, counter: str) -> None:
        op = WriteOp.merge(
            self._analytics,
            user_id,
            {"userId": user_id, counter: Increment(1), "lastActivity": self._clock()},
        )
        try:
            await self._store.commit([op])
        except Exception as e:
            logger.warning("Updating %s failed user=%s: %s", counter, user_id, e)

    # ---- create / update / delete ----

    async def create_task(self, task: Task) -> str:
        if not task.user_id:
            raise MutationError("create_task", None, "user_id is required")
        now = self._clock()
        record = task_to_record(task)
        record["createdAt"] = now
        record["updatedAt"] = now
        task_id = await self._run("create_task", None, lambda: self._store.create(self._collection, record))
        logger.debug("Task created id=%s user=%s", task_id, task.user_id)
        await self._count(task.user_id, "tasksCreated")
        return task_id

    async def update_task(self, task: Task) -> None:
        if not task.id:
            raise MutationError("update_task", None, "task id is required")
        record = task_to_record(task)
        # Owner and creation time are immutable.
        record.pop("userId", None)
        record.pop("createdAt", None)
        await self._patch("update_task", task.id, record)

    async def delete_task(self, task_id: str) -> None:
        if not task_id:
            raise MutationError("delete_task", None, "task id is required")
        data = await self._run("delete_task", task_id, lambda: self._store.get(self._collection, task_id))
        if data is None:
            logger.debug("Nothing to delete id=%s", task_id)
            return
        await self._run("delete_task", task_id, lambda: self._store.delete(self._collection, task_id))
        logger.debug("Task deleted id=%s", task_id)
        user_id = data.get("userId")
        if isinstance(user_id, str) and user_id:
            await self._count(user_id, "tasksDeleted")

    # ---- status / priority / progress ----

    async def complete_task(self, task_id: str) -> None:
        task = await self._load("complete_task", task_id)
        await self._patch(
            "complete_task",
            task_id,
            {"status": TaskStatus.COMPLETED.value, "completedAt": self._clock(), "progress": 1.0},
        )
        await self._count(task.user_id, "tasksCompleted")

    async def update_task_status(self, task_id: str, status: TaskStatus) -> None:
        task = await self._load("update_task_status", task_id)
        patch: dict[str, Any] = {"status": status.value}
        if status == TaskStatus.COMPLETED:
            patch["completedAt"] = self._clock()
            patch["progress"] = 1.0
        else:
            patch["completedAt"] = None
            patch["progress"] = 0.0
        await self._patch("update_task_status", task_id, patch)
        if status == TaskStatus.COMPLETED:
            await self._count(task.user_id, "tasksCompleted")

    async def update_task_priority(self, task_id: str, priority: TaskPriority) -> None:
        await self._patch("update_task_priority", task_id, {"priority": priority.value})

    async def update_task_progress(self, task_id: str, progress: float) -> None:
        value = float(max(0.0, min(1.0, progress)))
        await self._patch("update_task_progress", task_id, {"progress": value})
        if value >= 1.0:
            await self.complete_task(task_id)

    # ---- read-modify-write ----

    async def toggle_subtask(self, task_id: str, subtask_id: str) -> Task:
        """Flip a subtask on the stored task; may auto-complete the task (never auto-reopens)."""
        task = await self._load("toggle_subtask", task_id)
        try:
            updated = task.toggle_subtask(subtask_id, now=self._clock())
        except KeyError:
            raise MutationError("toggle_subtask", task_id, f"unknown subtask {subtask_id}") from None

        record = task_to_record(updated)
        await self._patch(
            "toggle_subtask",
            task_id,
            {
                "subtasks": record["subtasks"],
                "status": record["status"],
                "completedAt": record["completedAt"],
            },
        )
        return updated

    async def add_attachment(
        self,
        task_id: str,
        *,
        name: str,
        url: str,
        size: int = 0,
    ) -> Attachment:
        """Record an already-uploaded file on the task (upload itself is not handled here)."""
        task = await self._load("add_attachment", task_id)
        attachment = Attachment(
            id=uuid.uuid4().hex,
            name=name,
            url=url,
            kind=attachment_kind_for(name),
            size=int(size),
            uploaded_at=self._clock(),
        )
        records = [attachment_to_record(a) for a in task.attachments]
        records.append(attachment_to_record(attachment))
        await self._patch("add_attachment", task_id, {"attachments": records})
        return attachment

    async def remove_attachment(self, task_id: str, attachment_id: str) -> None:
        task = await self._load("remove_attachment", task_id)
        kept = [attachment_to_record(a) for a in task.attachments if a.id != attachment_id]
        if len(kept) == len(task.attachments):
            raise MutationError("remove_attachment", task_id, f"unknown attachment {attachment_id}")
        await self._patch("remove_attachment", task_id, {"attachments": kept})

    # ---- bulk (one atomic batch each) ----

    async def _commit(self, operation: str, ops: list[WriteOp]) -> None:
        if ops:
            await self._run(operation, None, lambda: self._store.commit(ops))

    @staticmethod
    def _require_ids(operation: str, task_ids: list[str]) -> None:
        if any(not task_id for task_id in task_ids):
            raise MutationError(operation, None, "task id is required")

    async def bulk_update_tasks(self, task_ids: list[str], patch: Record) -> None:
        """Patch every task or none: an unknown id fails the whole batch."""
        self._require_ids("bulk_update_tasks", task_ids)
        stamped = {**patch, "updatedAt": self._clock()}
        ops = [WriteOp.update(self._collection, task_id, stamped) for task_id in task_ids]
        await self._commit("bulk_update_tasks", ops)
        logger.debug("Bulk updated %d tasks fields=%s", len(ops), sorted(patch))

    async def bulk_delete_tasks(self, task_ids: list[str]) -> None:
        self._require_ids("bulk_delete_tasks", task_ids)
        await self._commit("bulk_delete_tasks", [WriteOp.delete(self._collection, t) for t in task_ids])
        logger.debug("Bulk deleted %d tasks", len(task_ids))

    async def _user_docs(self, operation: str, collection: str, user_id: str) -> list[Document]:
        if not user_id:
            raise MutationError(operation, None, "user_id is required")
        return await self._run(
            operation,
            None,
            lambda: self._store.fetch(collection, [where("userId", "==", user_id)]),
        )

    async def delete_all_user_tasks(self, user_id: str) -> int:
        docs = await self._user_docs("delete_all_user_tasks", self._collection, user_id)
        await self._commit("delete_all_user_tasks", [WriteOp.delete(self._collection, d.id) for d in docs])
        logger.info("Deleted %d tasks for user=%s", len(docs), user_id)
        return len(docs)

    async def delete_all_user_data(self, user_id: str) -> int:
        """Tasks, categories and the activity counters of one user, in one batch."""
        tasks = await self._user_docs("delete_all_user_data", self._collection, user_id)
        categories = await self._user_docs("delete_all_user_data", self._categories, user_id)
        ops = [WriteOp.delete(self._collection, d.id) for d in tasks]
        ops += [WriteOp.delete(self._categories, d.id) for d in categories]
        ops.append(WriteOp.delete(self._analytics, user_id))
        await self._commit("delete_all_user_data", ops)
        logger.info("Deleted all data for user=%s tasks=%d categories=%d", user_id, len(tasks), len(categories))
        return len(tasks) + len(categories)

    # ---- categories ----

    async def create_category(self, user_id: str, name: str, color: str = DEFAULT_CATEGORY_COLOR) -> str:
        if not user_id:
            raise MutationError("create_category", None, "user_id is required")
        name = name.strip()
        if not name:
            raise MutationError("create_category", None, "category name is required")
        record = {
            "userId": user_id,
            "name": name,
            "color": color,
            "taskCount": 0,
            "createdAt": self._clock(),
        }
        category_id = await self._run("create_category", None, lambda: self._store.create(self._categories, record))
        logger.debug("Category created id=%s user=%s name=%s", category_id, user_id, name)
        return category_id

    async def get_user_categories(self, user_id: str) -> list[Record]:
        """Category documents of the user ({"id": ..., **fields}), ordered by name."""
        docs = await self._user_docs("get_user_categories", self._categories, user_id)
        out = [{"id": d.id, **d.data} for d in docs]
        out.sort(key=lambda c: str(c.get("name", "")))
        return out

    # ---- activity counters / export ----

    async def get_user_analytics(self, user_id: str) -> Record:
        """Counter document of the user; created with zeroed counters on first access."""
        if not user_id:
            raise MutationError("get_user_analytics", None, "user_id is required")
        data = await self._run("get_user_analytics", None, lambda: self._store.get(self._analytics, user_id))
        if data is not None:
            return data

        now = self._clock()
        # Increment(0) keeps any counter bumped in the meantime.
        initial: Record = {"userId": user_id, "lastActivity": now, "createdAt": now}
        initial.update({counter: Increment(0) for counter in COUNTERS})
        await self._commit("get_user_analytics", [WriteOp.merge(self._analytics, user_id, initial)])
        data = await self._run("get_user_analytics", None, lambda: self._store.get(self._analytics, user_id))
        return data or {}

    async def export_user_data(self, user_id: str) -> Record:
        tasks = await self._user_docs("export_user_data", self._collection, user_id)
        out: Record = {
            "tasks": [{"id": d.id, **d.data} for d in tasks],
            "categories": await self.get_user_categories(user_id),
        }
        analytics = await self._run("export_user_data", None, lambda: self._store.get(self._analytics, user_id))
        if analytics is not None:
            out["analytics"] = analytics
        out["exportedAt"] = datetime.fromtimestamp(self._clock(), tz=timezone.utc).isoformat()
        logger.info("Exported user=%s tasks=%d categories=%d", user_id, len(out["tasks"]), len(out["categories"]))
        return out
