# src/taskmirror/cli/commands.py

from __future__ import annotations

import inspect
import json
import logging
import time
from collections.abc import Awaitable, Callable
from datetime import datetime
from pathlib import Path

from ..core.errors import MutationError
from ..core.state import AppState
from ..tasks.task_models import Task, TaskPriority, TaskStatus

CommandEmitter = Callable[[str], None]
CommandHandler = Callable[[AppState, list[str], CommandEmitter | None], str | Awaitable[str]]

logger = logging.getLogger(__name__)

_STATUS_MARK = {
    TaskStatus.PENDING: " ",
    TaskStatus.IN_PROGRESS: "~",
    TaskStatus.COMPLETED: "x",
    TaskStatus.CANCELLED: "-",
}


class CommandRegistry:
    """Simple slash-command registry used by the console connector (/help, /list, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    async def handle(
        self,
        state: AppState,
        line: str,
        emit: CommandEmitter | None = None,
    ) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        result = handler(state, args, emit)
        if inspect.isawaitable(result):
            result = await result
        return result

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


def _fmt_ts(ts: float | None) -> str:
    if ts is None:
        return "-"
    return datetime.fromtimestamp(ts).strftime("%Y-%m-%d %H:%M")


def format_task(task: Task, now: float | None = None) -> str:
    now = time.time() if now is None else now
    parts = [f"[{task.id[:8]}] ({_STATUS_MARK[task.status]}) {task.title}"]
    if task.priority != TaskPriority.MEDIUM:
        parts.append(f"!{task.priority.value}")
    if task.category:
        parts.append(f"@{task.category}")
    if task.tags:
        parts.append(" ".join(f"#{t}" for t in task.tags))
    if task.due_at is not None:
        flag = " (overdue)" if task.is_overdue(now) else " (soon)" if task.is_due_soon(now) else ""
        parts.append(f"due {_fmt_ts(task.due_at)}{flag}")
    if task.subtasks:
        parts.append(f"{task.completed_subtasks_count}/{len(task.subtasks)} subtasks")
    return "  ".join(parts)


def resolve_task_id(state: AppState, prefix: str) -> str | None:
    matches = [t.id for t in state.provider.all_tasks if t.id.startswith(prefix)]
    return matches[0] if len(matches) == 1 else None


def _describe_filter(state: AppState) -> str:
    spec = state.provider.filter
    if spec.is_empty:
        return "no filters"
    bits = []
    if spec.status is not None:
        bits.append(f"status={spec.status.value}")
    if spec.priority is not None:
        bits.append(f"priority={spec.priority.value}")
    if spec.category is not None:
        bits.append(f"category={spec.category}")
    if spec.search_query:
        bits.append(f"search={spec.search_query!r}")
    return ", ".join(bits)


def cmd_help(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    return registry.build_help()


def cmd_list(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    provider = state.provider
    if provider.error is not None:
        return f"Error: {provider.error}"
    if provider.is_loading and not provider.all_tasks:
        return "Loading tasks..."

    matching = provider.tasks
    visible = provider.visible_tasks
    header = f"Tasks for {provider.user_id} ({_describe_filter(state)}): {len(visible)} of {len(matching)}"
    if not visible:
        return header + "\n  (nothing to show)"
    lines = [header] + [f"  {format_task(t)}" for t in visible]
    if len(visible) < len(matching):
        lines.append("  ... /more to show more")
    return "\n".join(lines)


def cmd_more(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if not state.provider.load_more():
        return "Everything is already shown."
    return cmd_list(state, args, emit)


def cmd_all(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    tasks = state.provider.all_tasks
    if not tasks:
        return "No tasks."
    return "\n".join(f"  {format_task(t)}" for t in tasks)


def _parse_enum(enum_cls, raw: str):
    if raw.lower() in ("all", "any", "none", "*"):
        return None, True
    try:
        return enum_cls(raw.lower()), True
    except ValueError:
        return None, False


def cmd_status(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if not args:
        return "Usage: /status pending|in_progress|completed|cancelled|all"
    status, ok = _parse_enum(TaskStatus, args[0])
    if not ok:
        return f"Unknown status: {args[0]}"
    state.provider.set_status_filter(status)
    return cmd_list(state, [], emit)


def cmd_priority(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if not args:
        return "Usage: /priority low|medium|high|urgent|all"
    priority, ok = _parse_enum(TaskPriority, args[0])
    if not ok:
        return f"Unknown priority: {args[0]}"
    state.provider.set_priority_filter(priority)
    return cmd_list(state, [], emit)


def cmd_category(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if not args:
        return "Usage: /category <name>|all"
    category = None if args[0].lower() == "all" else " ".join(args)
    state.provider.set_category_filter(category)
    return cmd_list(state, [], emit)


def cmd_search(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    query = " ".join(args)
    state.provider.set_search_query(query)
    return f"Searching for {query!r}... (/list to see results)" if query else "Search cleared."


def cmd_clear(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    state.provider.clear_filters()
    return cmd_list(state, [], emit)


async def cmd_add(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """
    /add Buy milk !high #errands @home
    """
    priority = TaskPriority.MEDIUM
    tags: list[str] = []
    category: str | None = None
    words: list[str] = []
    for word in args:
        if word.startswith("!") and len(word) > 1:
            priority = TaskPriority.from_db(word[1:].lower())
        elif word.startswith("#") and len(word) > 1:
            tags.append(word[1:])
        elif word.startswith("@") and len(word) > 1:
            category = word[1:]
        else:
            words.append(word)

    try:
        task = Task.create(
            title=" ".join(words),
            user_id=state.user_id,
            priority=priority,
            tags=tags,
            category=category,
        )
    except ValueError as e:
        return f"Cannot create task: {e}"

    result = await state.provider.create_task(task)
    if not result:
        return f"Failed to create task: {result.error}"
    return f"Created task {result.task_id[:8] if result.task_id else ''}."


def _status_command(status: TaskStatus, verb: str):
    async def handler(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
        if not args:
            return f"Usage: /{verb} <task id>"
        task_id = resolve_task_id(state, args[0])
        if task_id is None:
            return f"No single task matches {args[0]!r}."
        if status == TaskStatus.COMPLETED:
            result = await state.provider.complete_task(task_id)
        else:
            result = await state.provider.update_task_status(task_id, status)
        if not result:
            return f"Failed: {result.error}"
        return f"Task {task_id[:8]} -> {status.value}."

    return handler


async def cmd_rm(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if not args:
        return "Usage: /rm <task id>"
    task_id = resolve_task_id(state, args[0])
    if task_id is None:
        return f"No single task matches {args[0]!r}."
    result = await state.provider.delete_task(task_id)
    if not result:
        return f"Failed: {result.error}"
    return f"Task {task_id[:8]} deleted."


async def cmd_stats(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    stats = state.provider.statistics()
    lines = ["Statistics:"] + [f"  {k}: {v}" for k, v in stats.items()]
    activity = await state.provider.refresh_analytics()
    if activity:
        lines.append(
            "  activity: "
            f"created {activity.get('tasksCreated', 0)}, "
            f"completed {activity.get('tasksCompleted', 0)}, "
            f"deleted {activity.get('tasksDeleted', 0)}"
        )
    dropped = state.subscriptions.dropped_records
    if dropped:
        lines.append(f"  unreadable records dropped: {dropped}")
    return "\n".join(lines)


async def cmd_categories(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """
    /categories             list
    /categories add Work #ff9800
    """
    provider = state.provider
    if args and args[0].lower() == "add":
        words = [w for w in args[1:] if not w.startswith("#")]
        colors = [w for w in args[1:] if w.startswith("#") and len(w) > 1]
        if not words:
            return "Usage: /categories add <name> [#color]"
        name = " ".join(words)
        if colors:
            result = await provider.create_category(name, colors[-1])
        else:
            result = await provider.create_category(name)
        if not result:
            return f"Failed to create category: {result.error}"
        return f"Created category {name}."

    categories = await provider.refresh_categories()
    if not categories:
        return "No categories."
    return "\n".join(f"  {c.get('name', '?')} ({c.get('color', '-')})" for c in categories)


async def cmd_export(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if not args:
        return "Usage: /export <file.json>"
    try:
        data = await state.service.export_user_data(state.user_id)
    except MutationError as e:
        return f"Export failed: {e}"
    path = Path(args[0]).expanduser()
    path.write_text(json.dumps(data, ensure_ascii=False, indent=2, default=str), encoding="utf-8")
    logger.info("Exported user=%s to %s", state.user_id, path)
    return f"Exported {len(data['tasks'])} tasks and {len(data['categories'])} categories to {path}."


def cmd_user(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if not args:
        return f"Current user: {state.user_id}"
    state.user_id = args[0]
    state.provider.load_tasks(state.user_id)
    return f"Switched to user {state.user_id}."


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("list", cmd_list, help_text="Show the filtered tasks (first page).", aliases=["ls"])
registry.register("more", cmd_more, help_text="Show one more page.")
registry.register("all", cmd_all, help_text="Show every task, ignoring filters.")
registry.register("status", cmd_status, help_text="Filter by status: /status pending | all.")
registry.register("priority", cmd_priority, help_text="Filter by priority: /priority high | all.")
registry.register("category", cmd_category, help_text="Filter by category: /category work | all.")
registry.register("search", cmd_search, help_text="Search title/description/tags: /search text.")
registry.register("clear", cmd_clear, help_text="Clear all filters.")
registry.register("add", cmd_add, help_text="Add a task: /add Title words !high #tag @category.")
registry.register("done", _status_command(TaskStatus.COMPLETED, "done"), help_text="Complete a task.")
registry.register(
    "start", _status_command(TaskStatus.IN_PROGRESS, "start"), help_text="Mark a task in progress."
)
registry.register("reopen", _status_command(TaskStatus.PENDING, "reopen"), help_text="Reopen a task.")
registry.register("rm", cmd_rm, help_text="Delete a task.", aliases=["delete"])
registry.register("stats", cmd_stats, help_text="Show task statistics.")
registry.register("user", cmd_user, help_text="Show or switch the current user: /user <id>.")
registry.register("categories", cmd_categories, help_text="List categories, or add one: /categories add Work #ff9800.")
registry.register("export", cmd_export, help_text="Write tasks, categories and counters to a JSON file.")
