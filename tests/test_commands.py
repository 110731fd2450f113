# tests/test_commands.py

from __future__ import annotations

import json
from pathlib import Path

import pytest

from taskmirror.cli.commands import CommandRegistry, registry
from taskmirror.tasks.task_models import TaskPriority, TaskStatus

from .fakes import FakeRemoteStore, make_record


@pytest.mark.asyncio
async def test_command_registry_routes_sync_and_async_handlers(state) -> None:
    reg = CommandRegistry()
    called = {"sync": 0, "async": 0}

    def h_sync(state, args, emit):
        called["sync"] += 1
        return "sync:" + ",".join(args)

    async def h_async(state, args, emit):
        called["async"] += 1
        if emit is not None:
            emit("note")
        return "async"

    reg.register("a", h_sync, "a", aliases=["aa"])
    reg.register("b", h_async, "b")

    notes: list[str] = []
    assert await reg.handle(state, "/a x y") == "sync:x,y"
    assert await reg.handle(state, "/AA") == "sync:"
    assert await reg.handle(state, "/b", emit=notes.append) == "async"
    assert called == {"sync": 2, "async": 1}
    assert notes == ["note"]


@pytest.mark.asyncio
async def test_command_registry_unknown_and_non_command(state) -> None:
    reg = CommandRegistry()
    assert await reg.handle(state, "hello") is None
    assert "Unknown command" in (await reg.handle(state, "/nope") or "")
    assert "Empty command" in (await reg.handle(state, "/") or "")


def _load(state, store: FakeRemoteStore) -> None:
    state.provider.load_tasks("u1")
    store.push_current(store.queries[0])


@pytest.mark.asyncio
async def test_list_filters_and_stats(state, store: FakeRemoteStore) -> None:
    store.seed("aaaa1111", make_record("u1", "Buy milk", updated_at=2.0, priority="high", tags=["errands"]))
    store.seed("bbbb2222", make_record("u1", "Write report", updated_at=1.0, status="completed"))
    _load(state, store)

    out = await registry.handle(state, "/list")
    assert "2 of 2" in out
    assert "[aaaa1111] ( ) Buy milk  !high  #errands" in out
    assert "[bbbb2222] (x) Write report" in out

    out = await registry.handle(state, "/status completed")
    assert state.provider.filter.status == TaskStatus.COMPLETED
    assert "Buy milk" not in out and "Write report" in out

    out = await registry.handle(state, "/priority bogus")
    assert out == "Unknown priority: bogus"

    await registry.handle(state, "/clear")
    assert state.provider.filter.is_empty

    await registry.handle(state, "/priority high")
    assert state.provider.filter.priority == TaskPriority.HIGH
    await registry.handle(state, "/priority all")
    assert state.provider.filter.priority is None

    out = await registry.handle(state, "/stats")
    assert "total: 2" in out
    assert "completed: 1" in out


@pytest.mark.asyncio
async def test_add_done_and_rm_by_id_prefix(state, store: FakeRemoteStore) -> None:
    _load(state, store)

    out = await registry.handle(state, "/add Pay rent !urgent #bills @home")
    assert out.startswith("Created task")
    (doc_id,) = store.docs["tasks"]
    data = store.docs["tasks"][doc_id]
    assert data["title"] == "Pay rent"
    assert data["priority"] == "urgent"
    assert data["tags"] == ["bills"]
    assert data["category"] == "home"

    store.push_current(store.queries[0])
    out = await registry.handle(state, f"/done {doc_id[:4]}")
    assert "completed" in out
    assert store.docs["tasks"][doc_id]["status"] == "completed"

    store.push_current(store.queries[0])
    await registry.handle(state, f"/reopen {doc_id}")
    assert store.docs["tasks"][doc_id]["status"] == "pending"

    out = await registry.handle(state, f"/rm {doc_id}")
    assert "deleted" in out
    assert store.docs["tasks"] == {}


@pytest.mark.asyncio
async def test_add_rejects_blank_title_and_unknown_ids(state, store: FakeRemoteStore) -> None:
    _load(state, store)
    assert "Cannot create task" in await registry.handle(state, "/add !high")
    assert "No single task" in await registry.handle(state, "/done zzz")
    assert await registry.handle(state, "/done") == "Usage: /done <task id>"


@pytest.mark.asyncio
async def test_more_and_user_switch(state, store: FakeRemoteStore) -> None:
    for i in range(25):
        store.seed(f"t{i:02d}", make_record("u1", f"Task {i}", updated_at=float(i)))
    store.seed("other", make_record("u2", "Theirs"))
    _load(state, store)

    assert "20 of 25" in await registry.handle(state, "/list")
    assert "25 of 25" in await registry.handle(state, "/more")
    assert await registry.handle(state, "/more") == "Everything is already shown."

    assert await registry.handle(state, "/user u2") == "Switched to user u2."
    store.push_current(store.queries[-1])
    assert "Theirs" in await registry.handle(state, "/all")
    assert "Current user: u2" == await registry.handle(state, "/user")


@pytest.mark.asyncio
async def test_help_lists_commands(state) -> None:
    out = await registry.handle(state, "/help")
    for name in ("list", "more", "status", "search", "add", "done", "stats", "user", "categories", "export"):
        assert f"/{name} " in out


@pytest.mark.asyncio
async def test_categories_export_and_activity(state, store: FakeRemoteStore, tmp_path: Path) -> None:
    _load(state, store)
    assert await registry.handle(state, "/categories") == "No categories."
    assert await registry.handle(state, "/categories add Side projects #ff9800") == "Created category Side projects."
    assert await registry.handle(state, "/categories add") == "Usage: /categories add <name> [#color]"
    assert await registry.handle(state, "/categories") == "  Side projects (#ff9800)"

    await registry.handle(state, "/add Ship it")
    out = await registry.handle(state, "/stats")
    assert "activity: created 1, completed 0, deleted 0" in out

    target = tmp_path / "export.json"
    out = await registry.handle(state, f"/export {target}")
    assert out == f"Exported 1 tasks and 1 categories to {target}."
    data = json.loads(target.read_text(encoding="utf-8"))
    assert [t["title"] for t in data["tasks"]] == ["Ship it"]
    assert data["analytics"]["tasksCreated"] == 1
