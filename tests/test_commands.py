# tests/test_commands.py

from __future__ import annotations

import pytest

from worktimer.cli.commands import CommandRegistry, registry
from worktimer.core.errors import TransientStoreError


@pytest.mark.asyncio
async def test_command_registry_routes_and_aliases(state) -> None:
    reg = CommandRegistry()
    called = {"a": 0}

    async def handler(state, args, emit):
        called["a"] += 1
        if emit is not None:
            emit("note")
        return f"a:{','.join(args)}"

    reg.register("alpha", handler, "alpha", aliases=["a"])
    notes: list[str] = []

    assert await reg.handle(state, "/alpha x y") == "a:x,y"
    assert await reg.handle(state, "/A z", emit=notes.append) == "a:z"
    assert called["a"] == 2
    assert notes == ["note"]
    assert "/alpha - alpha" in reg.build_help()


@pytest.mark.asyncio
async def test_command_registry_unknown_and_non_command(state) -> None:
    reg = CommandRegistry()
    assert await reg.handle(state, "hello") is None
    assert "Empty command" in (await reg.handle(state, "/") or "")
    assert "Unknown command" in (await reg.handle(state, "/nope") or "")


@pytest.mark.asyncio
async def test_store_errors_become_friendly_text(state) -> None:
    reg = CommandRegistry()

    async def offline(state, args, emit):
        raise TransientStoreError("connection reset")

    async def invalid(state, args, emit):
        raise ValueError("title is required")

    reg.register("offline", offline, "x")
    reg.register("invalid", invalid, "x")

    assert await reg.handle(state, "/offline") == "Network error. Please check your connection."
    assert await reg.handle(state, "/invalid") == "title is required"


@pytest.mark.asyncio
async def test_commands_require_sign_in(state) -> None:
    assert "Not signed in" in (await registry.handle(state, "/status") or "")
    assert await registry.handle(state, "/start something") == "Not signed in."


@pytest.mark.asyncio
async def test_full_console_session(state, clock) -> None:
    h = registry.handle

    assert "Create a project" in (await h(state, "/signin alice") or "")
    assert "selected: Work" in (await h(state, "/project new Work") or "")

    started = await h(state, "/start Write report | first draft")
    assert started is not None and started.startswith("Started: Write report")
    assert "Finish or cancel" in (await h(state, "/start Another") or "")

    clock.advance(3000)
    assert await h(state, "/pause") == "Paused: Write report [Paused] 00:00:03"
    assert await h(state, "/pause") == "No running task to pause."

    clock.advance(2000)
    assert await h(state, "/resume") == "Resumed: Write report"

    clock.advance(1000)
    status = await h(state, "/status") or ""
    assert "Write report [Running] 00:00:04" in status
    assert "Paused: 1x, 00:00:02" in status
    assert "Notes: first draft" in status

    assert await h(state, "/finish") == "Finished: Write report [Finished] 00:00:04"
    assert await h(state, "/finish") == "No active task to finish."

    history = await h(state, "/history") or ""
    assert "page 1/1, 1 tasks" in history
    task_id = history.split()[-1]

    assert await h(state, f"/rename {task_id} Final report") == "Renamed: Final report"
    assert await h(state, f"/delete {task_id}") == "Task deleted."
    assert await h(state, "/history") == "No tasks yet."

    await state.workspace.close()


@pytest.mark.asyncio
async def test_project_commands(state) -> None:
    h = registry.handle
    await h(state, "/signin alice")
    await h(state, "/project new Work")
    await h(state, "/project new Home")

    listing = await h(state, "/project list") or ""
    assert "1.   Work" in listing
    assert "2. * Home" in listing

    assert await h(state, "/project use 1") == "Project selected: Work"
    assert await h(state, "/project use Home") == "Project selected: Home"
    assert await h(state, "/project use Nowhere") == "Unknown project: Nowhere"

    await h(state, "/start busy")
    assert "before switching" in (await h(state, "/project use Work") or "")

    await h(state, "/cancel")
    await state.workspace.close()


@pytest.mark.asyncio
async def test_history_rejects_bad_dates(state) -> None:
    await registry.handle(state, "/signin alice")
    reply = await registry.handle(state, "/history 1 yesterday")
    assert reply == "Invalid date: yesterday (expected YYYY-MM-DD)"
