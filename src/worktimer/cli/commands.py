# src/worktimer/cli/commands.py

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from datetime import date

from ..cache.history import DateRange
from ..core.clock import format_duration, format_local_datetime
from ..core.errors import StoreError, friendly_store_error
from ..core.state import AppState
from ..timer.task_models import Project, Task

CommandEmitter = Callable[[str], None]
CommandHandler = Callable[[AppState, list[str], CommandEmitter | None], Awaitable[str]]

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Simple slash-command registry used by connectors (/help, /start, ...)."""

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

        try:
            return await handler(state, args, emit)
        except StoreError as e:
            logger.info("Command /%s failed: %s", name, e)
            return friendly_store_error(e)
        except ValueError as e:
            return str(e)

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


def _split_notes(args: list[str]) -> tuple[str, str | None]:
    """'title words | notes words' -> (title, notes)."""
    text = " ".join(args)
    title, sep, notes = text.partition("|")
    return title.strip(), (notes.strip() or None) if sep else None


def _describe_task(task: Task, elapsed_ms: int) -> str:
    return f"{task.title} [{task.status.label}] {format_duration(elapsed_ms)}"


def _project_label(project: Project, active_id: str | None) -> str:
    marker = "*" if project.id == active_id else " "
    return f"{marker} {project.name} ({project.id})"


async def cmd_help(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    return registry.build_help()


async def cmd_status(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    ws = state.workspace
    if ws.actor_id is None:
        return "Not signed in. Use /signin <user>."

    project = next((p for p in ws.projects if p.id == ws.project_id), None)
    lines = [
        "Status:",
        f"  User: {ws.actor_id}",
        f"  Project: {project.name if project else '-'}",
    ]
    timer = ws.timer
    if timer is None:
        lines.append("  Active task: none")
    else:
        task = timer.task
        lines.append(f"  Active task: {_describe_task(task, timer.display_ms())}")
        lines.append(f"  Started: {format_local_datetime(task.started_at)}")
        lines.append(f"  Paused: {task.pause_count}x, {format_duration(timer.paused_display_ms())}")
        if task.notes:
            lines.append(f"  Notes: {task.notes}")
    return "\n".join(lines)


async def cmd_signin(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if not args:
        return "Usage: /signin <user>"
    ws = state.workspace
    await ws.sign_in(args[0])
    if not ws.projects:
        return f"Signed in as {ws.actor_id}. Create a project with /project new <name>."
    return f"Signed in as {ws.actor_id}. {len(ws.projects)} project(s)."


async def cmd_signout(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    ws = state.workspace
    if ws.actor_id is None:
        return "Not signed in."
    await ws.sign_out()
    return "Signed out."


async def cmd_project(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """
    /project list         -> show projects (* marks the selected one)
    /project new <name>   -> create and select a project
    /project use <n|id>   -> select a project by list number, id or name
    """
    ws = state.workspace
    sub = args[0].lower() if args else "list"

    if sub in ("list", "ls"):
        projects = await ws.refresh_projects()
        if not projects:
            return "No projects yet. Use /project new <name>."
        lines = ["Projects:"]
        for i, p in enumerate(projects, start=1):
            lines.append(f"{i}. {_project_label(p, ws.project_id)}")
        return "\n".join(lines)

    if sub == "new":
        name = " ".join(args[1:]).strip()
        if not name:
            return "Usage: /project new <name>"
        project = await ws.create_project(name)
        if ws.project_id != project.id:
            return f"Project created: {project.name}. Finish the active task to switch to it."
        return f"Project created and selected: {project.name}"

    if sub == "use":
        ref = " ".join(args[1:]).strip()
        if not ref:
            return "Usage: /project use <n|id|name>"
        target: Project | None = None
        if ref.isdigit() and 1 <= int(ref) <= len(ws.projects):
            target = ws.projects[int(ref) - 1]
        else:
            target = next((p for p in ws.projects if ref in (p.id, p.name)), None)
        if target is None:
            return f"Unknown project: {ref}"
        if not await ws.select_project(target.id):
            return "Finish or cancel the active task before switching projects."
        return f"Project selected: {target.name}"

    return "Usage: /project list | /project new <name> | /project use <n|id|name>"


async def cmd_start(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    title, notes = _split_notes(args)
    if not title:
        return "Usage: /start <title> [| notes]"
    task = await state.workspace.start_task(title, notes)
    return f"Started: {task.title} ({task.id})"


async def cmd_pause(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    task = await state.workspace.pause()
    if task is None:
        return "No running task to pause."
    return f"Paused: {_describe_task(task, task.accumulated_ms)}"


async def cmd_resume(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    task = await state.workspace.resume()
    if task is None:
        return "No paused task to resume."
    return f"Resumed: {task.title}"


async def cmd_finish(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    task = await state.workspace.finish()
    if task is None:
        return "No active task to finish."
    return f"Finished: {_describe_task(task, task.duration_ms)}"


async def cmd_cancel(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    task = await state.workspace.cancel()
    if task is None:
        return "No active task to cancel."
    return f"Canceled: {task.title}"


def _parse_day(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise ValueError(f"Invalid date: {value} (expected YYYY-MM-DD)") from None


async def cmd_history(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """
    /history                    -> first page
    /history 2                  -> second page
    /history 1 2024-05-01 2024-05-31 -> first page, started within those days
    """
    page = 1
    rest = list(args)
    if rest and rest[0].isdigit():
        page = max(1, int(rest.pop(0)))
    date_range = DateRange(
        start=_parse_day(rest[0]) if len(rest) >= 1 else None,
        end=_parse_day(rest[1]) if len(rest) >= 2 else None,
    )

    result = await state.workspace.history(page - 1, date_range)
    if result is None:
        return "History is not available right now."
    if not result.rows:
        return "No tasks yet."

    lines = [f"History (page {result.page + 1}/{result.total_pages}, {result.total} tasks):"]
    for task in result.rows:
        elapsed = task.duration_ms if task.is_terminal else task.accumulated_ms
        lines.append(
            f"  {format_local_datetime(task.started_at)}  {_describe_task(task, elapsed)}  {task.id}"
        )
    return "\n".join(lines)


async def cmd_delete(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if not args:
        return "Usage: /delete <task id>"
    if not await state.workspace.delete_task(args[0]):
        return f"Task not found: {args[0]}"
    return "Task deleted."


async def cmd_rename(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if len(args) < 2:
        return "Usage: /rename <task id> <title> [| notes]"
    title, notes = _split_notes(args[1:])
    task = await state.workspace.rename_task(args[0], title, notes)
    if task is None:
        return f"Task not found: {args[0]}"
    return f"Renamed: {task.title}"


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("status", cmd_status, help_text="Show user, project and the active task.")
registry.register("signin", cmd_signin, help_text="Sign in: /signin <user>.", aliases=["login"])
registry.register("signout", cmd_signout, help_text="Sign out and forget local task state.", aliases=["logout"])
registry.register(
    "project", cmd_project, help_text="Projects: /project list | new <name> | use <n|id|name>."
)
registry.register("start", cmd_start, help_text="Start a task: /start <title> [| notes].")
registry.register("pause", cmd_pause, help_text="Pause the running task.")
registry.register("resume", cmd_resume, help_text="Resume the paused task.")
registry.register("finish", cmd_finish, help_text="Finish the active task.", aliases=["done"])
registry.register("cancel", cmd_cancel, help_text="Cancel the active task (recorded time is dropped).")
registry.register("history", cmd_history, help_text="Task history: /history [page] [from] [to].")
registry.register("delete", cmd_delete, help_text="Delete a finished/canceled task: /delete <id>.")
registry.register("rename", cmd_rename, help_text="Edit a task: /rename <id> <title> [| notes].")
