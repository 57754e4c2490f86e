# src/heroic_tasks/cli/commands.py

from __future__ import annotations

import contextlib
import inspect
import logging
from collections.abc import Callable
from typing import Any, cast

from ..core.errors import HeroicTasksError, NotFound, ValidationFailed
from ..core.session import SessionState
from ..core.state import AppState
from ..progress.calculator import level_progress_percent, rank_for_level, xp_to_reach_next_level
from ..report import build_report, render_report
from ..tasks.task_models import Task
from .bootstrap import save_mute_state

CommandEmitter = Callable[[str], None]
CommandHandler2 = Callable[[AppState, list[str]], str]
CommandHandler3 = Callable[[AppState, list[str], CommandEmitter | None], str]
CommandHandler = CommandHandler2 | CommandHandler3

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Simple slash-command registry used by connectors (/help, /add, ...)."""

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

    def handle(
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
            nparams = len(inspect.signature(handler).parameters)
        except (TypeError, ValueError):
            nparams = 3

        try:
            if nparams >= 3:
                h3 = cast(CommandHandler3, handler)
                return h3(state, args, emit)
            h2 = cast(CommandHandler2, handler)
            return h2(state, args)
        except HeroicTasksError as e:
            logger.info("/%s rejected: %s", name, e)
            return friendly_error_message(e)

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


def friendly_error_message(e: HeroicTasksError) -> str:
    if isinstance(e, ValidationFailed):
        return f"Invalid input: {e}"
    if isinstance(e, NotFound):
        return f"Not found: {e}"
    return f"[{e.kind.value}] {e}"


# ---- helpers ----


def _split_options(args: list[str], names: set[str]) -> tuple[list[str], dict[str, str]]:
    """Split ["buy", "milk", "--due", "2024-01-01"] into words and {"due": "..."}."""
    words: list[str] = []
    opts: dict[str, str] = {}
    i = 0
    while i < len(args):
        token = args[i]
        if token.startswith("--") and token[2:].lower() in names:
            if i + 1 >= len(args):
                raise ValidationFailed(f"{token} needs a value")
            opts[token[2:].lower()] = args[i + 1]
            i += 2
            continue
        words.append(token)
        i += 1
    return words, opts


def _clearable(raw: str) -> str | None:
    return None if raw.lower() in ("none", "-", "clear") else raw


def _resolve_task(state: AppState, ref: str) -> Task:
    """Accept a 1-based position in the current listing or a task id."""
    tasks = state.session.tasks
    if ref.isdigit():
        idx = int(ref)
        if 1 <= idx <= len(tasks):
            return tasks[idx - 1]
    return state.session.get_task(ref)


def format_task(position: int, task: Task) -> str:
    mark = "x" if task.completed else " "
    extra: list[str] = [task.priority.value]
    if task.due_date:
        extra.append(f"due {task.due_date.isoformat()}" + (f" {task.time}" if task.time else ""))
    elif task.time:
        extra.append(f"at {task.time}")
    return f"{position:>3}. [{mark}] {task.title} ({', '.join(extra)})"


def _progress_line(state: AppState) -> str:
    progress = state.session.progress
    if progress is None:
        return "Progress: not loaded"
    need = xp_to_reach_next_level(progress.level)
    return (
        f"Level {progress.level} ({rank_for_level(progress.level)}), "
        f"XP {progress.xp}/{need} ({level_progress_percent(progress):.0f}%)"
    )


# ---- commands ----


def cmd_help(state: AppState, args: list[str]) -> str:
    return registry.build_help()


def cmd_status(state: AppState, args: list[str]) -> str:
    session = state.session
    timer = state.timer
    remote = "configured" if state.auth.configured else "not configured"
    return (
        "Status:\n"
        f"  Session: {session.state.value} (owner: {session.owner_id or '-'})\n"
        f"  Remote accounts: {remote}\n"
        f"  {_progress_line(state)}\n"
        f"  Tasks: {len(session.tasks)}\n"
        f"  Focus: {timer.cycle_label()} {timer.format_remaining()} "
        f"({'running' if timer.running else 'stopped'})\n"
        f"  Sound: {'muted' if session.context.muted else 'on'}"
    )


def cmd_guest(state: AppState, args: list[str]) -> str:
    if state.session.is_authenticated:
        return "An account is signed in; use /logout first to play as a guest."
    state.engine.run(state.session.enter_guest())
    if state.session.state is SessionState.ERROR:
        return "Guest mode started, but local data could not be read. Try /refresh."
    return f"Guest mode. {len(state.session.tasks)} task(s) stored on this device."


def cmd_exitguest(state: AppState, args: list[str]) -> str:
    if not state.session.is_guest:
        return "Not in guest mode."
    state.engine.run(state.session.exit_guest())
    return "Left guest mode. Your guest tasks stay on this device."


def _credentials(args: list[str], usage: str) -> tuple[str, str]:
    if len(args) < 2:
        raise ValidationFailed(usage)
    return args[0], " ".join(args[1:])


def cmd_login(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    email, password = _credentials(args, "usage: /login <email> <password>")
    if emit:
        with contextlib.suppress(Exception):
            emit("Signing in...")
    uid = state.engine.run(state.auth.sign_in(email, password))
    logger.debug("Signed in via console uid=%s", uid)
    return f"Signed in as {email}. {len(state.session.tasks)} task(s) loaded."


def cmd_signup(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    email, password = _credentials(args, "usage: /signup <email> <password>")
    if emit:
        with contextlib.suppress(Exception):
            emit("Creating account...")
    state.engine.run(state.auth.sign_up(email, password))
    return f"Account created for {email}. Welcome, hero!"


def cmd_logout(state: AppState, args: list[str]) -> str:
    if state.session.is_guest:
        state.engine.run(state.session.exit_guest())
        return "Left guest mode."
    if state.auth.current is None:
        return "Not signed in."
    state.engine.run(state.auth.sign_out())
    return "Signed out."


def cmd_add(state: AppState, args: list[str]) -> str:
    """
    /add <title...> [--due YYYY-MM-DD] [--time HH:MM] [--priority low|medium|high]
    """
    words, opts = _split_options(args, {"due", "time", "priority"})
    task = state.engine.run(
        state.session.add_task(
            " ".join(words),
            due_date=opts.get("due"),
            time=opts.get("time"),
            priority=opts.get("priority"),
        )
    )
    if task is None:
        return "Task could not be saved."
    return f"Added: {task.title} (+{task.xp_earned} XP when done)"


def cmd_list(state: AppState, args: list[str]) -> str:
    """
    /list          -> all tasks
    /list pending  -> incomplete only
    /list done     -> completed only
    """
    tasks = state.session.tasks
    flt = args[0].lower() if args else "all"
    if flt not in ("all", "pending", "done"):
        return "Usage: /list [all|pending|done]"

    lines: list[str] = []
    for i, t in enumerate(tasks, start=1):
        if flt == "pending" and t.completed:
            continue
        if flt == "done" and not t.completed:
            continue
        lines.append(format_task(i, t))

    if not lines:
        return "No tasks yet. Add one with /add <title>."
    return "\n".join(["Tasks:", *lines])


def cmd_done(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /done <n|id>"
    task = _resolve_task(state, args[0])
    decision = state.engine.run(state.session.toggle_complete(task.id))
    if decision is None:
        return "Nothing changed."
    if decision.task.completed:
        return f"Completed: {task.title}"
    return f"Marked as not done: {task.title}"


def cmd_edit(state: AppState, args: list[str]) -> str:
    """
    /edit <n|id> [new title...] [--due YYYY-MM-DD|none] [--time HH:MM|none] [--priority p]
    """
    if not args:
        return "Usage: /edit <n|id> [title...] [--due D|none] [--time T|none] [--priority p]"
    task = _resolve_task(state, args[0])
    words, opts = _split_options(args[1:], {"due", "time", "priority"})

    changes: dict[str, Any] = {}
    if words:
        changes["title"] = " ".join(words)
    if "due" in opts:
        changes["due_date"] = _clearable(opts["due"])
    if "time" in opts:
        changes["time"] = _clearable(opts["time"])
    if "priority" in opts:
        changes["priority"] = opts["priority"]
    if not changes:
        return "Nothing to change."

    updated = state.engine.run(state.session.edit_task(task.id, **changes))
    return f"Updated: {updated.title}"


def cmd_rm(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /rm <n|id>"
    task = _resolve_task(state, args[0])
    state.engine.run(state.session.delete_task(task.id))
    return f"Deleted: {task.title}"


def cmd_refresh(state: AppState, args: list[str]) -> str:
    ok = state.engine.run(state.session.refresh())
    return "Reloaded." if ok else "Still unable to reach the task store."


def cmd_report(state: AppState, args: list[str]) -> str:
    report = build_report(state.session.tasks, state.session.progress)
    return render_report(report)


def cmd_timer(state: AppState, args: list[str]) -> str:
    """
    /timer                  -> show timer
    /timer start|pause      -> control the current cycle
    /timer reset            -> restart the current cycle
    /timer resetall         -> back to the first work cycle
    /timer work <minutes>   -> set work duration (1-240)
    """
    timer = state.timer
    sub = args[0].lower() if args else "status"

    if sub == "start":
        state.engine.run_sync(timer.start)
    elif sub in ("pause", "stop"):
        state.engine.run_sync(timer.pause)
    elif sub == "toggle":
        state.engine.run_sync(timer.toggle)
    elif sub == "reset":
        state.engine.run_sync(timer.reset_current)
    elif sub == "resetall":
        state.engine.run_sync(timer.reset_all)
    elif sub == "work":
        if len(args) < 2:
            return "Usage: /timer work <minutes>"
        state.engine.run_sync(timer.set_work_minutes, args[1])
    elif sub != "status":
        return "Usage: /timer [start|pause|toggle|reset|resetall|work <minutes>]"

    return (
        f"{timer.cycle_label()} {timer.format_remaining()} "
        f"({'running' if timer.running else 'stopped'}, "
        f"{timer.progress_percent():.0f}%, work cycles done: {timer.completed_work_cycles})"
    )


def cmd_mute(state: AppState, args: list[str]) -> str:
    """
    /mute          -> toggle
    /mute on|off   -> set
    """
    ctx = state.session.context
    if not args:
        muted = not ctx.muted
    else:
        arg = args[0].lower()
        if arg in ("on", "1", "true", "yes"):
            muted = True
        elif arg in ("off", "0", "false", "no"):
            muted = False
        else:
            return "Usage: /mute [on|off]"

    ctx.muted = muted
    save_mute_state(state.slots, muted)
    return "Sound muted." if muted else "Sound on."


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("status", cmd_status, help_text="Show session, level and timer status.")
registry.register("guest", cmd_guest, help_text="Play as a guest (tasks stay on this device).")
registry.register("exitguest", cmd_exitguest, help_text="Leave guest mode.")
registry.register("login", cmd_login, help_text="Sign in: /login <email> <password>.")
registry.register("signup", cmd_signup, help_text="Create an account: /signup <email> <password>.")
registry.register("logout", cmd_logout, help_text="Sign out (or leave guest mode).")
registry.register(
    "add",
    cmd_add,
    help_text="Add a task: /add <title> [--due YYYY-MM-DD] [--time HH:MM] [--priority low|medium|high].",
)
registry.register("list", cmd_list, help_text="List tasks: /list [all|pending|done].", aliases=["ls"])
registry.register("done", cmd_done, help_text="Toggle completion: /done <n|id>.")
registry.register("edit", cmd_edit, help_text="Edit a task: /edit <n|id> [title] [--due|--time|--priority].")
registry.register("rm", cmd_rm, help_text="Delete a task: /rm <n|id>.", aliases=["del"])
registry.register("refresh", cmd_refresh, help_text="Reload tasks and progress from the store.")
registry.register("report", cmd_report, help_text="Show the progress report.")
registry.register("timer", cmd_timer, help_text="Focus timer: /timer [start|pause|reset|resetall|work N].")
registry.register("mute", cmd_mute, help_text="Sound on/off: /mute [on|off].")
