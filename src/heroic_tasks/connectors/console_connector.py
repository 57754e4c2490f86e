# src/heroic_tasks/connectors/console_connector.py

from __future__ import annotations

import logging
import sys
from datetime import datetime

from ..cli.commands import registry as command_registry
from ..core.events import (
    EngineError,
    EngineEvent,
    LevelUp,
    SessionChanged,
    TaskAdded,
    TaskCompleted,
    TaskDeleted,
    TaskUpdated,
)
from ..core.state import AppState
from ..focus.timer import CycleEnded, FocusCycle

logger = logging.getLogger(__name__)

# Events that ring the terminal bell (the console's "sound effects").
_BELL_EVENTS = (TaskCompleted, LevelUp, CycleEnded)


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}", flush=True)


def render_event(event: EngineEvent) -> str | None:
    """Map an engine event to console text. None means: nothing to show."""
    if isinstance(event, TaskCompleted):
        if event.xp_gained > 0:
            return f"Task complete! +{event.xp_gained} XP for '{event.title}'"
        return f"Task complete: '{event.title}' (XP already earned)"
    if isinstance(event, LevelUp):
        return f"LEVEL UP! You reached level {event.new_level}."
    if isinstance(event, CycleEnded):
        if event.finished is FocusCycle.WORK:
            return f"Focus session done ({event.completed_work_cycles} so far). Time for a {event.next_cycle.label.lower()}."
        return "Break over. Ready for the next focus session? (/timer start)"
    if isinstance(event, EngineError):
        return f"[error:{event.kind.value}] {event.message}"
    if isinstance(event, SessionChanged):
        if event.state in ("loading", "uninitialized"):
            return None
        owner = f" ({event.owner_id})" if event.owner_id else ""
        return f"[session] {event.state}{owner}"
    if isinstance(event, (TaskAdded, TaskUpdated, TaskDeleted)):
        # The command reply already says it.
        return None
    return None


def attach_event_renderer(state: AppState):
    """Subscribe the console renderer to engine events. Returns the unsubscribe callable."""

    def _on_event(event: EngineEvent) -> None:
        text = render_event(event)
        if text is None:
            return
        bell = "\a" if isinstance(event, _BELL_EVENTS) and not state.session.context.muted else ""
        print(f"{bell}\n[{_ts_local()}] {text}", flush=True)

    return state.events.subscribe(_on_event)


def run_console_loop(state: AppState) -> None:
    logger.info("Console connector started (session=%s).", state.session.state.value)
    _print_ts("[CONSOLE] Use /help for commands, /guest to start without an account, /exit to quit.\n")

    detach = attach_event_renderer(state)

    def emit(text: str) -> None:
        # Immediate user-visible feedback for slow operations (network sign-in).
        _print_ts(text)

    try:
        while True:
            try:
                user_input = input(">>> ").strip()
            except EOFError:
                logger.info("Console EOF received, exiting.")
                break
            except KeyboardInterrupt:
                logger.info("Console KeyboardInterrupt, exiting.")
                print()
                break

            if not user_input:
                continue

            if user_input.lower() in ("/exit", "/quit"):
                logger.info("Console exit command received.")
                break

            if not user_input.startswith("/"):
                # Plain text is a shortcut for /add.
                user_input = f"/add {user_input}"

            try:
                reply = command_registry.handle(state, user_input, emit=emit)
            except Exception:
                logger.exception("Command handler crashed.")
                reply = "Internal error while handling a command."

            if reply is not None:
                _print_ts(reply)
    finally:
        detach()
        sys.stdout.flush()
        logger.info("Console connector finished.")
