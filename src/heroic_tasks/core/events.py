# src/heroic_tasks/core/events.py

"""
Semantic engine events.

The engine publishes these instead of calling presentation code (toasts, sounds).
Connectors subscribe and decide how to render them.
"""

from __future__ import annotations

import contextlib
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import ClassVar

from .errors import ErrorKind

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class EngineEvent:
    name: ClassVar[str] = "event"


@dataclass(frozen=True, slots=True)
class TaskAdded(EngineEvent):
    name: ClassVar[str] = "task-added"
    task_id: str
    title: str


@dataclass(frozen=True, slots=True)
class TaskUpdated(EngineEvent):
    name: ClassVar[str] = "task-updated"
    task_id: str
    title: str


@dataclass(frozen=True, slots=True)
class TaskCompleted(EngineEvent):
    """
    A task went incomplete -> complete.

    xp_gained is 0 when the task had already paid out before (re-completion).
    """

    name: ClassVar[str] = "task-completed"
    task_id: str
    title: str
    xp_gained: int


@dataclass(frozen=True, slots=True)
class LevelUp(EngineEvent):
    name: ClassVar[str] = "level-up"
    new_level: int


@dataclass(frozen=True, slots=True)
class TaskDeleted(EngineEvent):
    name: ClassVar[str] = "task-deleted"
    task_id: str
    title: str


@dataclass(frozen=True, slots=True)
class SessionChanged(EngineEvent):
    name: ClassVar[str] = "session-changed"
    state: str
    owner_id: str | None


@dataclass(frozen=True, slots=True)
class EngineError(EngineEvent):
    name: ClassVar[str] = "error"
    kind: ErrorKind
    message: str


EventHandler = Callable[[EngineEvent], None]


class EventBus:
    """In-memory pub/sub. A failing handler is logged and never breaks the publisher."""

    def __init__(self) -> None:
        self._handlers: list[EventHandler] = []

    def subscribe(self, handler: EventHandler) -> Callable[[], None]:
        self._handlers.append(handler)

        def _unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                self._handlers.remove(handler)

        return _unsubscribe

    def publish(self, event: EngineEvent) -> None:
        logger.debug("event %s %r", event.name, event)
        for handler in list(self._handlers):
            try:
                handler(event)
            except Exception:
                logger.exception("Event handler failed for %s", event.name)
