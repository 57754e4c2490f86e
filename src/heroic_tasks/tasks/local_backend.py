# src/heroic_tasks/tasks/local_backend.py

from __future__ import annotations

import logging
import secrets
import sqlite3
import string
import time
from collections.abc import Callable, Mapping
from typing import Any

from ..core.errors import NotFound, StoreUnavailable
from ..core.ports import ErrorHandler, SlotStorage, SnapshotHandler
from .slot_store import GUEST_PROFILE_KEY, GUEST_TASKS_KEY
from .task_models import Progress, Task, TaskDraft, patch_to_record

logger = logging.getLogger(__name__)

GUEST_OWNER_ID = "guest"

_ID_ALPHABET = string.digits + string.ascii_lowercase


def generate_local_id(now: float) -> str:
    """local_<epoch-ms>_<7 random base36 chars>; there is no central id authority offline."""
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(7))
    return f"local_{int(now * 1000)}_{suffix}"


class _LocalSubscription:
    def __init__(self, backend: LocalTaskBackend, on_snapshot: SnapshotHandler) -> None:
        self._backend = backend
        self._on_snapshot = on_snapshot
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def deliver(self, tasks: list[Task]) -> None:
        if not self._active:
            return
        try:
            self._on_snapshot(tasks)
        except Exception:
            logger.exception("Local snapshot handler failed.")

    def cancel(self) -> None:
        if not self._active:
            return
        self._active = False
        self._backend._detach(self)


class LocalTaskBackend:
    """
    Guest-mode backend: tasks and progress live in two on-device slots.

    - reads happen once (lazily) and are then served from memory
    - every mutation rewrites the whole slot (fire-and-forget: failures are logged)
    - ids are generated locally; created_at is strictly increasing
    """

    kind = "guest"

    def __init__(
        self,
        slots: SlotStorage,
        *,
        owner_id: str = GUEST_OWNER_ID,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.owner_id = owner_id
        self._slots = slots
        self._clock = clock
        self._tasks: list[Task] | None = None
        self._progress: Progress | None = None
        self._progress_loaded = False
        self._listeners: list[_LocalSubscription] = []

    # ---- loading ----

    def _ensure_loaded(self) -> list[Task]:
        if self._tasks is not None:
            return self._tasks
        try:
            raw = self._slots.read_slot(GUEST_TASKS_KEY)
        except (sqlite3.Error, OSError) as e:
            raise StoreUnavailable(f"local storage is unavailable: {e}") from e

        tasks: list[Task] = []
        if isinstance(raw, list):
            for item in raw:
                if not isinstance(item, dict):
                    continue
                task = Task.from_record(item)
                if task.id:
                    tasks.append(task)
        elif raw is not None:
            logger.warning("Guest task slot has unexpected shape %s; starting empty.", type(raw).__name__)

        self._tasks = tasks
        logger.info("Guest tasks loaded: %d", len(tasks))
        return tasks

    def snapshot(self) -> list[Task]:
        """Synchronous listing, newest first."""
        return sorted(self._ensure_loaded(), key=lambda t: t.created_at, reverse=True)

    # ---- persistence ----

    def _write(self, key: str, value: Any) -> None:
        try:
            self._slots.write_slot(key, value)
        except (sqlite3.Error, OSError, TypeError, ValueError):
            logger.exception("Failed to persist guest slot %s (kept in memory).", key)

    def _persist_tasks(self) -> None:
        snapshot = self.snapshot()
        self._write(GUEST_TASKS_KEY, [t.to_record() for t in snapshot])
        for sub in list(self._listeners):
            sub.deliver(list(snapshot))

    def _index_of(self, task_id: str) -> int:
        for i, t in enumerate(self._ensure_loaded()):
            if t.id == task_id:
                return i
        raise NotFound(f"task {task_id} not found")

    def _next_created_at(self, tasks: list[Task]) -> float:
        now = float(self._clock())
        latest = max((t.created_at for t in tasks), default=0.0)
        return now if now > latest else latest + 0.001

    # ---- TaskBackend ----

    async def list_tasks(self) -> list[Task]:
        return self.snapshot()

    async def add_task(self, draft: TaskDraft) -> Task:
        tasks = self._ensure_loaded()
        created_at = self._next_created_at(tasks)

        existing = {t.id for t in tasks}
        task_id = generate_local_id(created_at)
        while task_id in existing:
            task_id = generate_local_id(created_at)

        task = Task.from_draft(draft, task_id=task_id, created_at=created_at)
        tasks.append(task)
        self._persist_tasks()
        logger.debug("Guest task added id=%s priority=%s", task.id, task.priority.value)
        return task

    async def update_task(self, task_id: str, changes: Mapping[str, Any]) -> None:
        record = patch_to_record(changes)
        tasks = self._ensure_loaded()
        idx = self._index_of(task_id)
        tasks[idx] = Task.from_record({**tasks[idx].to_record(), **record})
        self._persist_tasks()

    async def remove_task(self, task_id: str) -> None:
        tasks = self._ensure_loaded()
        idx = self._index_of(task_id)
        del tasks[idx]
        self._persist_tasks()

    async def load_progress(self) -> Progress | None:
        if self._progress_loaded:
            return self._progress
        try:
            raw = self._slots.read_slot(GUEST_PROFILE_KEY)
        except (sqlite3.Error, OSError) as e:
            raise StoreUnavailable(f"local storage is unavailable: {e}") from e
        self._progress = Progress.from_record(raw) if isinstance(raw, dict) else None
        self._progress_loaded = True
        return self._progress

    async def save_progress(self, progress: Progress) -> None:
        self._progress = progress
        self._progress_loaded = True
        self._write(GUEST_PROFILE_KEY, progress.to_record())

    def subscribe(self, on_snapshot: SnapshotHandler, on_error: ErrorHandler) -> _LocalSubscription:
        sub = _LocalSubscription(self, on_snapshot)
        self._listeners.append(sub)
        try:
            snapshot = self.snapshot()
        except StoreUnavailable as e:
            on_error(e)
        else:
            sub.deliver(snapshot)
        return sub

    def _detach(self, sub: _LocalSubscription) -> None:
        if sub in self._listeners:
            self._listeners.remove(sub)

    async def aclose(self) -> None:
        for sub in list(self._listeners):
            sub.cancel()
