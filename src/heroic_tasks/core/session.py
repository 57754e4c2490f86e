# src/heroic_tasks/core/session.py

"""
Session controller: who owns the data right now, and the task mutations.

Owner lifecycle:
- uninitialized -> signed_out | loading
- loading -> guest | authenticated | error
- error keeps the owner and its last-known data; mutations are still attempted
- any owner switch cancels the previous live query and drops its data

Mutations are optimistic: the in-memory view changes first, then the backend
write goes out. A failed write is reported as an "error" event; the view is not
rolled back (the next snapshot or refresh reconciles it), except that XP from a
completion whose reward gate was not stored is never kept.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, replace
from datetime import date
from enum import StrEnum
from functools import partial
from typing import Any

from ..progress.ledger import CompletionDecision, RewardLedger
from ..tasks.task_models import (
    OwnerView,
    Progress,
    Task,
    TaskDraft,
    TaskPriority,
    parse_clock_time,
    parse_due_date,
    validate_title,
)
from .errors import HeroicTasksError, NotFound, StoreUnavailable, ValidationFailed
from .events import (
    EngineError,
    EventBus,
    LevelUp,
    SessionChanged,
    TaskAdded,
    TaskCompleted,
    TaskDeleted,
    TaskUpdated,
)
from .ports import Subscription, TaskBackend

logger = logging.getLogger(__name__)

LocalBackendFactory = Callable[[], TaskBackend]
RemoteBackendFactory = Callable[[str], TaskBackend]

_UNSET: Any = object()


class SessionState(StrEnum):
    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    GUEST = "guest"
    AUTHENTICATED = "authenticated"
    SIGNED_OUT = "signed_out"
    ERROR = "error"


@dataclass(slots=True)
class SessionContext:
    """Presentation flags owned by one controller (no process-wide globals)."""

    muted: bool = False


def parse_priority(raw: str | TaskPriority | None) -> TaskPriority:
    if raw is None or raw == "":
        return TaskPriority.LOW
    try:
        return TaskPriority(str(raw).strip().lower())
    except ValueError as e:
        raise ValidationFailed(f"priority must be low, medium or high, got {raw!r}") from e


class SessionController:
    def __init__(
        self,
        *,
        local_backend_factory: LocalBackendFactory,
        remote_backend_factory: RemoteBackendFactory,
        events: EventBus,
        ledger: RewardLedger | None = None,
        context: SessionContext | None = None,
    ) -> None:
        self._local_factory = local_backend_factory
        self._remote_factory = remote_backend_factory
        self._events = events
        self._ledger = ledger or RewardLedger()
        self.context = context or SessionContext()

        self._state = SessionState.UNINITIALIZED
        self._mode: SessionState | None = None  # GUEST / AUTHENTICATED while an owner is active
        self._backend: TaskBackend | None = None
        self._view: OwnerView | None = None
        self._progress_loaded = False
        self._subscription: Subscription | None = None
        # Bumped on every owner switch; callbacks from an older generation are stale.
        self._generation = 0
        self.last_error: HeroicTasksError | None = None

    # ---- read-only view ----

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def owner_id(self) -> str | None:
        return self._view.owner_id if self._view else None

    @property
    def backend_kind(self) -> str | None:
        return self._backend.kind if self._backend else None

    @property
    def is_guest(self) -> bool:
        return self._mode is SessionState.GUEST

    @property
    def is_authenticated(self) -> bool:
        return self._mode is SessionState.AUTHENTICATED

    @property
    def tasks(self) -> list[Task]:
        return list(self._view.tasks) if self._view else []

    @property
    def progress(self) -> Progress | None:
        if self._view is None or not self._progress_loaded:
            return None
        return self._view.progress

    def get_task(self, task_id: str) -> Task:
        if self._view is not None:
            for t in self._view.tasks:
                if t.id == task_id:
                    return t
        raise NotFound(f"task {task_id} not found")

    # ---- internals ----

    def _set_state(self, state: SessionState) -> None:
        if state is self._state:
            return
        logger.info("Session %s -> %s (owner=%s)", self._state.value, state.value, self.owner_id)
        self._state = state
        self._events.publish(SessionChanged(state=state.value, owner_id=self.owner_id))

    def _report(self, exc: HeroicTasksError, what: str) -> None:
        self.last_error = exc
        self._events.publish(EngineError(kind=exc.kind, message=f"{what}: {exc}"))

    def _fail_read(self, exc: Exception, what: str) -> None:
        err = exc if isinstance(exc, HeroicTasksError) else StoreUnavailable(str(exc))
        logger.warning("%s failed: %s", what, err)
        self._set_state(SessionState.ERROR)
        self._report(err, what)

    async def _write(self, pending: Awaitable[None], what: str) -> bool:
        try:
            await pending
        except HeroicTasksError as e:
            logger.warning("%s failed: %s", what, e)
            self._report(e, what)
            return False
        return True

    def _require_owner(self) -> tuple[TaskBackend, OwnerView]:
        if self._backend is None or self._view is None:
            raise StoreUnavailable("no active owner: sign in or enter guest mode")
        return self._backend, self._view

    def _replace_task(self, view: OwnerView, task: Task) -> None:
        view.tasks = [task if t.id == task.id else t for t in view.tasks]

    async def _drop_owner(self) -> None:
        self._generation += 1
        sub, self._subscription = self._subscription, None
        if sub is not None:
            sub.cancel()
        backend, self._backend = self._backend, None
        self._view = None
        self._mode = None
        self._progress_loaded = False
        if backend is not None:
            try:
                await backend.aclose()
            except Exception:
                logger.exception("Failed to close %s backend", backend.kind)

    async def _activate(self, backend: TaskBackend, mode: SessionState) -> None:
        self._generation += 1
        gen = self._generation
        self._backend = backend
        self._mode = mode
        self._view = OwnerView(owner_id=backend.owner_id)
        self._set_state(SessionState.LOADING)

        loaded = await self._load(gen)
        if gen != self._generation:
            return

        self._subscription = backend.subscribe(
            partial(self._on_snapshot, gen),
            partial(self._on_live_error, gen),
        )
        if loaded:
            self._set_state(mode)

    async def _load(self, gen: int) -> bool:
        backend, view = self._require_owner()
        try:
            tasks = await backend.list_tasks()
            progress = await backend.load_progress()
        except HeroicTasksError as e:
            if gen == self._generation:
                self._fail_read(e, f"load {backend.kind} data")
            return False

        if gen != self._generation:
            return False

        if progress is None:
            # First visit for this owner: the progress record is created lazily.
            progress = Progress()
            await self._write(backend.save_progress(progress), "create progress")
            if gen != self._generation:
                return False

        view.tasks = list(tasks)
        view.progress = progress
        self._progress_loaded = True
        return True

    async def _ensure_progress(self) -> None:
        if self._progress_loaded:
            return
        if not await self.refresh():
            raise StoreUnavailable("progress is not available yet; try /refresh")

    def _on_snapshot(self, gen: int, tasks: list[Task]) -> None:
        if gen != self._generation or self._view is None:
            logger.debug("Dropping stale snapshot (generation %s != %s)", gen, self._generation)
            return
        self._view.tasks = list(tasks)
        if self._state is SessionState.ERROR and self._progress_loaded and self._mode is not None:
            self._set_state(self._mode)

    def _on_live_error(self, gen: int, exc: Exception) -> None:
        if gen != self._generation:
            return
        if self._state is SessionState.ERROR:
            # Already reported (e.g. the initial load hit the same failure).
            logger.debug("Live query error while already degraded: %s", exc)
            return
        self._fail_read(exc, "live task query")

    # ---- lifecycle ----

    async def start(self, owner_id: str | None = None) -> None:
        if self._state is not SessionState.UNINITIALIZED:
            return
        if owner_id:
            await self.handle_identity_change(owner_id)
        else:
            self._set_state(SessionState.SIGNED_OUT)

    async def handle_identity_change(self, owner_id: str | None) -> None:
        """Auth notification: a signed-in uid, or None after sign-out."""
        if owner_id is None:
            if self._mode is SessionState.AUTHENTICATED or self._mode is None:
                await self._drop_owner()
                self._set_state(SessionState.SIGNED_OUT)
            # A guest session is not affected by a remote sign-out.
            return

        if self._mode is SessionState.AUTHENTICATED and self.owner_id == owner_id:
            return

        if self._mode is SessionState.GUEST:
            logger.info("Sign-in detected; leaving guest mode.")
        await self._drop_owner()

        try:
            backend = self._remote_factory(owner_id)
        except HeroicTasksError as e:
            self._fail_read(e, "open remote store")
            return
        await self._activate(backend, SessionState.AUTHENTICATED)

    async def enter_guest(self) -> bool:
        if self._mode is SessionState.AUTHENTICATED:
            logger.info("Guest mode ignored: an account is signed in.")
            return False
        if self._mode is SessionState.GUEST:
            return True

        await self._drop_owner()
        try:
            backend = self._local_factory()
        except HeroicTasksError as e:
            self._fail_read(e, "open guest store")
            return False
        await self._activate(backend, SessionState.GUEST)
        return True

    async def exit_guest(self) -> None:
        if self._mode is not SessionState.GUEST:
            return
        await self._drop_owner()
        self._set_state(SessionState.SIGNED_OUT)

    async def sign_out(self) -> None:
        await self.handle_identity_change(None)

    async def refresh(self) -> bool:
        """Re-read the active owner's tasks and progress (recovery from error)."""
        self._require_owner()
        gen = self._generation
        loaded = await self._load(gen)
        if loaded and gen == self._generation and self._mode is not None:
            self._set_state(self._mode)
        return loaded

    async def close(self) -> None:
        await self._drop_owner()

    # ---- mutations ----

    async def add_task(
        self,
        title: str,
        *,
        due_date: str | date | None = None,
        time: str | None = None,
        priority: str | TaskPriority | None = TaskPriority.LOW,
    ) -> Task | None:
        draft = TaskDraft(
            title=validate_title(title),
            due_date=parse_due_date(due_date),
            time=parse_clock_time(time),
            priority=parse_priority(priority),
        )
        backend, view = self._require_owner()
        gen = self._generation

        try:
            task = await backend.add_task(draft)
        except HeroicTasksError as e:
            logger.warning("add task failed: %s", e)
            self._report(e, "add task")
            return None

        if gen == self._generation and all(t.id != task.id for t in view.tasks):
            view.tasks.insert(0, task)
        self._events.publish(TaskAdded(task_id=task.id, title=task.title))
        return task

    async def set_completed(self, task_id: str, completed: bool) -> CompletionDecision | None:
        """Set the completion flag; returns None when nothing changed."""
        backend, view = self._require_owner()
        task = self.get_task(task_id)
        if task.completed == completed:
            return None

        gen = self._generation
        if self._ledger.award_due(task, completed):
            await self._ensure_progress()
            if gen != self._generation:
                raise StoreUnavailable("owner changed during the update")
            task = self.get_task(task_id)

        decision = self._ledger.on_completion_toggle(task, completed, view.progress)
        self._replace_task(view, decision.task)

        # Gate first: if it never lands, progress is not written either.
        gated = await self._write(backend.update_task(task_id, decision.changes), f"update task {task_id}")
        reward = decision.reward if gated else None
        if decision.reward is not None and not gated:
            # Completion flag stays optimistic; the unpaid award is not kept in memory.
            self._replace_task(view, replace(decision.task, xp_awarded_at=task.xp_awarded_at))

        if decision.fresh_completion:
            xp_gained = reward.xp_gained if reward else 0
            self._events.publish(TaskCompleted(task_id=task.id, title=task.title, xp_gained=xp_gained))
        if reward is None:
            return decision

        view.progress = decision.progress
        if reward.leveled_up:
            self._events.publish(LevelUp(new_level=reward.new_level))
        await self._write(backend.save_progress(decision.progress), "save progress")
        return decision

    async def toggle_complete(self, task_id: str) -> CompletionDecision | None:
        task = self.get_task(task_id)
        return await self.set_completed(task_id, not task.completed)

    async def edit_task(
        self,
        task_id: str,
        *,
        title: Any = _UNSET,
        due_date: Any = _UNSET,
        time: Any = _UNSET,
        priority: Any = _UNSET,
    ) -> Task:
        changes: dict[str, Any] = {}
        if title is not _UNSET:
            changes["title"] = validate_title(title)
        if due_date is not _UNSET:
            changes["due_date"] = parse_due_date(due_date)
        if time is not _UNSET:
            changes["time"] = parse_clock_time(time)
        if priority is not _UNSET:
            changes["priority"] = parse_priority(priority)

        backend, view = self._require_owner()
        task = self.get_task(task_id)
        if not changes:
            return task

        # Only the edited fields are patched; the reward gate is never part of an edit.
        updated = replace(task, **changes)
        self._replace_task(view, updated)
        self._events.publish(TaskUpdated(task_id=task_id, title=updated.title))
        await self._write(backend.update_task(task_id, changes), f"edit task {task_id}")
        return updated

    async def delete_task(self, task_id: str) -> Task:
        backend, view = self._require_owner()
        task = self.get_task(task_id)

        view.tasks = [t for t in view.tasks if t.id != task_id]
        self._events.publish(TaskDeleted(task_id=task_id, title=task.title))
        await self._write(backend.remove_task(task_id), f"delete task {task_id}")
        return task
