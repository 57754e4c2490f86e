# src/heroic_tasks/tasks/remote_backend.py

from __future__ import annotations

"""
Remote (authenticated) backend.

Writes go straight to the remote document store and may fail (WriteFailed /
NotFound / StoreUnavailable propagate to the caller). The live view is a
polling query loop, the same shape as a scheduler loop:

- fetch the owner's tasks ordered by createdAt desc
- deliver a snapshot when the result changed
- report failures once per failure streak, keep polling
- stop when cancelled
"""

import asyncio
import contextlib
import logging
import time
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

from ..core.ports import ErrorHandler, RemoteDocuments, SnapshotHandler
from .task_models import Progress, Task, TaskDraft, patch_to_record

logger = logging.getLogger(__name__)


class PollingSubscription:
    """Live query emulation: an asyncio task that re-runs the query every interval."""

    def __init__(
        self,
        fetch: Callable[[], Awaitable[list[Task]]],
        on_snapshot: SnapshotHandler,
        on_error: ErrorHandler,
        *,
        interval_seconds: float = 2.0,
        name: str = "live-query",
    ) -> None:
        self._fetch = fetch
        self._on_snapshot = on_snapshot
        self._on_error = on_error
        self._interval = max(0.01, float(interval_seconds))
        self._cancelled = False
        self._task = asyncio.get_running_loop().create_task(self._run(), name=name)

    @property
    def active(self) -> bool:
        return not self._cancelled and not self._task.done()

    def cancel(self) -> None:
        self._cancelled = True
        if not self._task.done():
            self._task.cancel()

    async def wait_closed(self) -> None:
        with contextlib.suppress(asyncio.CancelledError):
            await self._task

    async def _run(self) -> None:
        last: list[Task] | None = None
        failing = False

        while not self._cancelled:
            try:
                tasks = await self._fetch()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                if not failing:
                    failing = True
                    logger.warning("Live query failed: %s", e)
                    if not self._cancelled:
                        try:
                            self._on_error(e)
                        except Exception:
                            logger.exception("Live query error handler failed.")
            else:
                if failing:
                    logger.info("Live query recovered.")
                failing = False
                if tasks != last and not self._cancelled:
                    last = tasks
                    try:
                        self._on_snapshot(list(tasks))
                    except Exception:
                        logger.exception("Live query snapshot handler failed.")

            await asyncio.sleep(self._interval)


class RemoteTaskBackend:
    kind = "remote"

    def __init__(
        self,
        documents: RemoteDocuments,
        owner_id: str,
        *,
        poll_interval_seconds: float = 2.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not owner_id:
            raise ValueError("owner_id is required")
        self.owner_id = owner_id
        self._documents = documents
        self._poll_interval = poll_interval_seconds
        self._clock = clock
        self._subscriptions: list[PollingSubscription] = []

    async def list_tasks(self) -> list[Task]:
        records = await self._documents.query_tasks(self.owner_id)
        tasks = [Task.from_record(r) for r in records if r.get("id")]
        tasks.sort(key=lambda t: t.created_at, reverse=True)
        return tasks

    async def add_task(self, draft: TaskDraft) -> Task:
        # Placeholder id/createdAt: the store assigns both.
        record = Task.from_draft(draft, task_id="", created_at=self._clock()).to_record()
        record.pop("id", None)
        record["userId"] = self.owner_id

        stored = await self._documents.create_task(self.owner_id, record)
        task = Task.from_record(stored)
        logger.debug("Remote task added owner=%s id=%s", self.owner_id, task.id)
        return task

    async def update_task(self, task_id: str, changes: Mapping[str, Any]) -> None:
        await self._documents.patch_task(self.owner_id, task_id, patch_to_record(changes))

    async def remove_task(self, task_id: str) -> None:
        await self._documents.delete_task(self.owner_id, task_id)

    async def load_progress(self) -> Progress | None:
        record = await self._documents.get_profile(self.owner_id)
        if record is None:
            return None
        return Progress.from_record(record)

    async def save_progress(self, progress: Progress) -> None:
        # A masked patch creates the profile document if it does not exist yet.
        await self._documents.patch_profile(
            self.owner_id,
            {**progress.to_record(), "lastLogin": self._clock()},
        )

    def subscribe(self, on_snapshot: SnapshotHandler, on_error: ErrorHandler) -> PollingSubscription:
        sub = PollingSubscription(
            self.list_tasks,
            on_snapshot,
            on_error,
            interval_seconds=self._poll_interval,
            name=f"live-query:{self.owner_id}",
        )
        self._subscriptions = [s for s in self._subscriptions if s.active]
        self._subscriptions.append(sub)
        return sub

    async def aclose(self) -> None:
        subs, self._subscriptions = self._subscriptions, []
        for sub in subs:
            sub.cancel()
        for sub in subs:
            await sub.wait_closed()
