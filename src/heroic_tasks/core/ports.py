# src/heroic_tasks/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The session controller depends on these Protocols, never on a concrete backend,
so the guest store and the remote store stay interchangeable and easy to fake.
"""

from collections.abc import Callable, Mapping
from typing import Any, Literal, Protocol

from ..tasks.task_models import Progress, Task, TaskDraft

BackendKind = Literal["guest", "remote"]

SnapshotHandler = Callable[[list[Task]], None]
ErrorHandler = Callable[[Exception], None]


class Subscription(Protocol):
    """Handle for a live task query. cancel() must be idempotent."""

    def cancel(self) -> None: ...

    @property
    def active(self) -> bool: ...


class TaskBackend(Protocol):
    """
    One owner's task collection + progress record.

    Both variants honor the same contract:
    - list ordering: created_at descending
    - update_task takes an attribute patch (see task_models.patch_to_record)
    - update/remove on an unknown id raise NotFound
    """

    owner_id: str
    kind: BackendKind

    async def list_tasks(self) -> list[Task]: ...
    async def add_task(self, draft: TaskDraft) -> Task: ...
    async def update_task(self, task_id: str, changes: Mapping[str, Any]) -> None: ...
    async def remove_task(self, task_id: str) -> None: ...

    async def load_progress(self) -> Progress | None: ...
    async def save_progress(self, progress: Progress) -> None: ...

    def subscribe(self, on_snapshot: SnapshotHandler, on_error: ErrorHandler) -> Subscription: ...

    async def aclose(self) -> None: ...


class RemoteDocuments(Protocol):
    """
    Remote document store (per-owner task collection + profile document).

    Records use the stored (camelCase) shape. The store assigns task ids and
    creation timestamps.
    """

    async def query_tasks(self, owner_id: str) -> list[dict[str, Any]]: ...
    async def create_task(self, owner_id: str, record: Mapping[str, Any]) -> dict[str, Any]: ...
    async def patch_task(self, owner_id: str, task_id: str, fields: Mapping[str, Any]) -> None: ...
    async def delete_task(self, owner_id: str, task_id: str) -> None: ...

    async def get_profile(self, owner_id: str) -> dict[str, Any] | None: ...
    async def patch_profile(self, owner_id: str, fields: Mapping[str, Any]) -> None: ...


class SlotStorage(Protocol):
    """String-keyed slots holding JSON-serializable snapshots."""

    def read_slot(self, key: str) -> Any | None: ...
    def write_slot(self, key: str, value: Any) -> None: ...
