# src/heroic_tasks/tasks/task_models.py

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from enum import StrEnum
from typing import Any

from ..core.errors import ValidationFailed

# Records written before xpEarned existed pay out this much (once).
DEFAULT_XP_FOR_LEGACY_TASKS = 10

_CLOCK_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")

# Epoch values above this are milliseconds (guest data written by older clients).
_MS_THRESHOLD = 1e11


class TaskPriority(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def from_record(cls, raw: Any) -> TaskPriority:
        if not raw:
            return cls.LOW
        try:
            return cls(str(raw).strip().lower())
        except ValueError:
            return cls.LOW

    @property
    def xp(self) -> int:
        return XP_FOR_PRIORITY[self]


XP_FOR_PRIORITY: dict[TaskPriority, int] = {
    TaskPriority.LOW: 5,
    TaskPriority.MEDIUM: 10,
    TaskPriority.HIGH: 15,
}


# Attribute name -> record key. Immutable attributes are not patchable.
_RECORD_KEYS: dict[str, str] = {
    "title": "title",
    "completed": "completed",
    "due_date": "dueDate",
    "time": "time",
    "priority": "priority",
    "xp_awarded_at": "xpAwardedAt",
}
_IMMUTABLE = frozenset({"id", "created_at", "xp_earned"})


def to_epoch_seconds(raw: Any) -> float | None:
    """
    Normalize a stored timestamp to epoch seconds.

    Accepts floats/ints (seconds or legacy milliseconds), ISO-8601 strings and datetimes.
    """
    if raw is None or raw == "":
        return None
    if isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        val = float(raw)
        return val / 1000.0 if val > _MS_THRESHOLD else val
    if isinstance(raw, datetime):
        dt = raw if raw.tzinfo else raw.replace(tzinfo=UTC)
        return dt.timestamp()
    if isinstance(raw, str):
        try:
            return to_epoch_seconds(float(raw))
        except ValueError:
            pass
        try:
            return to_epoch_seconds(datetime.fromisoformat(raw.strip()))
        except ValueError:
            return None
    return None


def decode_award_marker(raw: Any, fallback: float) -> float | None:
    """
    Decode the stored xpAwardedAt gate.

    Any truthy marker means XP was paid. Markers that are not timestamps (flags,
    garbage strings) decode to `fallback` so the gate stays closed.
    """
    if not raw:
        return None
    ts = to_epoch_seconds(raw)
    return ts if ts is not None else fallback


def validate_title(raw: str | None) -> str:
    title = (raw or "").strip()
    if not title:
        raise ValidationFailed("title is required")
    return title


def parse_due_date(raw: str | date | None) -> date | None:
    if raw is None or raw == "":
        return None
    if isinstance(raw, date):
        return raw
    try:
        return date.fromisoformat(str(raw).strip())
    except ValueError as e:
        raise ValidationFailed(f"due date must be YYYY-MM-DD, got {raw!r}") from e


def parse_clock_time(raw: str | None) -> str | None:
    if raw is None or raw.strip() == "":
        return None
    s = raw.strip()
    if len(s) == 4 and s[1] == ":":
        s = "0" + s
    if not _CLOCK_RE.match(s):
        raise ValidationFailed(f"time must be HH:MM, got {raw!r}")
    return s


@dataclass(frozen=True, slots=True)
class TaskDraft:
    """User-supplied fields for a new task (validated by the session controller)."""

    title: str
    due_date: date | None = None
    time: str | None = None
    priority: TaskPriority = TaskPriority.LOW


@dataclass(frozen=True, slots=True)
class Task:
    id: str
    title: str
    completed: bool
    created_at: float
    due_date: date | None = None
    time: str | None = None
    priority: TaskPriority = TaskPriority.LOW
    xp_earned: int | None = None
    xp_awarded_at: float | None = None

    @classmethod
    def from_draft(cls, draft: TaskDraft, *, task_id: str, created_at: float) -> Task:
        return cls(
            id=task_id,
            title=draft.title,
            completed=False,
            created_at=created_at,
            due_date=draft.due_date,
            time=draft.time,
            priority=draft.priority,
            xp_earned=draft.priority.xp,
            xp_awarded_at=None,
        )

    @property
    def xp_awarded(self) -> bool:
        return self.xp_awarded_at is not None

    def to_record(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "completed": self.completed,
            "createdAt": self.created_at,
            "dueDate": self.due_date.isoformat() if self.due_date else None,
            "time": self.time,
            "priority": self.priority.value,
            "xpEarned": self.xp_earned,
            "xpAwardedAt": self.xp_awarded_at,
        }

    @classmethod
    def from_record(cls, record: Mapping[str, Any], *, task_id: str | None = None) -> Task:
        due: date | None
        try:
            due = parse_due_date(record.get("dueDate"))
        except ValidationFailed:
            due = None

        raw_xp = record.get("xpEarned")
        try:
            xp_earned = int(raw_xp) if raw_xp is not None else None
        except (TypeError, ValueError):
            xp_earned = None

        raw_time = record.get("time")
        created_at = to_epoch_seconds(record.get("createdAt")) or 0.0
        return cls(
            id=str(task_id if task_id is not None else record.get("id", "")),
            title=str(record.get("title") or ""),
            completed=bool(record.get("completed", False)),
            created_at=created_at,
            due_date=due,
            time=str(raw_time) if raw_time else None,
            priority=TaskPriority.from_record(record.get("priority")),
            xp_earned=xp_earned,
            xp_awarded_at=decode_award_marker(record.get("xpAwardedAt"), created_at),
        )


def patch_to_record(changes: Mapping[str, Any]) -> dict[str, Any]:
    """Translate an attribute patch (snake_case) into record keys (camelCase)."""
    out: dict[str, Any] = {}
    for name, value in changes.items():
        if name in _IMMUTABLE:
            raise ValidationFailed(f"{name} cannot be changed after creation")
        key = _RECORD_KEYS.get(name)
        if key is None:
            raise ValidationFailed(f"unknown task field: {name}")
        if name == "due_date":
            value = value.isoformat() if value else None
        elif name == "priority":
            value = TaskPriority(value).value
        out[key] = value
    return out


@dataclass(frozen=True, slots=True)
class Progress:
    xp: int = 0
    level: int = 1

    def to_record(self) -> dict[str, Any]:
        return {"xp": self.xp, "level": self.level}

    @classmethod
    def from_record(cls, record: Mapping[str, Any] | None) -> Progress:
        if not record:
            return cls()
        try:
            xp = int(record.get("xp", 0) or 0)
        except (TypeError, ValueError):
            xp = 0
        try:
            level = int(record.get("level", 1) or 1)
        except (TypeError, ValueError):
            level = 1
        return cls(xp=max(0, xp), level=max(1, level))


@dataclass(slots=True)
class OwnerView:
    """In-memory snapshot of one owner's data (what the UI renders)."""

    owner_id: str
    tasks: list[Task] = field(default_factory=list)
    progress: Progress = field(default_factory=Progress)
