# src/heroic_tasks/core/errors.py

"""
Engine error taxonomy.

- StoreUnavailable: backend not configured / not reachable (reads, missing owner)
- WriteFailed: a mutation was rejected by the backend
- ValidationFailed: bad user input, rejected before reaching any store
- NotFound: mutate/delete on an id the owner does not have

None of these are fatal: callers retry, refresh, or switch owner.
"""

from __future__ import annotations

from enum import StrEnum
from typing import ClassVar


class ErrorKind(StrEnum):
    STORE_UNAVAILABLE = "store_unavailable"
    WRITE_FAILED = "write_failed"
    VALIDATION_FAILED = "validation_failed"
    NOT_FOUND = "not_found"


class HeroicTasksError(Exception):
    kind: ClassVar[ErrorKind]


class StoreUnavailable(HeroicTasksError):
    kind = ErrorKind.STORE_UNAVAILABLE


class WriteFailed(HeroicTasksError):
    kind = ErrorKind.WRITE_FAILED


class ValidationFailed(HeroicTasksError, ValueError):
    kind = ErrorKind.VALIDATION_FAILED


class NotFound(HeroicTasksError, LookupError):
    kind = ErrorKind.NOT_FOUND

    def __str__(self) -> str:
        # LookupError/KeyError-style repr quoting is not wanted in user-facing text.
        return str(self.args[0]) if self.args else "not found"
