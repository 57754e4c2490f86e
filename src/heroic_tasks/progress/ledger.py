# src/heroic_tasks/progress/ledger.py

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, replace
from typing import Any

from ..tasks.task_models import DEFAULT_XP_FOR_LEGACY_TASKS, Progress, Task
from .calculator import apply_xp

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RewardOutcome:
    xp_gained: int
    leveled_up: bool
    new_level: int


@dataclass(frozen=True, slots=True)
class CompletionDecision:
    """
    Result of one completion toggle.

    task:     the record after the toggle (completed flag, gate stamped if paid)
    changes:  attribute patch to persist for the task
    progress: owner progress after the toggle (unchanged unless reward is set)
    reward:   set only when XP was actually minted
    fresh_completion: incomplete -> complete transition (drives completion feedback
                      even when the task had already paid out earlier)
    """

    task: Task
    changes: dict[str, Any]
    progress: Progress
    reward: RewardOutcome | None
    fresh_completion: bool


class RewardLedger:
    """
    Decides whether a completion transition mints XP.

    The only gate is `Task.xp_awarded_at`: once stamped it is never cleared, so
    uncomplete/recomplete cycles and retries can never pay twice.
    """

    def __init__(
        self,
        *,
        clock: Callable[[], float] = time.time,
        default_xp: int = DEFAULT_XP_FOR_LEGACY_TASKS,
    ) -> None:
        self._clock = clock
        self._default_xp = int(default_xp)

    def xp_for(self, task: Task) -> int:
        # Missing, zero or corrupt (negative) reward sizes pay the default.
        if task.xp_earned is None or task.xp_earned <= 0:
            return self._default_xp
        return task.xp_earned

    def award_due(self, task: Task, completed: bool) -> bool:
        return completed and task.xp_awarded_at is None

    def on_completion_toggle(self, task: Task, completed: bool, progress: Progress) -> CompletionDecision:
        fresh = completed and not task.completed

        if not self.award_due(task, completed):
            # Uncomplete, or a task that already paid out: flag only, gate untouched.
            return CompletionDecision(
                task=replace(task, completed=completed),
                changes={"completed": completed},
                progress=progress,
                reward=None,
                fresh_completion=fresh,
            )

        xp_gained = self.xp_for(task)
        result = apply_xp(progress, xp_gained)
        awarded_at = self._clock()

        logger.debug(
            "XP award task_id=%s xp=%s level %s -> %s",
            task.id,
            xp_gained,
            progress.level,
            result.level,
        )
        return CompletionDecision(
            task=replace(task, completed=True, xp_awarded_at=awarded_at),
            changes={"completed": True, "xp_awarded_at": awarded_at},
            progress=result.progress,
            reward=RewardOutcome(
                xp_gained=xp_gained,
                leveled_up=result.leveled_up,
                new_level=result.level,
            ),
            fresh_completion=fresh,
        )
