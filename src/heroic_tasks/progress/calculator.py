# src/heroic_tasks/progress/calculator.py

"""
Level/XP arithmetic.

Pure functions only: no I/O, no clocks. The reward ledger and the report are the
only callers that turn results into persisted progress or display text.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

from ..tasks.task_models import Progress

XP_LEVEL_BASE = 50
XP_LEVEL_FACTOR = 1.5

_RANKS: tuple[tuple[int, str], ...] = (
    (5, "Rookie Plumber"),
    (10, "Field Agent"),
    (15, "Galactic Hero"),
    (20, "Keeper of the Omnitrix"),
)
_TOP_RANK = "Legend of the Universe"


@dataclass(frozen=True, slots=True)
class XpResult:
    xp: int
    level: int
    leveled_up: bool

    @property
    def progress(self) -> Progress:
        return Progress(xp=self.xp, level=self.level)


def xp_to_reach_next_level(level: int) -> int:
    """XP needed inside `level` to roll over into `level + 1`."""
    level = max(1, int(level))
    return math.floor(XP_LEVEL_BASE * XP_LEVEL_FACTOR ** (level - 1))


def apply_xp(progress: Progress, amount: int) -> XpResult:
    """
    Add `amount` XP and roll over as many levels as it pays for.

    Non-positive amounts are a no-op (the input comes back unchanged).
    """
    if amount <= 0:
        return XpResult(xp=progress.xp, level=progress.level, leveled_up=False)

    xp = progress.xp + int(amount)
    level = max(1, progress.level)
    leveled_up = False

    threshold = xp_to_reach_next_level(level)
    while xp >= threshold:
        xp -= threshold
        level += 1
        leveled_up = True
        threshold = xp_to_reach_next_level(level)

    return XpResult(xp=xp, level=level, leveled_up=leveled_up)


def level_progress_percent(progress: Progress) -> float:
    needed = xp_to_reach_next_level(progress.level)
    if needed <= 0:
        return 0.0
    return min(100.0, progress.xp / needed * 100.0)


def rank_for_level(level: int) -> str:
    for upper, title in _RANKS:
        if level < upper:
            return title
    return _TOP_RANK
