# src/heroic_tasks/focus/timer.py

"""
Pomodoro-style focus timer.

Cycle order: work -> short break (x3) ... every 4th completed work cycle is
followed by a long break. The timer stops at each cycle end; the user starts
the next one explicitly. No XP is tied to the timer.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import ClassVar

from ..core.errors import ValidationFailed
from ..core.events import EngineEvent

logger = logging.getLogger(__name__)

DEFAULT_WORK_MINUTES = 25
DEFAULT_SHORT_BREAK_MINUTES = 5
DEFAULT_LONG_BREAK_MINUTES = 15
CYCLES_BEFORE_LONG_BREAK = 4
MIN_WORK_MINUTES = 1
MAX_WORK_MINUTES = 240


class FocusCycle(StrEnum):
    WORK = "work"
    SHORT_BREAK = "shortBreak"
    LONG_BREAK = "longBreak"

    @property
    def label(self) -> str:
        return _LABELS[self]


_LABELS = {
    FocusCycle.WORK: "Work",
    FocusCycle.SHORT_BREAK: "Short Break",
    FocusCycle.LONG_BREAK: "Long Break",
}


@dataclass(frozen=True, slots=True)
class CycleEnded(EngineEvent):
    name: ClassVar[str] = "cycle-ended"
    finished: FocusCycle
    next_cycle: FocusCycle
    completed_work_cycles: int


class FocusTimer:
    def __init__(
        self,
        *,
        work_minutes: int = DEFAULT_WORK_MINUTES,
        short_break_minutes: int = DEFAULT_SHORT_BREAK_MINUTES,
        long_break_minutes: int = DEFAULT_LONG_BREAK_MINUTES,
    ) -> None:
        self._durations: dict[FocusCycle, int] = {
            FocusCycle.WORK: _validate_work_minutes(work_minutes) * 60,
            FocusCycle.SHORT_BREAK: max(1, int(short_break_minutes)) * 60,
            FocusCycle.LONG_BREAK: max(1, int(long_break_minutes)) * 60,
        }
        self.cycle = FocusCycle.WORK
        self.remaining_seconds = self._durations[FocusCycle.WORK]
        self.running = False
        self.completed_work_cycles = 0

    @property
    def work_minutes(self) -> int:
        return self._durations[FocusCycle.WORK] // 60

    def duration_seconds(self, cycle: FocusCycle | None = None) -> int:
        return self._durations[cycle or self.cycle]

    # ---- controls ----

    def start(self) -> None:
        self.running = True

    def pause(self) -> None:
        self.running = False

    def toggle(self) -> bool:
        self.running = not self.running
        return self.running

    def reset_current(self) -> None:
        self.running = False
        self.remaining_seconds = self.duration_seconds()

    def reset_all(self) -> None:
        self.running = False
        self.cycle = FocusCycle.WORK
        self.completed_work_cycles = 0
        self.remaining_seconds = self.duration_seconds()

    def set_work_minutes(self, minutes: int) -> None:
        self._durations[FocusCycle.WORK] = _validate_work_minutes(minutes) * 60
        if self.cycle is FocusCycle.WORK:
            self.remaining_seconds = self._durations[FocusCycle.WORK]

    # ---- clock ----

    def tick(self) -> CycleEnded | None:
        """Advance one second. Returns the cycle-end event when the current cycle expires."""
        if not self.running:
            return None
        if self.remaining_seconds > 1:
            self.remaining_seconds -= 1
            return None
        return self._advance()

    def _advance(self) -> CycleEnded:
        finished = self.cycle
        if finished is FocusCycle.WORK:
            self.completed_work_cycles += 1
            if self.completed_work_cycles % CYCLES_BEFORE_LONG_BREAK == 0:
                nxt = FocusCycle.LONG_BREAK
            else:
                nxt = FocusCycle.SHORT_BREAK
        else:
            nxt = FocusCycle.WORK

        self.cycle = nxt
        self.remaining_seconds = self.duration_seconds(nxt)
        self.running = False
        logger.info("Focus cycle %s finished; next %s", finished.value, nxt.value)
        return CycleEnded(finished=finished, next_cycle=nxt, completed_work_cycles=self.completed_work_cycles)

    # ---- display ----

    def progress_percent(self) -> float:
        total = self.duration_seconds()
        if total <= 0:
            return 0.0
        return (total - self.remaining_seconds) / total * 100.0

    def format_remaining(self) -> str:
        minutes, seconds = divmod(max(0, self.remaining_seconds), 60)
        return f"{minutes:02d}:{seconds:02d}"

    def cycle_label(self) -> str:
        return self.cycle.label


def _validate_work_minutes(minutes: int) -> int:
    try:
        value = int(minutes)
    except (TypeError, ValueError) as e:
        raise ValidationFailed(f"work duration must be a whole number of minutes, got {minutes!r}") from e
    if not MIN_WORK_MINUTES <= value <= MAX_WORK_MINUTES:
        raise ValidationFailed(f"work duration must be between {MIN_WORK_MINUTES} and {MAX_WORK_MINUTES} minutes")
    return value


async def run_focus_timer(
    timer: FocusTimer,
    on_event: Callable[[CycleEnded], None],
    *,
    interval_seconds: float = 1.0,
) -> None:
    """
    Drive the timer until cancelled.

    The caller owns the task (create_task/cancel). interval_seconds is the length
    of one timer second (tests shorten it).
    """
    logger.info("Focus timer driver started.")
    try:
        while True:
            await asyncio.sleep(interval_seconds)
            event = timer.tick()
            if event is None:
                continue
            try:
                on_event(event)
            except Exception:
                logger.exception("Focus timer event handler failed.")
    except asyncio.CancelledError:
        logger.info("Focus timer driver cancelled.")
        raise
