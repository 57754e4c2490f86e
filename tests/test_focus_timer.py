# tests/test_focus_timer.py

from __future__ import annotations

import asyncio

import pytest

from heroic_tasks.core.errors import ValidationFailed
from heroic_tasks.focus.timer import CycleEnded, FocusCycle, FocusTimer, run_focus_timer


def _finish_cycle(timer: FocusTimer) -> CycleEnded:
    timer.start()
    while True:
        event = timer.tick()
        if event is not None:
            return event


def test_defaults_and_display() -> None:
    timer = FocusTimer()

    assert timer.cycle is FocusCycle.WORK
    assert timer.format_remaining() == "25:00"
    assert timer.cycle_label() == "Work"
    assert timer.progress_percent() == 0.0
    assert timer.running is False


def test_tick_only_counts_while_running() -> None:
    timer = FocusTimer(work_minutes=1)

    assert timer.tick() is None
    assert timer.remaining_seconds == 60

    timer.start()
    for _ in range(15):
        timer.tick()
    assert timer.format_remaining() == "00:45"
    assert timer.progress_percent() == pytest.approx(25.0)

    assert timer.toggle() is False
    timer.tick()
    assert timer.remaining_seconds == 45


def test_every_fourth_work_cycle_earns_a_long_break_and_timer_stops() -> None:
    timer = FocusTimer(work_minutes=1, short_break_minutes=1, long_break_minutes=2)
    sequence: list[FocusCycle] = []

    for _ in range(8):
        event = _finish_cycle(timer)
        assert timer.running is False
        sequence.append(event.next_cycle)

    assert sequence == [
        FocusCycle.SHORT_BREAK,
        FocusCycle.WORK,
        FocusCycle.SHORT_BREAK,
        FocusCycle.WORK,
        FocusCycle.SHORT_BREAK,
        FocusCycle.WORK,
        FocusCycle.LONG_BREAK,
        FocusCycle.WORK,
    ]
    assert timer.completed_work_cycles == 4


def test_cycle_end_resets_remaining_to_next_duration() -> None:
    timer = FocusTimer(work_minutes=1, short_break_minutes=3)

    event = _finish_cycle(timer)

    assert event.finished is FocusCycle.WORK
    assert event.completed_work_cycles == 1
    assert timer.cycle is FocusCycle.SHORT_BREAK
    assert timer.format_remaining() == "03:00"


@pytest.mark.parametrize("minutes", [0, 241, -5, "abc"])
def test_work_duration_bounds(minutes) -> None:
    timer = FocusTimer()
    with pytest.raises(ValidationFailed):
        timer.set_work_minutes(minutes)
    assert timer.work_minutes == 25


def test_changing_work_duration_retargets_only_during_work() -> None:
    timer = FocusTimer(work_minutes=1)
    timer.start()
    timer.tick()

    timer.set_work_minutes(240)
    assert timer.format_remaining() == "240:00"
    assert timer.running is True

    _finish_cycle(timer)
    timer.set_work_minutes(30)
    # In a break: the break keeps its own remaining time.
    assert timer.cycle is FocusCycle.SHORT_BREAK
    assert timer.format_remaining() == "05:00"


def test_resets() -> None:
    timer = FocusTimer(work_minutes=1)
    _finish_cycle(timer)
    timer.start()
    timer.tick()

    timer.reset_current()
    assert timer.cycle is FocusCycle.SHORT_BREAK
    assert timer.format_remaining() == "05:00"
    assert timer.running is False

    timer.reset_all()
    assert timer.cycle is FocusCycle.WORK
    assert timer.completed_work_cycles == 0
    assert timer.format_remaining() == "01:00"


@pytest.mark.asyncio
async def test_driver_publishes_cycle_end_and_cancels_cleanly() -> None:
    timer = FocusTimer(work_minutes=1)
    timer.remaining_seconds = 2
    timer.start()
    events: list[CycleEnded] = []

    runner = asyncio.create_task(run_focus_timer(timer, events.append, interval_seconds=0.005))
    await asyncio.sleep(0.1)
    runner.cancel()
    with pytest.raises(asyncio.CancelledError):
        await runner

    assert len(events) == 1
    assert events[0].next_cycle is FocusCycle.SHORT_BREAK
    assert timer.running is False
