# tests/test_progress_calculator.py

from __future__ import annotations

import pytest

from heroic_tasks.progress.calculator import (
    apply_xp,
    level_progress_percent,
    rank_for_level,
    xp_to_reach_next_level,
)
from heroic_tasks.tasks.task_models import Progress


@pytest.mark.parametrize(
    ("level", "expected"),
    [(1, 50), (2, 75), (3, 112), (4, 168), (5, 253), (0, 50), (-3, 50)],
)
def test_xp_to_reach_next_level(level: int, expected: int) -> None:
    assert xp_to_reach_next_level(level) == expected


@pytest.mark.parametrize(
    ("xp", "level", "amount", "expected"),
    [
        (0, 1, 10, (10, 1, False)),
        (40, 1, 10, (0, 2, True)),
        (45, 1, 10, (5, 2, True)),
        # One large award can pay for several levels: 50 + 75 = 125 spent.
        (0, 1, 200, (75, 3, True)),
        (70, 2, 15, (10, 3, True)),
    ],
)
def test_apply_xp_rolls_over(xp: int, level: int, amount: int, expected: tuple[int, int, bool]) -> None:
    result = apply_xp(Progress(xp=xp, level=level), amount)
    assert (result.xp, result.level, result.leveled_up) == expected


@pytest.mark.parametrize("amount", [0, -5])
def test_apply_xp_non_positive_is_noop(amount: int) -> None:
    result = apply_xp(Progress(xp=12, level=3), amount)
    assert result.progress == Progress(xp=12, level=3)
    assert result.leveled_up is False


def test_xp_stays_below_threshold_after_any_award() -> None:
    progress = Progress()
    for amount in (5, 10, 15, 10, 5, 15, 15, 15, 10, 200):
        progress = apply_xp(progress, amount).progress
        assert 0 <= progress.xp < xp_to_reach_next_level(progress.level)


def test_level_progress_percent() -> None:
    assert level_progress_percent(Progress(xp=25, level=1)) == pytest.approx(50.0)
    assert level_progress_percent(Progress(xp=0, level=4)) == 0.0


@pytest.mark.parametrize(
    ("level", "rank"),
    [
        (1, "Rookie Plumber"),
        (4, "Rookie Plumber"),
        (5, "Field Agent"),
        (10, "Galactic Hero"),
        (15, "Keeper of the Omnitrix"),
        (19, "Keeper of the Omnitrix"),
        (20, "Legend of the Universe"),
    ],
)
def test_rank_for_level(level: int, rank: str) -> None:
    assert rank_for_level(level) == rank
