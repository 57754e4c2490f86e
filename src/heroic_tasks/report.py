# src/heroic_tasks/report.py

"""
Progress report: task counts, level summary and completions per day.

Completions are bucketed by the local calendar date of the task's creation time
(the stored records carry no completion timestamp other than the reward gate,
which is missing for legacy tasks).
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date, datetime

from .progress.calculator import level_progress_percent, rank_for_level, xp_to_reach_next_level
from .progress.ledger import RewardLedger
from .tasks.task_models import Progress, Task


@dataclass(frozen=True, slots=True)
class DailyCompletions:
    day: date
    completed: int


@dataclass(frozen=True, slots=True)
class Report:
    total: int
    completed: int
    pending: int
    xp_paid_out: int
    level: int
    xp: int
    xp_to_next_level: int
    level_percent: float
    rank: str
    per_day: list[DailyCompletions] = field(default_factory=list)


def build_report(tasks: Iterable[Task], progress: Progress | None, *, ledger: RewardLedger | None = None) -> Report:
    ledger = ledger or RewardLedger()
    progress = progress or Progress()
    items = list(tasks)

    done = [t for t in items if t.completed]
    paid = sum(ledger.xp_for(t) for t in items if t.xp_awarded)
    per_day = Counter(datetime.fromtimestamp(t.created_at).date() for t in done)

    return Report(
        total=len(items),
        completed=len(done),
        pending=len(items) - len(done),
        xp_paid_out=paid,
        level=progress.level,
        xp=progress.xp,
        xp_to_next_level=xp_to_reach_next_level(progress.level),
        level_percent=level_progress_percent(progress),
        rank=rank_for_level(progress.level),
        per_day=[DailyCompletions(day=d, completed=n) for d, n in sorted(per_day.items())],
    )


def render_report(report: Report) -> str:
    lines = [
        f"Level {report.level} ({report.rank})",
        f"XP {report.xp}/{report.xp_to_next_level} ({report.level_percent:.0f}%), paid out so far: {report.xp_paid_out}",
        f"Tasks: {report.total} total, {report.completed} completed, {report.pending} pending",
    ]
    if not report.per_day:
        lines.append("No completed tasks yet.")
        return "\n".join(lines)

    lines.append("Completed per day:")
    width = max(d.completed for d in report.per_day)
    for d in report.per_day:
        bar = "#" * max(1, round(d.completed / width * 20))
        lines.append(f"  {d.day.isoformat()}  {bar} {d.completed}")
    return "\n".join(lines)
