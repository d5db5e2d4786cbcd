"""Streak calculator — completion streaks over materialized instances.

A day counts as complete when at least STREAK_COMPLETION_RATIO of its
scheduled instances are done. Days with nothing scheduled are skipped:
they neither extend nor break a streak.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import TYPE_CHECKING, Iterable

from lifeplan.config import settings
from lifeplan.core.logical_day import resolve_logical_date
from lifeplan.data.models import Instance

if TYPE_CHECKING:
    from lifeplan.ports.planner_store import PlannerStore

logger = logging.getLogger(__name__)


@dataclass
class DayProgress:
    day: date
    total: int = 0
    done: int = 0
    completed: bool = False


@dataclass
class StreakData:
    current_streak: int = 0
    longest_streak: int = 0
    today_complete: bool = False
    week_progress: list[DayProgress] = field(default_factory=list)


def count_by_day(instances: Iterable[Instance]) -> dict[date, tuple[int, int]]:
    """Group instances into {day: (total, done)}."""
    counts: dict[date, tuple[int, int]] = {}
    for inst in instances:
        total, done = counts.get(inst.logical_day, (0, 0))
        counts[inst.logical_day] = (total + 1, done + int(inst.is_done))
    return counts


def _is_complete(total: int, done: int, ratio: float) -> bool:
    return total > 0 and done >= total * ratio


def compute_streak(
    day_counts: dict[date, tuple[int, int]],
    today: date,
    window_days: int | None = None,
    completion_ratio: float | None = None,
) -> StreakData:
    """Compute streaks looking back *window_days* days from *today* (inclusive)."""
    window = settings.STREAK_WINDOW_DAYS if window_days is None else window_days
    ratio = settings.STREAK_COMPLETION_RATIO if completion_ratio is None else completion_ratio

    current = 0
    current_open = True
    longest = 0
    run = 0
    for offset in range(window):
        day = today - timedelta(days=offset)
        total, done = day_counts.get(day, (0, 0))
        if total == 0:
            continue
        if _is_complete(total, done, ratio):
            run += 1
            if current_open:
                current = run
        else:
            current_open = False
            longest = max(longest, run)
            run = 0
    longest = max(longest, run, current)

    week: list[DayProgress] = []
    for offset in range(6, -1, -1):
        day = today - timedelta(days=offset)
        total, done = day_counts.get(day, (0, 0))
        week.append(
            DayProgress(day=day, total=total, done=done, completed=_is_complete(total, done, ratio))
        )

    today_total, today_done = day_counts.get(today, (0, 0))
    return StreakData(
        current_streak=current,
        longest_streak=longest,
        today_complete=_is_complete(today_total, today_done, ratio),
        week_progress=week,
    )


async def get_streak_data(
    store: PlannerStore,
    user_id: str,
    now: datetime,
    timezone: str | None = None,
) -> StreakData:
    """Load the user's instances for the streak window and compute streaks."""
    today = resolve_logical_date(now, timezone)
    start = today - timedelta(days=settings.STREAK_WINDOW_DAYS - 1)
    instances = await store.list_instances(user_id, start, today)
    data = compute_streak(count_by_day(instances), today)
    logger.debug(
        "Streak for user %s on %s: current=%d longest=%d",
        user_id, today, data.current_streak, data.longest_streak,
    )
    return data
