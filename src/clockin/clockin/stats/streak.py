from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Iterable, Optional

from ..core.constants import STREAK_MILESTONES, STREAK_RESET_AFTER_DAYS


@dataclass(frozen=True)
class StreakResult:
    current: int
    longest: int


def calculate_streak(
    visit_dates: Iterable[date],
    *,
    today: Optional[date] = None,
    reset_after_days: int = STREAK_RESET_AFTER_DAYS,
) -> StreakResult:
    """Consecutive-day streaks over a set of visit days.

    Several visits on one day count once. Any missing calendar day ends a
    run. The current streak is the run ending at the most recent visit; it
    drops to 0 when ``today`` is more than ``reset_after_days`` past that
    visit.
    """

    days = sorted(set(visit_dates), reverse=True)
    if not days:
        return StreakResult(current=0, longest=0)

    current: Optional[int] = None
    run = longest = 1
    for newer, older in zip(days, days[1:]):
        if (newer - older).days == 1:
            run += 1
        else:
            if current is None:
                current = run
            run = 1
        longest = max(longest, run)

    if current is None:
        current = run
    if today is not None and (today - days[0]).days > reset_after_days:
        current = 0
    return StreakResult(current=current, longest=longest)


def is_streak_milestone(streak: int) -> bool:
    return streak in STREAK_MILESTONES


def next_streak_milestone(streak: int) -> Optional[int]:
    for milestone in STREAK_MILESTONES:
        if milestone > streak:
            return milestone
    return None
