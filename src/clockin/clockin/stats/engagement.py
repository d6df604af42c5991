from __future__ import annotations

from datetime import datetime
from typing import Mapping, Optional

from ..core import constants as c
from ..core.enums import TIME_SLOT_ORDER, EngagementLevel, TimeSlot


def calculate_engagement_level(
    this_month_visits: int,
    last_visited_at: Optional[datetime],
    *,
    now: datetime,
) -> EngagementLevel:
    """Recency first (dormant, at risk), then visit frequency this month."""

    if last_visited_at is None:
        return EngagementLevel.DORMANT

    days_since = (now.date() - last_visited_at.date()).days
    if days_since >= c.DORMANT_AFTER_DAYS:
        return EngagementLevel.DORMANT
    if days_since >= c.AT_RISK_AFTER_DAYS:
        return EngagementLevel.AT_RISK

    if this_month_visits >= c.HIGHLY_ACTIVE_VISITS:
        return EngagementLevel.HIGHLY_ACTIVE
    if this_month_visits >= c.ACTIVE_VISITS:
        return EngagementLevel.ACTIVE
    if this_month_visits >= c.REGULAR_VISITS:
        return EngagementLevel.REGULAR
    if this_month_visits >= c.OCCASIONAL_VISITS:
        return EngagementLevel.OCCASIONAL
    return EngagementLevel.INACTIVE


def _capped(value: float, weight: tuple[int, int]) -> float:
    cap, points = weight
    return min(max(value, 0) / cap, 1.0) * points


def calculate_loyalty_score(total_visits: int, longest_streak: int, monthly_average: float) -> int:
    """0-100, non-decreasing in each argument."""

    score = (
        _capped(total_visits, c.LOYALTY_VISITS)
        + _capped(longest_streak, c.LOYALTY_STREAK)
        + _capped(monthly_average, c.LOYALTY_AVERAGE)
    )
    return int(round(min(score, 100.0)))


def favorite_time_slot(distribution: Mapping[str, int]) -> Optional[TimeSlot]:
    """Most used slot; ties go to the earliest slot of the day."""

    best: Optional[TimeSlot] = None
    best_count = 0
    for slot in TIME_SLOT_ORDER:
        count = int(distribution.get(slot.value, 0))
        if count > best_count:
            best, best_count = slot, count
    return best


def is_visit_milestone(total_visits: int) -> bool:
    return total_visits in c.VISIT_MILESTONES
