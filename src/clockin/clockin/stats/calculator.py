from __future__ import annotations

from datetime import date, datetime
from typing import Optional, Sequence

from ..attendance.model import CheckInEntry, MonthlyAttendanceRecord
from ..common.datetime_utils import months_between, previous_month
from ..core.constants import STREAK_RESET_AFTER_DAYS
from ..targets.model import AttendanceStats
from .engagement import calculate_engagement_level, calculate_loyalty_score, favorite_time_slot
from .streak import calculate_streak


def _same_month(value: Optional[datetime], year: int, month: int) -> bool:
    return value is not None and (value.year, value.month) == (year, month)


class StatsCalculator:
    """Builds the ``AttendanceStats`` projection of a target.

    :meth:`recalculate` works from the full history; :meth:`apply_check_in`
    folds one new check-in into the previous projection. For a check-in
    recorded "now" both give the same result. Anything else (backdated
    entries, missing or drifted projections) makes :meth:`apply_check_in`
    return None so the caller falls back to a full recalculation.
    """

    def __init__(self, *, reset_after_days: int = STREAK_RESET_AFTER_DAYS):
        self._reset_after_days = reset_after_days

    def recalculate(self, records: Sequence[MonthlyAttendanceRecord], *, now: datetime) -> AttendanceStats:
        total = sum(r.monthly_total for r in records)
        first = min((r.first_visit_at for r in records if r.first_visit_at), default=None)
        last = max((r.last_visit_at for r in records if r.last_visit_at), default=None)
        by_month = {(r.year, r.month): r for r in records}

        current = by_month.get((now.year, now.month))
        before = by_month.get(previous_month(now.year, now.month))
        this_month = current.monthly_total if current else 0
        last_month = before.monthly_total if before else 0

        visited = [date.fromisoformat(d) for r in records for d in r.visited_days]
        streak = calculate_streak(visited, today=now.date(), reset_after_days=self._reset_after_days)

        latest = by_month.get((last.year, last.month)) if last else None
        return self._build(
            total=total,
            this_month=this_month,
            last_month=last_month,
            current_streak=streak.current,
            longest_streak=streak.longest,
            first=first,
            last=last,
            distribution=latest.time_slot_distribution if latest else {},
            now=now,
        )

    def apply_check_in(
        self,
        previous: Optional[AttendanceStats],
        record: MonthlyAttendanceRecord,
        entry: CheckInEntry,
        *,
        now: datetime,
    ) -> Optional[AttendanceStats]:
        if previous is None or not entry.is_counted or entry.is_final:
            return None
        if entry.day != now.date() or (record.year, record.month) != (now.year, now.month):
            return None
        last = previous.last_visited_at
        if last is not None and entry.timestamp < last:
            return None

        # The month counter must have moved by exactly this entry.
        if _same_month(previous.updated_at, now.year, now.month):
            expected_this_month = previous.this_month_visits + 1
        else:
            expected_this_month = 1
        if record.monthly_total != expected_this_month:
            return None

        if last is None:
            current_streak = 1
        else:
            gap = (entry.day - last.date()).days
            if gap == 0:
                current_streak = previous.current_streak
            elif gap == 1:
                current_streak = previous.current_streak + 1
            else:
                current_streak = 1

        prev_year, prev_month = previous_month(now.year, now.month)
        if _same_month(previous.updated_at, now.year, now.month):
            last_month = previous.last_month_visits
        elif _same_month(previous.updated_at, prev_year, prev_month):
            last_month = previous.this_month_visits
        else:
            last_month = 0

        return self._build(
            total=previous.total_visits + 1,
            this_month=record.monthly_total,
            last_month=last_month,
            current_streak=current_streak,
            longest_streak=max(previous.longest_streak, current_streak),
            first=previous.first_visited_at or entry.timestamp,
            last=entry.timestamp,
            distribution=record.time_slot_distribution,
            now=now,
        )

    @staticmethod
    def _build(
        *,
        total: int,
        this_month: int,
        last_month: int,
        current_streak: int,
        longest_streak: int,
        first: Optional[datetime],
        last: Optional[datetime],
        distribution,
        now: datetime,
    ) -> AttendanceStats:
        months = max(months_between(first.date(), now.date()), 1) if first else 1
        average = round(total / months, 2) if total else 0.0
        return AttendanceStats(
            total_visits=total,
            this_month_visits=this_month,
            last_month_visits=last_month,
            current_streak=current_streak,
            longest_streak=longest_streak,
            monthly_average=average,
            engagement_level=calculate_engagement_level(this_month, last, now=now),
            days_since_last_visit=(now.date() - last.date()).days if last else None,
            favorite_time_slot=favorite_time_slot(distribution),
            loyalty_score=calculate_loyalty_score(total, longest_streak, average),
            last_visited_at=last,
            first_visited_at=first,
            updated_at=now,
        )
