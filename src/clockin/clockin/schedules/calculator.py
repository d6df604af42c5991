from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Optional

from ..core.constants import DEFAULT_WORKING_DAYS
from ..policies.model import AutoCheckoutPolicy
from .model import WorkSchedule


def scheduled_hours(schedule: Optional[WorkSchedule]) -> Optional[float]:
    """Hours a target is expected to work per day, or None when nothing is configured.

    Order: hours_per_day, hours_per_week spread over the working days, then
    the shift length.
    """

    if schedule is None:
        return None
    if schedule.hours_per_day:
        return schedule.hours_per_day
    if schedule.hours_per_week and schedule.working_days:
        return schedule.hours_per_week / len(schedule.working_days)
    if schedule.shift_start and schedule.shift_end:
        start = datetime.combine(date.min, schedule.shift_start)
        end = datetime.combine(date.min, schedule.shift_end)
        if end <= start:
            end += timedelta(days=1)
        return (end - start).total_seconds() / 3600
    return None


def is_working_day(day: date, schedule: Optional[WorkSchedule]) -> bool:
    working_days = schedule.working_days if schedule is not None else DEFAULT_WORKING_DAYS
    return day.weekday() in working_days


def expected_checkout(
    check_in: datetime,
    *,
    auto_checkout: AutoCheckoutPolicy,
    schedule: Optional[WorkSchedule] = None,
) -> Optional[datetime]:
    """Deadline after which an open session is closed by the auto-checkout sweep.

    Shift end on a working day wins, then the scheduled hours, then the
    policy's ``after_hours``. Never later than ``max_session`` after check-in.
    """

    if not auto_checkout.enabled:
        return None

    latest = check_in + timedelta(hours=auto_checkout.max_session)
    deadline: Optional[datetime] = None

    if schedule is not None and schedule.shift_end and is_working_day(check_in.date(), schedule):
        shift_end = datetime.combine(check_in.date(), schedule.shift_end, tzinfo=check_in.tzinfo)
        if shift_end > check_in:
            deadline = shift_end

    if deadline is None:
        hours = schedule.hours_per_day if schedule is not None else None
        deadline = check_in + timedelta(hours=hours or auto_checkout.after_hours)

    return min(deadline, latest)
