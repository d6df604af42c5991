from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional

from ..attendance.repository import AttendanceRepository
from ..common.datetime_utils import format_minutes, now_local
from ..core.constants import DEFAULT_HISTORY_MONTHS, DEFAULT_TOP_MEMBERS, DEFAULT_TREND_DAYS
from ..core.enums import TIME_SLOT_ORDER, AttendanceType, EngagementLevel, empty_time_slot_distribution
from ..core.exceptions import ValidationError
from ..targets.model import TargetRef
from ..targets.repository import TargetRepository


@dataclass(frozen=True)
class WorkDaysReport:
    rows: list[dict]
    summary: dict


class AnalyticsService:
    """Read-side rollups over monthly aggregates and target stats.

    Only sums and averages; no rule here changes what was recorded.
    """

    def __init__(self, attendance: AttendanceRepository, targets: TargetRepository):
        self._attendance = attendance
        self._targets = targets

    def dashboard(
        self,
        tenant_id: str,
        *,
        target_model: Optional[str] = None,
        now: Optional[datetime] = None,
        top: int = DEFAULT_TOP_MEMBERS,
    ) -> dict:
        now = now or now_local()
        records = self._attendance.list_for_tenant(tenant_id, target_model=target_model, year=now.year, month=now.month)
        targets = self._targets.list_for_tenant(tenant_id, target_model=target_model)
        names = {(t.target_model, t.target_id): t.name for t in targets}

        total_check_ins = sum(r.monthly_total for r in records)
        visitors = [r for r in records if r.monthly_total > 0]

        distribution = {level.value: 0 for level in EngagementLevel}
        at_risk = []
        for t in targets:
            stats = t.attendance_stats
            level = stats.engagement_level if stats else EngagementLevel.DORMANT
            distribution[level.value] += 1
            if level == EngagementLevel.AT_RISK:
                at_risk.append(
                    {
                        "target_model": t.target_model,
                        "target_id": t.target_id,
                        "name": t.name,
                        "days_since_last_visit": stats.days_since_last_visit,
                        "last_visited_at": stats.last_visited_at.isoformat() if stats.last_visited_at else None,
                    }
                )
        at_risk.sort(key=lambda m: -(m["days_since_last_visit"] or 0))

        ranked = sorted(visitors, key=lambda r: (-r.monthly_total, -r.unique_days_visited, r.target_id))
        top_members = [
            {
                "target_model": r.target_model,
                "target_id": r.target_id,
                "name": names.get((r.target_model, r.target_id)),
                "visits": r.monthly_total,
                "days": r.unique_days_visited,
            }
            for r in ranked[: max(int(top), 0)]
        ]

        return {
            "period": {"year": now.year, "month": now.month},
            "summary": {
                "total_targets": len(targets),
                "active_targets": len(visitors),
                "total_check_ins": total_check_ins,
                "average_visits_per_active_target": round(total_check_ins / len(visitors), 2) if visitors else 0.0,
                "currently_checked_in": sum(1 for t in targets if t.current_session.is_active),
            },
            "engagement_distribution": distribution,
            "top_members": top_members,
            "at_risk_members": at_risk,
        }

    def time_slot_distribution(
        self,
        tenant_id: str,
        *,
        year: int,
        month: int,
        target_model: Optional[str] = None,
    ) -> dict:
        totals = empty_time_slot_distribution()
        for r in self._attendance.list_for_tenant(tenant_id, target_model=target_model, year=year, month=month):
            for slot, count in r.time_slot_distribution.items():
                totals[slot] = totals.get(slot, 0) + count
        grand = sum(totals.values())
        return {
            "year": year,
            "month": month,
            "total": grand,
            "slots": [
                {
                    "slot": slot.value,
                    "count": totals[slot.value],
                    "share": round(totals[slot.value] / grand, 4) if grand else 0.0,
                }
                for slot in TIME_SLOT_ORDER
            ],
        }

    def daily_trend(
        self,
        tenant_id: str,
        *,
        days: int = DEFAULT_TREND_DAYS,
        target_model: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> list[dict]:
        if days <= 0:
            raise ValidationError("days must be positive", context={"days": days})
        end = (now or now_local()).date()
        start = end - timedelta(days=days - 1)

        check_ins = {start + timedelta(days=i): 0 for i in range(days)}
        visitors: dict[date, set] = {d: set() for d in check_ins}
        for r in self._records_between(tenant_id, start, end, target_model):
            for e in r.check_ins:
                if e.is_counted and e.day in check_ins:
                    check_ins[e.day] += 1
                    visitors[e.day].add((r.target_model, r.target_id))

        return [
            {"date": d.isoformat(), "check_ins": check_ins[d], "unique_visitors": len(visitors[d])}
            for d in sorted(check_ins)
        ]

    def period_stats(
        self,
        tenant_id: str,
        *,
        start: date,
        end: date,
        target_model: Optional[str] = None,
    ) -> dict:
        if end < start:
            raise ValidationError("end must not be before start", context={"start": start, "end": end})

        total = 0
        minutes = 0
        members: set = set()
        days: set = set()
        by_type = {t.value: 0 for t in AttendanceType}
        for r in self._records_between(tenant_id, start, end, target_model):
            for e in r.check_ins:
                if not e.is_counted or not (start <= e.day <= end):
                    continue
                total += 1
                minutes += e.duration_minutes or 0
                members.add((r.target_model, r.target_id))
                days.add(e.day)
                if e.is_final and e.attendance_type is not None:
                    by_type[e.attendance_type.value] += 1

        return {
            "start": start.isoformat(),
            "end": end.isoformat(),
            "total_check_ins": total,
            "unique_members": len(members),
            "active_days": len(days),
            "average_per_day": round(total / ((end - start).days + 1), 2),
            "worked_minutes": minutes,
            "by_attendance_type": by_type,
        }

    def history(self, ref: TargetRef, *, months: int = DEFAULT_HISTORY_MONTHS) -> list[dict]:
        """Most recent ``months`` aggregates of one target, newest first."""

        records = list(self._attendance.list_for_target(ref.tenant_id, ref.target_model, ref.target_id))
        records.reverse()
        return [r.to_dict() for r in records[: max(int(months), 0)]]

    def work_days_report(
        self,
        tenant_id: str,
        *,
        year: int,
        month: int,
        target_model: Optional[str] = None,
    ) -> WorkDaysReport:
        names = {(t.target_model, t.target_id): t.name for t in self._targets.list_for_tenant(tenant_id, target_model=target_model)}

        rows = []
        for r in self._attendance.list_for_tenant(tenant_id, target_model=target_model, year=year, month=month):
            worked = r.worked_minutes()
            rows.append(
                {
                    "target_model": r.target_model,
                    "target_id": r.target_id,
                    "name": names.get((r.target_model, r.target_id)) or "-",
                    "visits": r.monthly_total,
                    "full_days": r.full_days_count,
                    "half_days": r.half_days_count,
                    "paid_leave_days": r.paid_leave_days_count,
                    "unpaid_leave_days": r.unpaid_leave_days_count,
                    "overtime_days": r.overtime_days_count,
                    "total_work_days": r.total_work_days,
                    "worked_minutes": worked,
                    "worked_hours": format_minutes(worked),
                }
            )

        rows.sort(key=lambda x: (-x["total_work_days"], x["target_model"], x["target_id"]))
        total_minutes = sum(x["worked_minutes"] for x in rows)
        summary = {
            "year": year,
            "month": month,
            "targets": len(rows),
            "total_work_days": sum(x["total_work_days"] for x in rows),
            "total_hours": format_minutes(total_minutes),
        }
        return WorkDaysReport(rows=rows, summary=summary)

    def _records_between(self, tenant_id: str, start: date, end: date, target_model: Optional[str]):
        year, month = start.year, start.month
        while (year, month) <= (end.year, end.month):
            yield from self._attendance.list_for_tenant(tenant_id, target_model=target_model, year=year, month=month)
            year, month = (year + 1, 1) if month == 12 else (year, month + 1)
