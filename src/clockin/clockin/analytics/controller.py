from __future__ import annotations

import csv
import io
from datetime import date

from flask import Flask, request

from ..common.datetime_utils import now_local, parse_iso_date
from ..common.http import int_arg, json_body, ok, target_ref, tenant_id
from ..common.validators import require_non_empty
from ..container import Container
from ..core.constants import DEFAULT_HISTORY_MONTHS, DEFAULT_TOP_MEMBERS, DEFAULT_TREND_DAYS
from ..core.exceptions import ValidationError
from .service import WorkDaysReport

WORK_DAYS_COLUMNS = [
    "target_model",
    "target_id",
    "name",
    "visits",
    "full_days",
    "half_days",
    "paid_leave_days",
    "unpaid_leave_days",
    "overtime_days",
    "total_work_days",
    "worked_hours",
]


def register(app: Flask, container: Container) -> None:
    analytics = container.analytics_service

    def _parse_date(name: str) -> date:
        value = require_non_empty(request.args.get(name), name)
        try:
            return parse_iso_date(value)
        except ValueError:
            raise ValidationError(f"{name} must be YYYY-MM-DD", context={"field": name}) from None

    def _year_month() -> tuple[int, int]:
        today = now_local()
        year = int_arg("year", today.year)
        month = int_arg("month", today.month)
        if not 1 <= month <= 12:
            raise ValidationError("month must be between 1 and 12", context={"month": month})
        return year, month

    def _work_days_report() -> WorkDaysReport:
        year, month = _year_month()
        return analytics.work_days_report(
            tenant_id(),
            year=year,
            month=month,
            target_model=request.args.get("target_model") or None,
        )

    def _write_report_csv(*, data: WorkDaysReport, filename: str):
        out = io.StringIO()
        writer = csv.DictWriter(out, fieldnames=WORK_DAYS_COLUMNS, extrasaction="ignore")
        writer.writeheader()
        for row in data.rows:
            writer.writerow(row)

        csv_bytes = out.getvalue().encode("utf-8-sig")
        return app.response_class(
            csv_bytes,
            mimetype="text/csv",
            headers={"Content-Disposition": f"attachment; filename={filename}"},
        )

    @app.route("/api/analytics/dashboard", methods=["GET"], endpoint="api_dashboard")
    def api_dashboard():
        data = analytics.dashboard(
            tenant_id(),
            target_model=request.args.get("target_model") or None,
            top=int_arg("top", DEFAULT_TOP_MEMBERS),
        )
        return ok(data)

    @app.route("/api/analytics/time-slots", methods=["GET"], endpoint="api_time_slots")
    def api_time_slots():
        year, month = _year_month()
        data = analytics.time_slot_distribution(
            tenant_id(),
            year=year,
            month=month,
            target_model=request.args.get("target_model") or None,
        )
        return ok(data)

    @app.route("/api/analytics/trend", methods=["GET"], endpoint="api_trend")
    def api_trend():
        data = analytics.daily_trend(
            tenant_id(),
            days=int_arg("days", DEFAULT_TREND_DAYS),
            target_model=request.args.get("target_model") or None,
        )
        return ok(data)

    @app.route("/api/analytics/period", methods=["GET"], endpoint="api_period")
    def api_period():
        data = analytics.period_stats(
            tenant_id(),
            start=_parse_date("start"),
            end=_parse_date("end"),
            target_model=request.args.get("target_model") or None,
        )
        return ok(data)

    @app.route("/api/analytics/history/<target_model>/<target_id>", methods=["GET"], endpoint="api_history")
    def api_history(target_model: str, target_id: str):
        ref = target_ref({}, target_model=target_model, target_id=target_id)
        return ok(analytics.history(ref, months=int_arg("months", DEFAULT_HISTORY_MONTHS)))

    @app.route("/api/reports/work-days", methods=["GET"], endpoint="api_work_days")
    def api_work_days():
        data = _work_days_report()
        return ok({"rows": data.rows, "summary": data.summary})

    @app.route("/api/reports/work-days.csv", methods=["GET"], endpoint="api_work_days_csv")
    def api_work_days_csv():
        data = _work_days_report()
        filename = f"work_days_{data.summary['year']}{data.summary['month']:02d}.csv"
        return _write_report_csv(data=data, filename=filename)

    @app.route("/api/analytics/recalculate", methods=["POST"], endpoint="api_recalculate")
    def api_recalculate():
        body = json_body()
        target_ids = body.get("target_ids")
        if target_ids is not None and not isinstance(target_ids, list):
            raise ValidationError("target_ids must be a list", context={"field": "target_ids"})
        result = container.stats_service.recalculate(
            tenant_id(body),
            target_model=body.get("target_model") or None,
            target_ids=[str(t) for t in target_ids] if target_ids is not None else None,
        )
        return ok(result)
