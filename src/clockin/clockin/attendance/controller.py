from __future__ import annotations

import io

import qrcode
from flask import Flask, request, send_file

from ..common.http import int_arg, json_body, ok, request_actor, target_ref, tenant_id
from ..common.validators import optional_datetime, require_enum, require_non_empty, require_positive_int
from ..container import Container
from ..core.constants import DEFAULT_CHECKOUT_BATCH_LIMIT
from ..core.enums import AttendanceType, CheckInMethod
from ..core.exceptions import ValidationError
from ..sessions.model import CheckInData


def register(app: Flask, container: Container) -> None:
    tracker = container.session_tracker
    corrections = container.correction_service

    def _check_in_data(body: dict, *, default_method: CheckInMethod) -> CheckInData:
        location = body.get("location")
        if location is not None and not isinstance(location, dict):
            raise ValidationError("location must be an object", context={"field": "location"})
        return CheckInData(
            method=require_enum(CheckInMethod, body.get("method") or default_method.value, "method"),
            timestamp=optional_datetime(body.get("timestamp"), "timestamp"),
            notes=body.get("notes"),
            location=location,
            device=body.get("device"),
        )

    @app.route("/api/attendance/check-in", methods=["POST"], endpoint="api_check_in")
    def api_check_in():
        body = json_body()
        outcome = tracker.check_in(
            target_ref(body),
            _check_in_data(body, default_method=CheckInMethod.API),
            actor=request_actor(),
        )
        return ok(outcome.to_dict(), 201)

    @app.route("/api/attendance/check-out", methods=["POST"], endpoint="api_check_out")
    def api_check_out():
        body = json_body()
        outcome = tracker.check_out(
            target_ref(body),
            body.get("check_in_id"),
            check_out_at=optional_datetime(body.get("check_out_at"), "check_out_at"),
            actor=request_actor(),
        )
        return ok(outcome.to_dict())

    @app.route("/api/attendance/toggle", methods=["POST"], endpoint="api_toggle")
    def api_toggle():
        """Kiosk scan: the body carries the token printed in the kiosk QR code."""

        body = json_body()
        if body.get("kiosk_token") != app.config["KIOSK_TOKEN"]:
            raise ValidationError("Invalid kiosk token", context={"field": "kiosk_token"})
        outcome = tracker.toggle(
            target_ref(body),
            _check_in_data(body, default_method=CheckInMethod.QR_CODE),
            actor=request_actor(),
        )
        return ok(outcome.to_dict())

    @app.route("/api/attendance/occupancy", methods=["GET"], endpoint="api_occupancy")
    def api_occupancy():
        snapshot = tracker.occupancy(tenant_id(), target_model=request.args.get("target_model") or None)
        return ok(snapshot.to_dict())

    @app.route("/api/attendance/session/<target_model>/<target_id>", methods=["GET"], endpoint="api_session")
    def api_session(target_model: str, target_id: str):
        session = tracker.current_session(target_ref({}, target_model=target_model, target_id=target_id))
        return ok(session.to_dict() if session else None)

    @app.route("/api/attendance/checkout-expired", methods=["POST"], endpoint="api_checkout_expired")
    def api_checkout_expired():
        body = json_body()
        result = tracker.checkout_expired(
            tenant_id(body),
            target_model=body.get("target_model") or None,
            before=optional_datetime(body.get("before"), "before"),
            limit=require_positive_int(body.get("limit") or DEFAULT_CHECKOUT_BATCH_LIMIT, "limit"),
            dry_run=bool(body.get("dry_run", False)),
        )
        return ok(result.to_dict())

    @app.route("/api/kiosk/qr", methods=["GET"], endpoint="api_kiosk_qr")
    def api_kiosk_qr():
        """PNG of the kiosk token for QR check-in stations."""

        qr = qrcode.QRCode(
            version=1,
            error_correction=qrcode.constants.ERROR_CORRECT_L,
            box_size=int_arg("box_size", 10),
            border=2,
        )
        qr.add_data(app.config["KIOSK_TOKEN"])
        qr.make(fit=True)

        img = qr.make_image(fill_color="black", back_color="white")
        buf = io.BytesIO()
        img.save(buf, format="PNG")
        buf.seek(0)
        return send_file(buf, mimetype="image/png")

    # ----- corrections -----

    @app.route(
        "/api/attendance/check-ins/<target_model>/<target_id>/<check_in_id>",
        methods=["PATCH"],
        endpoint="api_correct_check_in",
    )
    def api_correct_check_in(target_model: str, target_id: str, check_in_id: str):
        body = json_body()
        ref = target_ref(body, target_model=target_model, target_id=target_id)
        actor = request_actor()
        reason = body.get("reason")

        check_in_at = optional_datetime(body.get("check_in_at"), "check_in_at")
        check_out_at = optional_datetime(body.get("check_out_at"), "check_out_at")
        attendance_type = body.get("attendance_type")
        if check_in_at is None and check_out_at is None and attendance_type is None:
            raise ValidationError("Nothing to correct: send check_in_at, check_out_at or attendance_type")

        record = None
        if check_in_at is not None:
            record = corrections.update_check_in_time(ref, check_in_id, check_in_at, reason=reason, actor=actor)
        if check_out_at is not None:
            record = corrections.update_check_out_time(ref, check_in_id, check_out_at, reason=reason, actor=actor)
        if attendance_type is not None:
            record = corrections.override_attendance_type(
                ref,
                check_in_id,
                require_enum(AttendanceType, attendance_type, "attendance_type"),
                reason=reason,
                actor=actor,
            )
        return ok(record.to_dict())

    @app.route(
        "/api/attendance/check-ins/<target_model>/<target_id>/<check_in_id>",
        methods=["DELETE"],
        endpoint="api_delete_check_in",
    )
    def api_delete_check_in(target_model: str, target_id: str, check_in_id: str):
        body = json_body()
        record = corrections.delete_check_in(
            target_ref(body, target_model=target_model, target_id=target_id),
            check_in_id,
            reason=body.get("reason"),
            actor=request_actor(),
        )
        return ok(record.to_dict())

    @app.route(
        "/api/attendance/retroactive/<target_model>/<target_id>",
        methods=["POST"],
        endpoint="api_retroactive",
    )
    def api_retroactive(target_model: str, target_id: str):
        body = json_body()
        attendance_type = body.get("attendance_type")
        record = corrections.add_retroactive_attendance(
            target_ref(body, target_model=target_model, target_id=target_id),
            check_in_at=optional_datetime(require_non_empty(body.get("check_in_at"), "check_in_at"), "check_in_at"),
            check_out_at=optional_datetime(body.get("check_out_at"), "check_out_at"),
            attendance_type=require_enum(AttendanceType, attendance_type, "attendance_type") if attendance_type else None,
            method=require_enum(CheckInMethod, body.get("method") or CheckInMethod.MANUAL.value, "method"),
            notes=body.get("notes"),
            reason=body.get("reason"),
            actor=request_actor(),
        )
        return ok(record.to_dict(), 201)
