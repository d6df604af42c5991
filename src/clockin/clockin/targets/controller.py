from __future__ import annotations

from flask import Flask

from ..common.http import json_body, ok, target_ref
from ..container import Container
from ..core.exceptions import ValidationError


def register(app: Flask, container: Container) -> None:
    targets = container.target_service

    @app.route("/api/targets/<target_model>/<target_id>", methods=["PUT"], endpoint="api_upsert_target")
    def api_upsert_target(target_model: str, target_id: str):
        body = json_body()
        for name in ("work_schedule", "profile"):
            if body.get(name) is not None and not isinstance(body[name], dict):
                raise ValidationError(f"{name} must be an object", context={"field": name})
        target = targets.upsert(
            target_ref(body, target_model=target_model, target_id=target_id),
            attendance_enabled=body.get("attendance_enabled"),
            work_schedule=body.get("work_schedule"),
            profile=body.get("profile"),
        )
        return ok(target.to_dict())

    @app.route("/api/targets/<target_model>/<target_id>", methods=["GET"], endpoint="api_get_target")
    def api_get_target(target_model: str, target_id: str):
        target = targets.get(target_ref({}, target_model=target_model, target_id=target_id))
        return ok(target.to_dict())
