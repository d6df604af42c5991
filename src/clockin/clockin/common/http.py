from __future__ import annotations

from typing import Any, Optional

from flask import current_app, jsonify, request

from ..attendance.model import Actor
from ..core.exceptions import ValidationError
from ..targets.model import TargetRef
from .validators import require_non_empty


def json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def tenant_id(body: Optional[dict] = None) -> str:
    """Tenant from the X-Tenant-ID header, the body/query, or the configured default."""

    value = request.headers.get("X-Tenant-ID") or (body or {}).get("tenant_id") or request.args.get("tenant_id")
    return value or current_app.config["DEFAULT_TENANT_ID"]


def target_ref(body: dict, *, target_model: Optional[str] = None, target_id: Optional[str] = None) -> TargetRef:
    return TargetRef(
        tenant_id=tenant_id(body),
        target_model=require_non_empty(target_model or body.get("target_model"), "target_model"),
        target_id=require_non_empty(target_id or body.get("target_id"), "target_id"),
    )


def request_actor() -> Optional[Actor]:
    actor_id = request.headers.get("X-Actor-Id")
    if not actor_id:
        return None
    return Actor(actor_id=actor_id, name=request.headers.get("X-Actor-Name"), role=request.headers.get("X-Actor-Role"))


def int_arg(name: str, default: Optional[int] = None) -> Optional[int]:
    value = request.args.get(name)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError:
        raise ValidationError(f"{name} must be an integer", context={"field": name}) from None


def ok(data: Any, status: int = 200):
    return jsonify({"success": True, "data": data}), status
