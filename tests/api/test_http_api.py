from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from src.clockin.clockin.main import create_app, get_container

MEMBER = {"target_model": "Member", "target_id": "m-1"}


@pytest.fixture
def app():
    return create_app("config.testing")


@pytest.fixture
def client(app):
    client = app.test_client()
    resp = client.put("/api/targets/Member/m-1", json={"profile": {"name": "Alex"}})
    assert resp.status_code == 200
    return client


def _two_hours_ago() -> str:
    return (datetime.now() - timedelta(hours=2)).isoformat(timespec="seconds")


def test_target_is_stored_under_default_tenant(client, app):
    resp = client.get("/api/targets/Member/m-1")
    body = resp.get_json()

    assert body["success"] is True
    assert body["data"]["tenant_id"] == "test-tenant"
    assert body["data"]["profile"]["name"] == "Alex"
    assert get_container(app).targets_repo is not None


def test_unknown_target_is_404(client):
    resp = client.get("/api/targets/Member/nobody")
    assert resp.status_code == 404
    assert resp.get_json()["success"] is False


def test_check_in_duplicate_and_check_out(client):
    resp = client.post("/api/attendance/check-in", json={**MEMBER, "timestamp": _two_hours_ago()})
    assert resp.status_code == 201
    data = resp.get_json()["data"]
    assert data["action"] == "check_in"
    assert data["check_in"]["method"] == "api"
    check_in_id = data["check_in"]["id"]

    dup = client.post("/api/attendance/check-in", json=MEMBER)
    assert dup.status_code == 429
    assert dup.get_json()["error"]["code"] == "DUPLICATE_CHECK_IN"

    session = client.get("/api/attendance/session/Member/m-1").get_json()["data"]
    assert session["check_in_id"] == check_in_id

    occupancy = client.get("/api/attendance/occupancy").get_json()["data"]
    assert occupancy["total"] == 1
    assert occupancy["by_model"] == {"Member": 1}

    out = client.post("/api/attendance/check-out", json={**MEMBER, "check_in_id": check_in_id})
    assert out.status_code == 200
    assert out.get_json()["data"]["check_in"]["attendance_type"] == "full_day"

    assert client.get("/api/attendance/session/Member/m-1").get_json()["data"] is None


def test_check_out_without_id_is_rejected(client):
    resp = client.post("/api/attendance/check-out", json=MEMBER)
    assert resp.status_code == 400
    assert resp.get_json()["error"]["code"] == "VALIDATION_ERROR"


def test_disallowed_target_model(client):
    resp = client.post("/api/attendance/check-in", json={"target_model": "Robot", "target_id": "r-1"})
    assert resp.status_code == 400


def test_toggle_requires_kiosk_token(client):
    bad = client.post("/api/attendance/toggle", json={**MEMBER, "kiosk_token": "nope"})
    assert bad.status_code == 400

    good = client.post("/api/attendance/toggle", json={**MEMBER, "kiosk_token": "test-kiosk"})
    assert good.status_code == 200
    data = good.get_json()["data"]
    assert data["action"] == "check_in"
    assert data["check_in"]["method"] == "qr_code"


def test_kiosk_qr_is_png(client):
    resp = client.get("/api/kiosk/qr")
    assert resp.status_code == 200
    assert resp.mimetype == "image/png"
    assert resp.data.startswith(b"\x89PNG")


def test_work_days_csv(client):
    resp = client.get("/api/reports/work-days.csv?year=2025&month=3")
    assert resp.status_code == 200
    assert resp.mimetype == "text/csv"
    assert "work_days_202503.csv" in resp.headers["Content-Disposition"]
    text = resp.data.decode("utf-8-sig")
    assert text.splitlines()[0].startswith("target_model,target_id,name,visits")


def test_analytics_endpoints(client):
    client.post("/api/attendance/check-in", json={**MEMBER, "timestamp": _two_hours_ago()})

    dashboard = client.get("/api/analytics/dashboard").get_json()["data"]
    assert dashboard["summary"]["total_targets"] == 1
    assert dashboard["summary"]["currently_checked_in"] == 1

    missing = client.get("/api/analytics/period?end=2025-03-31")
    assert missing.status_code == 400

    period = client.get("/api/analytics/period?start=2025-03-01&end=2025-03-31")
    assert period.get_json()["data"]["total_check_ins"] == 0

    bad_month = client.get("/api/analytics/time-slots?year=2025&month=13")
    assert bad_month.status_code == 400

    trend = client.get("/api/analytics/trend?days=7").get_json()["data"]
    assert len(trend) == 7


def test_recalculate(client):
    resp = client.post("/api/analytics/recalculate", json={"target_model": "Member"})
    assert resp.status_code == 200
    assert resp.get_json()["data"]["processed"] == 1

    bad = client.post("/api/analytics/recalculate", json={"target_ids": "m-1"})
    assert bad.status_code == 400


def test_tenant_header_isolates_data(client):
    resp = client.get("/api/targets/Member/m-1", headers={"X-Tenant-ID": "other"})
    assert resp.status_code == 404


def test_retroactive_leave_and_correction(client):
    resp = client.post(
        "/api/attendance/retroactive/Member/m-1",
        json={"check_in_at": "2025-03-03T09:00:00", "attendance_type": "paid_leave", "reason": "holiday"},
        headers={"X-Actor-Id": "admin-1", "X-Actor-Role": "manager"},
    )
    assert resp.status_code == 201
    record = resp.get_json()["data"]
    entry = record["check_ins"][0]
    assert entry["type_locked"] is True
    assert entry["recorded_by"]["actor_id"] == "admin-1"

    nothing = client.patch(f"/api/attendance/check-ins/Member/m-1/{entry['id']}", json={})
    assert nothing.status_code == 400

    deleted = client.delete(f"/api/attendance/check-ins/Member/m-1/{entry['id']}", json={"reason": "typo"})
    assert deleted.status_code == 200
