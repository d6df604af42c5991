from __future__ import annotations

import pytest

from src.clockin.clockin.core.enums import DetectionType
from src.clockin.clockin.core.exceptions import TargetModelNotAllowedError, ValidationError
from src.clockin.clockin.policies.defaults import generate_default_config
from src.clockin.clockin.policies.registry import ConfigRegistry, deep_merge


def test_employee_defaults_to_schedule_aware():
    config = ConfigRegistry().get("Employee")

    assert config.detection.type == DetectionType.SCHEDULE_AWARE
    t = config.detection.rules.thresholds
    assert (t.overtime, t.full_day, t.half_day) == (1.1, 0.75, 0.4)
    assert config.detection.rules.fallback.standard_hours == 8.0
    assert config.validation.allow_weekends is False


def test_other_models_default_to_time_based():
    config = ConfigRegistry().get("Student")

    assert config.detection.type == DetectionType.TIME_BASED
    t = config.detection.rules.thresholds
    assert (t.overtime, t.full_day, t.minimal) == (10.0, 1.0, 0.5)
    assert config.detection.time_hints is None


def test_get_is_cached_per_registry():
    registry = ConfigRegistry()
    assert registry.get("Member") is registry.get("Member")


def test_register_merges_partial_override():
    registry = ConfigRegistry()
    config = registry.register("Member", {"duplicate_prevention_minutes": 15, "auto_checkout": {"after_hours": 3}})

    assert config.duplicate_prevention_minutes == 15
    assert config.auto_checkout.after_hours == 3.0
    assert config.auto_checkout.max_session == 12.0
    assert registry.get("Member") is config


def test_registries_do_not_share_overrides():
    first = ConfigRegistry(overrides={"Member": {"duplicate_prevention_minutes": 1}})
    second = ConfigRegistry()

    assert first.get("Member").duplicate_prevention_minutes == 1
    assert second.get("Member").duplicate_prevention_minutes == 5


def test_invalid_override_is_rejected():
    registry = ConfigRegistry()
    with pytest.raises(ValidationError):
        registry.register("Member", {"detection": {"rules": {"thresholds": {"full_day": 20}}}})
    with pytest.raises(ValidationError):
        registry.register("Member", {"detection": {"type": "weekly"}})


def test_allowlist():
    registry = ConfigRegistry(allowed_target_models=["Member"])

    registry.ensure_allowed("Member")
    with pytest.raises(TargetModelNotAllowedError) as exc:
        registry.ensure_allowed("Employee")
    assert exc.value.status == 400
    assert ConfigRegistry().is_allowed("Anything")


def test_deep_merge_replaces_lists_and_skips_none():
    base = {"a": {"b": 1, "c": [1, 2]}, "d": 4}
    merged = deep_merge(base, {"a": {"c": [9]}, "d": None})

    assert merged == {"a": {"b": 1, "c": [9]}, "d": 4}
    assert base == {"a": {"b": 1, "c": [1, 2]}, "d": 4}


def test_deep_merge_rejects_circular_override():
    loop: dict = {}
    loop["self"] = loop
    with pytest.raises(ValidationError):
        deep_merge({}, loop)


def test_config_round_trips_through_dict():
    config = generate_default_config("Employee")
    assert type(config).from_dict("Employee", config.to_dict()) == config
