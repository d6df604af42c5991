from __future__ import annotations

import pytest

from src.clockin.clockin.container import build_container
from src.clockin.clockin.targets.model import TargetRef

TENANT = "gym-1"


@pytest.fixture
def container():
    return build_container(storage="memory")


@pytest.fixture
def member(container):
    ref = TargetRef(TENANT, "Member", "m-1")
    container.target_service.upsert(ref, profile={"name": "Alex"})
    return ref


@pytest.fixture
def employee(container):
    ref = TargetRef(TENANT, "Employee", "e-1")
    container.target_service.upsert(
        ref,
        work_schedule={"hours_per_day": 8, "shift_start": "09:00", "shift_end": "17:00"},
        profile={"name": "Bo"},
    )
    return ref
