"""Example: drive the service layer directly (no Flask).

Runs against the in-memory adapters, so no database is needed.
"""

from datetime import datetime

from src.clockin.clockin.container import build_container
from src.clockin.clockin.core.enums import CheckInMethod
from src.clockin.clockin.sessions.model import CheckInData
from src.clockin.clockin.targets.model import TargetRef


def main():
    container = build_container(storage="memory")
    container.dispatcher.subscribe(None, lambda event: print("event:", event.type.value, event.target_id))

    ref = TargetRef(tenant_id="gym-1", target_model="Member", target_id="m-42")
    container.target_service.upsert(ref, profile={"name": "Alex"})

    check_in = container.session_tracker.check_in(
        ref,
        CheckInData(method=CheckInMethod.RFID),
        now=datetime(2025, 3, 3, 18, 0),
    )
    container.session_tracker.check_out(ref, check_in.entry.id, now=datetime(2025, 3, 3, 19, 30))
    container.dispatcher.drain()

    print(container.analytics_service.work_days_report("gym-1", year=2025, month=3).summary)


if __name__ == "__main__":
    main()
