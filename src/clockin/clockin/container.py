from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional

from .analytics.service import AnalyticsService
from .attendance.corrections import CorrectionService
from .attendance.detector import AttendanceTypeDetector
from .attendance.engine import MonthlyAggregateEngine
from .attendance.factory import DetectionStrategyFactory
from .attendance.memory_attendance_repository import InMemoryAttendanceRepository
from .attendance.mysql_attendance_repository import MySQLAttendanceRepository
from .attendance.repository import AttendanceRepository
from .core.events import EventDispatcher, EventOutbox
from .core.exceptions import ValidationError
from .database.connection import DBConfig, DatabaseConnection
from .policies.registry import ConfigRegistry
from .sessions.tracker import SessionTracker
from .stats.service import StatsService
from .targets.memory_target_repository import InMemoryTargetRepository
from .targets.mysql_target_repository import MySQLTargetRepository
from .targets.repository import TargetRepository
from .targets.service import TargetService


@dataclass(frozen=True)
class Container:
    conn: Optional[DatabaseConnection]

    attendance_repo: AttendanceRepository
    targets_repo: TargetRepository

    configs: ConfigRegistry
    outbox: EventOutbox
    dispatcher: EventDispatcher

    engine: MonthlyAggregateEngine
    stats_service: StatsService
    session_tracker: SessionTracker
    correction_service: CorrectionService
    target_service: TargetService
    analytics_service: AnalyticsService


def build_container(
    *,
    db_config: Optional[Mapping[str, Any]] = None,
    storage: str = "mysql",
    target_model_overrides: Optional[Mapping[str, Mapping[str, Any]]] = None,
    allowed_target_models: Optional[Iterable[str]] = None,
) -> Container:
    if storage == "memory":
        conn = None
        attendance_repo: AttendanceRepository = InMemoryAttendanceRepository()
        targets_repo: TargetRepository = InMemoryTargetRepository()
    elif storage == "mysql":
        if db_config is None:
            raise ValidationError("db_config is required for mysql storage")
        conn = DatabaseConnection(DBConfig.from_mapping(db_config))
        attendance_repo = MySQLAttendanceRepository(conn)
        targets_repo = MySQLTargetRepository(conn)
    else:
        raise ValidationError(f"Unknown storage backend {storage!r}", context={"storage": storage})

    configs = ConfigRegistry(overrides=target_model_overrides, allowed_target_models=allowed_target_models)
    outbox = EventOutbox()
    dispatcher = EventDispatcher(outbox)

    engine = MonthlyAggregateEngine(
        attendance_repo,
        detector=AttendanceTypeDetector(strategy_factory=DetectionStrategyFactory()),
    )
    stats_service = StatsService(targets=targets_repo, attendance=attendance_repo, outbox=outbox)
    session_tracker = SessionTracker(
        targets=targets_repo,
        engine=engine,
        configs=configs,
        stats=stats_service,
        outbox=outbox,
    )
    correction_service = CorrectionService(
        engine=engine,
        targets=targets_repo,
        configs=configs,
        stats=stats_service,
    )
    target_service = TargetService(targets_repo, configs)
    analytics_service = AnalyticsService(attendance_repo, targets_repo)

    return Container(
        conn=conn,
        attendance_repo=attendance_repo,
        targets_repo=targets_repo,
        configs=configs,
        outbox=outbox,
        dispatcher=dispatcher,
        engine=engine,
        stats_service=stats_service,
        session_tracker=session_tracker,
        correction_service=correction_service,
        target_service=target_service,
        analytics_service=analytics_service,
    )
