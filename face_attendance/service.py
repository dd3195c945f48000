"""
Core facade exposing enrollment, attendance marking and history.
"""
from datetime import date
from typing import List, Optional

from face_attendance import config
from face_attendance.coordinator import AttendanceCoordinator, CoordinatorResult
from face_attendance.database import init_db, make_engine, make_session_factory
from face_attendance.descriptors import DescriptorLike, to_descriptor
from face_attendance.ledger import AttendanceEntry, AttendanceLedger, current_date
from face_attendance.matcher import Matcher, get_strategy
from face_attendance.registry import EnrolledIdentity, Identity, IdentityRegistry


class AttendanceService:
    def __init__(self, registry: IdentityRegistry, ledger: AttendanceLedger, matcher: Matcher,
                 threshold: float, timezone_name: str = "UTC"):
        self.registry = registry
        self.ledger = ledger
        self.matcher = matcher
        self.threshold = threshold
        self.timezone_name = timezone_name
        self.coordinator = AttendanceCoordinator(registry, matcher, ledger, threshold)

    @property
    def descriptor_length(self) -> int:
        return self.registry.descriptor_length

    def enroll_identity(self, display_name: str, uniqueness_key: str, descriptor: DescriptorLike,
                        reenroll: bool = False) -> Identity:
        return self.registry.enroll(display_name, uniqueness_key, descriptor, reenroll=reenroll)

    def mark_attendance(self, probe: DescriptorLike, today: Optional[date] = None) -> CoordinatorResult:
        # Reject malformed probes before touching the registry
        probe = to_descriptor(probe, self.descriptor_length)
        if today is None:
            today = current_date(self.timezone_name)
        return self.coordinator.mark_attendance(probe, today)

    def get_history(self, identity_id: int) -> List[AttendanceEntry]:
        """Attendance of an identity, most recent first. Removed identities keep their history."""
        self.registry.get(identity_id, include_removed=True)
        return self.ledger.history(identity_id)

    def list_identities(self) -> List[EnrolledIdentity]:
        return self.registry.list_enrolled()

    def update_descriptor(self, identity_id: int, descriptor: DescriptorLike) -> Identity:
        return self.registry.update_descriptor(identity_id, descriptor)

    def remove_identity(self, identity_id: int) -> None:
        self.registry.remove(identity_id)


def build_service(database_url: str = config.DATABASE_URL,
                  descriptor_length: int = config.DESCRIPTOR_LENGTH,
                  threshold: float = config.MATCH_THRESHOLD,
                  strategy: str = config.MATCH_STRATEGY,
                  multi_descriptor: bool = config.MULTI_DESCRIPTOR_ENROLLMENT,
                  timezone_name: str = config.ATTENDANCE_TIMEZONE,
                  timeout: float = config.DB_TIMEOUT_SECONDS) -> AttendanceService:
    """Wire a service against a database, creating tables if needed."""
    engine = make_engine(database_url, timeout)
    init_db(engine)
    session_factory = make_session_factory(engine)

    return AttendanceService(
        registry=IdentityRegistry(session_factory, descriptor_length, multi_descriptor=multi_descriptor),
        ledger=AttendanceLedger(session_factory),
        matcher=Matcher(get_strategy(strategy), descriptor_length=descriptor_length),
        threshold=threshold,
        timezone_name=timezone_name,
    )
