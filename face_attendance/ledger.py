"""
Attendance ledger: at most one presence record per identity per calendar day.

Recording is a single INSERT ... ON CONFLICT DO NOTHING against the
(identity_id, calendar_date) unique constraint, which is mandatory. Never
split it into a lookup of today's record followed by an insert: two
concurrent requests for the same key must yield exactly one row.
"""
import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Callable, List, Optional
from zoneinfo import ZoneInfo

from sqlalchemy import insert
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from face_attendance.errors import InfrastructureError, attendance_key
from face_attendance.models import PRESENT, AttendanceRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AttendanceEntry:
    identity_id: int
    calendar_date: date
    status: str
    recorded_at: datetime


@dataclass(frozen=True)
class PresenceResult:
    created: bool
    record: Optional[AttendanceEntry]


def current_date(timezone_name: str = "UTC", now: Optional[datetime] = None) -> date:
    """Calendar date in the attendance timezone; time of day is discarded."""
    tz = ZoneInfo(timezone_name)
    if now is None:
        return datetime.now(tz).date()
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(tz).date()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


_ON_CONFLICT_INSERTS = {
    "sqlite": sqlite.insert,
    "postgresql": postgresql.insert,
}


class AttendanceLedger:
    """
    Args:
        session_factory: SQLAlchemy sessionmaker bound to the store
        clock: returns the naive-UTC timestamp stored as recorded_at
    """

    def __init__(self, session_factory, clock: Optional[Callable[[], datetime]] = None):
        self._session_factory = session_factory
        self._clock = clock or _utcnow

    def has_recorded_today(self, identity_id: int, today: date) -> bool:
        db = self._session_factory()
        try:
            return (
                db.query(AttendanceRecord.id)
                .filter(AttendanceRecord.identity_id == identity_id, AttendanceRecord.calendar_date == today)
                .first()
                is not None
            )
        except SQLAlchemyError as e:
            raise InfrastructureError("has_recorded_today", str(e), attendance_key(identity_id, today)) from e
        finally:
            db.close()

    def record_presence(self, identity_id: int, today: date) -> PresenceResult:
        """
        Record presence for (identity_id, today) if not already recorded.

        Idempotent: repeated or concurrent calls for the same key create one
        record; all but the first return created=False.

        Raises:
            InfrastructureError: store unavailable or lock wait timed out
        """
        key = attendance_key(identity_id, today)
        values = {
            "identity_id": identity_id,
            "calendar_date": today,
            "status": PRESENT,
            "recorded_at": self._clock(),
        }

        db = self._session_factory()
        try:
            created = self._insert_once(db, values)
            record = (
                db.query(AttendanceRecord)
                .filter(AttendanceRecord.identity_id == identity_id, AttendanceRecord.calendar_date == today)
                .one_or_none()
            )
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.exception("Recording attendance %s failed", key)
            raise InfrastructureError("record_presence", str(e), key) from e
        finally:
            db.close()

        if created:
            logger.info("Recorded attendance %s", key)
        else:
            logger.info("Attendance %s already recorded", key)
        return PresenceResult(created=created, record=_to_entry(record) if record is not None else None)

    def _insert_once(self, db, values: dict) -> bool:
        dialect = db.get_bind().dialect.name
        make_insert = _ON_CONFLICT_INSERTS.get(dialect)

        if make_insert is not None:
            stmt = make_insert(AttendanceRecord).values(**values).on_conflict_do_nothing(
                index_elements=["identity_id", "calendar_date"]
            )
            return db.execute(stmt).rowcount == 1

        # Other backends: the unique constraint still rejects the second insert
        try:
            with db.begin_nested():
                db.execute(insert(AttendanceRecord).values(**values))
            return True
        except IntegrityError:
            return False

    def history(self, identity_id: int) -> List[AttendanceEntry]:
        """All records of an identity, most recent first."""
        db = self._session_factory()
        try:
            records = (
                db.query(AttendanceRecord)
                .filter(AttendanceRecord.identity_id == identity_id)
                .order_by(AttendanceRecord.calendar_date.desc(), AttendanceRecord.recorded_at.desc())
                .all()
            )
            return [_to_entry(r) for r in records]
        except SQLAlchemyError as e:
            raise InfrastructureError("history", str(e)) from e
        finally:
            db.close()


def _to_entry(record: AttendanceRecord) -> AttendanceEntry:
    return AttendanceEntry(
        identity_id=record.identity_id,
        calendar_date=record.calendar_date,
        status=record.status,
        recorded_at=record.recorded_at,
    )
