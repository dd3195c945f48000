import os
import tempfile

# Keep request logs out of the working tree; must be set before the app imports config
os.environ.setdefault("LOG_FILE", os.path.join(tempfile.gettempdir(), "face_attendance_test.log"))

import pytest

from face_attendance.database import init_db, make_engine, make_session_factory
from face_attendance.ledger import AttendanceLedger
from face_attendance.matcher import Matcher
from face_attendance.registry import IdentityRegistry
from face_attendance.service import AttendanceService

DESCRIPTOR_LENGTH = 3
THRESHOLD = 0.05


@pytest.fixture
def engine(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'attendance.db'}", timeout=10)
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def registry(session_factory):
    return IdentityRegistry(session_factory, descriptor_length=DESCRIPTOR_LENGTH)


@pytest.fixture
def ledger(session_factory):
    return AttendanceLedger(session_factory)


@pytest.fixture
def service(registry, ledger):
    return AttendanceService(
        registry=registry,
        ledger=ledger,
        matcher=Matcher(descriptor_length=DESCRIPTOR_LENGTH),
        threshold=THRESHOLD,
    )
