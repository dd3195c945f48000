"""
Database engine and session management.
"""
from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import sessionmaker

from face_attendance import config
from face_attendance.models import Base


def make_engine(database_url: str = config.DATABASE_URL, timeout: float = config.DB_TIMEOUT_SECONDS):
    """
    Create an engine whose lock and pool waits are bounded by `timeout`.
    """
    url = make_url(database_url)
    if url.get_backend_name() == "sqlite":
        # check_same_thread: sessions are used from the request threadpool
        # timeout: busy wait on a locked database before OperationalError
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False, "timeout": timeout},
        )
    return create_engine(database_url, pool_timeout=timeout, pool_pre_ping=True)


def make_session_factory(engine):
    return sessionmaker(autoflush=False, expire_on_commit=False, bind=engine)


def init_db(engine):
    """Create tables if they do not exist."""
    Base.metadata.create_all(bind=engine)
