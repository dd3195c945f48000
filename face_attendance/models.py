"""
SQLAlchemy models for the identity registry and attendance ledger.
"""
from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    LargeBinary,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()

PRESENT = "present"


class Identity(Base):
    """Enrolled person; matched through one or more descriptors."""
    __tablename__ = "identities"

    id = Column(Integer, primary_key=True, index=True)
    display_name = Column(String, nullable=False)
    uniqueness_key = Column(String, unique=True, nullable=False, index=True)  # e.g. email
    created_at = Column(DateTime, nullable=False)
    deleted = Column(Boolean, default=False, nullable=False)

    descriptors = relationship(
        "EnrolledDescriptor",
        back_populates="identity",
        order_by="EnrolledDescriptor.id",
        cascade="all, delete-orphan",
    )


class EnrolledDescriptor(Base):
    __tablename__ = "enrolled_descriptors"

    id = Column(Integer, primary_key=True, index=True)
    identity_id = Column(Integer, ForeignKey("identities.id"), nullable=False, index=True)
    dimension = Column(Integer, nullable=False)
    vector = Column(LargeBinary, nullable=False)  # little-endian float64 bytes
    created_at = Column(DateTime, nullable=False)

    identity = relationship("Identity", back_populates="descriptors")


class AttendanceRecord(Base):
    """
    One presence entry per identity per calendar day.

    The unique constraint is what makes recording atomic; it must not be
    dropped in favour of an application-level check.
    """
    __tablename__ = "attendance_records"
    __table_args__ = (
        UniqueConstraint("identity_id", "calendar_date", name="uq_attendance_identity_date"),
    )

    id = Column(Integer, primary_key=True, index=True)
    identity_id = Column(Integer, ForeignKey("identities.id"), nullable=False, index=True)
    calendar_date = Column(Date, nullable=False, index=True)
    status = Column(String, nullable=False, default=PRESENT)
    recorded_at = Column(DateTime, nullable=False)
