"""
Identity registry: the only way descriptors enter or leave storage.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from itertools import groupby
from typing import List, NamedTuple, Tuple

import numpy as np
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from face_attendance import models
from face_attendance.descriptors import DescriptorLike, descriptor_from_bytes, descriptor_to_bytes, to_descriptor
from face_attendance.errors import (
    DuplicateIdentity,
    IdentityNotFound,
    InfrastructureError,
    InvalidEnrollment,
)

logger = logging.getLogger(__name__)


class EnrolledIdentity(NamedTuple):
    """Snapshot entry handed to the matcher."""
    identity_id: int
    display_name: str
    descriptors: Tuple[np.ndarray, ...]


@dataclass(frozen=True)
class Identity:
    identity_id: int
    display_name: str
    uniqueness_key: str
    descriptors: Tuple[np.ndarray, ...]
    created_at: datetime


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class IdentityRegistry:
    """
    Durable mapping of identity -> enrolled descriptors.

    Args:
        session_factory: SQLAlchemy sessionmaker bound to the store
        descriptor_length: dimension L every descriptor must have
        multi_descriptor: keep several descriptors per identity (best-of-N);
            when False, re-enrollment is refused and callers must replace
            the descriptor explicitly with update_descriptor
    """

    def __init__(self, session_factory, descriptor_length: int, multi_descriptor: bool = True):
        self._session_factory = session_factory
        self.descriptor_length = descriptor_length
        self.multi_descriptor = multi_descriptor

    def list_enrolled(self) -> List[EnrolledIdentity]:
        """
        Return every identity eligible for matching, ordered by id.

        The result is a detached snapshot; enrollments that commit while it
        is in use are simply not part of it.
        """
        db = self._session_factory()
        try:
            rows = (
                db.query(
                    models.Identity.id,
                    models.Identity.display_name,
                    models.EnrolledDescriptor.dimension,
                    models.EnrolledDescriptor.vector,
                )
                .join(models.EnrolledDescriptor, models.EnrolledDescriptor.identity_id == models.Identity.id)
                .filter(models.Identity.deleted == False)  # noqa: E712
                .order_by(models.Identity.id, models.EnrolledDescriptor.id)
                .all()
            )
        except SQLAlchemyError as e:
            logger.exception("Failed to load enrolled identities")
            raise InfrastructureError("list_enrolled", str(e)) from e
        finally:
            db.close()

        enrolled = []
        for (identity_id, display_name), group in groupby(rows, key=lambda r: (r[0], r[1])):
            descriptors = []
            for _, _, dimension, vector in group:
                if dimension != self.descriptor_length:
                    logger.warning(
                        "Skipping stored descriptor of identity %s: dimension %s, expected %s",
                        identity_id, dimension, self.descriptor_length,
                    )
                    continue
                descriptors.append(descriptor_from_bytes(vector, dimension))
            if descriptors:
                enrolled.append(EnrolledIdentity(identity_id, display_name, tuple(descriptors)))
        return enrolled

    def enroll(self, display_name: str, uniqueness_key: str, descriptor: DescriptorLike,
               reenroll: bool = False) -> Identity:
        """
        Enroll a new identity, or append a descriptor to an existing one.

        Raises:
            InvalidEnrollment: blank display name or uniqueness key
            InvalidDescriptor: wrong length or non-finite values
            DuplicateIdentity: key exists and re-enrollment was not requested
                (or is disabled, or the identity was removed)
            InfrastructureError: store unavailable
        """
        display_name = (display_name or "").strip()
        uniqueness_key = (uniqueness_key or "").strip()
        if not display_name or not uniqueness_key:
            raise InvalidEnrollment("Display name and uniqueness key are required")

        vector = to_descriptor(descriptor, self.descriptor_length)

        db = self._session_factory()
        try:
            existing = (
                db.query(models.Identity)
                .filter(models.Identity.uniqueness_key == uniqueness_key)
                .first()
            )
            if existing:
                if not reenroll:
                    raise DuplicateIdentity(uniqueness_key)
                if existing.deleted:
                    raise DuplicateIdentity(uniqueness_key, f"Identity with key {uniqueness_key!r} was removed")
                if not self.multi_descriptor:
                    raise DuplicateIdentity(
                        uniqueness_key,
                        f"Identity with key {uniqueness_key!r} already has a descriptor; use update_descriptor",
                    )
                existing.descriptors.append(self._new_descriptor(vector))
                db.commit()
                logger.info("Re-enrolled identity %s (%d descriptors)", existing.id, len(existing.descriptors))
                return self._to_identity(existing)

            person = models.Identity(
                display_name=display_name,
                uniqueness_key=uniqueness_key,
                created_at=_utcnow(),
                deleted=False,
            )
            person.descriptors.append(self._new_descriptor(vector))
            db.add(person)
            db.commit()
            logger.info("Enrolled identity %s", person.id)
            return self._to_identity(person)

        except IntegrityError as e:
            # Lost a race with a concurrent enrollment of the same key
            db.rollback()
            raise DuplicateIdentity(uniqueness_key) from e
        except SQLAlchemyError as e:
            db.rollback()
            logger.exception("Enrollment failed")
            raise InfrastructureError("enroll", str(e)) from e
        finally:
            db.close()

    def update_descriptor(self, identity_id: int, descriptor: DescriptorLike) -> Identity:
        """Replace every enrolled descriptor of an identity with one new descriptor."""
        vector = to_descriptor(descriptor, self.descriptor_length)

        db = self._session_factory()
        try:
            person = self._load(db, identity_id)
            person.descriptors = [self._new_descriptor(vector)]
            db.commit()
            logger.info("Replaced descriptors of identity %s", identity_id)
            return self._to_identity(person)
        except SQLAlchemyError as e:
            db.rollback()
            logger.exception("Descriptor update failed")
            raise InfrastructureError("update_descriptor", str(e)) from e
        finally:
            db.close()

    def remove(self, identity_id: int) -> None:
        """Make an identity ineligible for matching. Attendance history is kept."""
        db = self._session_factory()
        try:
            person = self._load(db, identity_id)
            person.deleted = True
            db.commit()
            logger.info("Removed identity %s", identity_id)
        except SQLAlchemyError as e:
            db.rollback()
            logger.exception("Identity removal failed")
            raise InfrastructureError("remove", str(e)) from e
        finally:
            db.close()

    def get(self, identity_id: int, include_removed: bool = False) -> Identity:
        db = self._session_factory()
        try:
            return self._to_identity(self._load(db, identity_id, include_removed))
        except SQLAlchemyError as e:
            raise InfrastructureError("get_identity", str(e)) from e
        finally:
            db.close()

    @staticmethod
    def _load(db, identity_id: int, include_removed: bool = False) -> models.Identity:
        person = db.query(models.Identity).filter(models.Identity.id == identity_id).first()
        if person is None or (person.deleted and not include_removed):
            raise IdentityNotFound(identity_id)
        return person

    @staticmethod
    def _new_descriptor(vector: np.ndarray) -> models.EnrolledDescriptor:
        return models.EnrolledDescriptor(
            dimension=int(vector.size),
            vector=descriptor_to_bytes(vector),
            created_at=_utcnow(),
        )

    @staticmethod
    def _to_identity(person: models.Identity) -> Identity:
        return Identity(
            identity_id=person.id,
            display_name=person.display_name,
            uniqueness_key=person.uniqueness_key,
            descriptors=tuple(descriptor_from_bytes(d.vector, d.dimension) for d in person.descriptors),
            created_at=person.created_at,
        )
