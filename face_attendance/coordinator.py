"""
Attendance coordinator: match a probe, then record presence once per day.
"""
import logging
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Optional

from face_attendance.descriptors import DescriptorLike
from face_attendance.errors import InfrastructureError, RecordingFailed
from face_attendance.ledger import AttendanceEntry, AttendanceLedger
from face_attendance.matcher import Matcher, MatchResult
from face_attendance.registry import EnrolledIdentity, IdentityRegistry

logger = logging.getLogger(__name__)


class Outcome(str, Enum):
    NO_MATCH = "no_match"
    ALREADY_RECORDED = "already_recorded"
    RECORDED = "recorded"


@dataclass(frozen=True)
class CoordinatorResult:
    outcome: Outcome
    match: MatchResult
    identity: Optional[EnrolledIdentity] = None
    record: Optional[AttendanceEntry] = None


class AttendanceCoordinator:
    """
    Holds no state between calls; every call works on a fresh registry
    snapshot.
    """

    def __init__(self, registry: IdentityRegistry, matcher: Matcher, ledger: AttendanceLedger, threshold: float):
        self.registry = registry
        self.matcher = matcher
        self.ledger = ledger
        self.threshold = threshold

    def mark_attendance(self, probe: DescriptorLike, today: date) -> CoordinatorResult:
        """
        Raises:
            InvalidDescriptor: malformed probe
            InfrastructureError: registry unavailable; nothing was recorded
            RecordingFailed: probe matched but the ledger write failed
        """
        try:
            candidates = self.registry.list_enrolled()
        except InfrastructureError:
            raise
        except Exception as e:
            logger.exception("Registry unavailable")
            raise InfrastructureError("list_enrolled", str(e)) from e

        result = self.matcher.match(probe, candidates, self.threshold)

        if not result.matched:
            logger.info("No match (distance=%.4f, ambiguous=%s)", result.distance, result.ambiguous)
            return CoordinatorResult(Outcome.NO_MATCH, result)

        identity = next(c for c in candidates if c.identity_id == result.identity_id)

        try:
            presence = self.ledger.record_presence(result.identity_id, today)
        except Exception as e:
            logger.error("Matched identity %s but recording for %s failed: %s", result.identity_id, today, e)
            raise RecordingFailed(result.identity_id, today, result, cause=e) from e

        outcome = Outcome.RECORDED if presence.created else Outcome.ALREADY_RECORDED
        return CoordinatorResult(outcome, result, identity, presence.record)
