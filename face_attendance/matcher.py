"""
Nearest-neighbour face matching with explicit tie handling.

Distances are Euclidean. Each candidate identity is scored by its closest
enrolled descriptor, and a ranking strategy decides which identity (if any)
the global minimum belongs to.
"""
import logging
import math
from dataclasses import dataclass
from typing import Any, Optional, Sequence, Tuple

import numpy as np

from face_attendance.descriptors import DescriptorLike, to_descriptor
from face_attendance.errors import InvalidDescriptor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MatchResult:
    matched: bool
    identity_id: Optional[Any]
    distance: float
    below_threshold: bool
    ambiguous: bool = False


@dataclass(frozen=True)
class Selection:
    identity_id: Optional[Any]
    distance: float
    ambiguous: bool


class RankingStrategy:
    """Picks one identity from (identity_id, best_distance) pairs."""

    name = "base"

    def select(self, scored: Sequence[Tuple[Any, float]]) -> Selection:
        raise NotImplementedError


class AcceptNearest(RankingStrategy):
    """
    Always accept the nearest identity. Exact ties go to the smallest
    identity id so the outcome never depends on candidate order.
    """

    name = "accept-nearest"

    def select(self, scored):
        best = min(scored, key=lambda item: (item[1], _id_sort_key(item[0])))
        tied = sum(1 for _, distance in scored if distance == best[1]) > 1
        return Selection(best[0], best[1], tied)


class RejectOnTie(RankingStrategy):
    """Refuse to choose when two or more identities share the minimum distance."""

    name = "reject-on-tie"

    def select(self, scored):
        best_distance = min(distance for _, distance in scored)
        winners = [identity_id for identity_id, distance in scored if distance == best_distance]
        if len(winners) > 1:
            return Selection(None, best_distance, True)
        return Selection(winners[0], best_distance, False)


STRATEGIES = {
    AcceptNearest.name: AcceptNearest,
    RejectOnTie.name: RejectOnTie,
}


def get_strategy(name: str) -> RankingStrategy:
    try:
        return STRATEGIES[name]()
    except KeyError:
        raise ValueError(f"Unknown match strategy {name!r}; expected one of {sorted(STRATEGIES)}") from None


def _id_sort_key(identity_id):
    return (type(identity_id).__name__, identity_id)


def best_distance(probe: np.ndarray, descriptors: Sequence[np.ndarray]) -> float:
    """Minimum Euclidean distance from probe to any of the descriptors."""
    stacked = np.vstack(descriptors)
    return float(np.min(np.linalg.norm(stacked - probe, axis=1)))


class Matcher:
    """
    Stateless matcher; safe to share across threads.

    Args:
        strategy: ranking strategy, RejectOnTie by default
        descriptor_length: when given, probes of any other length are refused
    """

    def __init__(self, strategy: Optional[RankingStrategy] = None, descriptor_length: Optional[int] = None):
        self.strategy = strategy or RejectOnTie()
        self.descriptor_length = descriptor_length

    def match(self, probe: DescriptorLike, candidates: Sequence, threshold: float) -> MatchResult:
        """
        Match a probe against candidate identities.

        Args:
            probe: descriptor to identify
            candidates: objects with `identity_id` and `descriptors` attributes
            threshold: maximum accepted distance (inclusive)

        Returns:
            MatchResult; `distance` is +inf when there are no candidates

        Raises:
            InvalidDescriptor: probe malformed or of a different length than
                the configured length or any candidate descriptor
            ValueError: negative or NaN threshold
        """
        if threshold is None or math.isnan(threshold) or threshold < 0:
            raise ValueError(f"Threshold must be a non-negative number, got {threshold}")

        probe = to_descriptor(probe, self.descriptor_length)

        scored = []
        for candidate in candidates:
            descriptors = candidate.descriptors
            if not descriptors:
                continue
            for descriptor in descriptors:
                if len(descriptor) != probe.size:
                    raise InvalidDescriptor(
                        f"Probe length {probe.size} does not match enrolled descriptor length "
                        f"{len(descriptor)} of identity {candidate.identity_id}"
                    )
            scored.append((candidate.identity_id, best_distance(probe, descriptors)))

        if not scored:
            return MatchResult(matched=False, identity_id=None, distance=math.inf, below_threshold=False)

        selection = self.strategy.select(scored)
        below = selection.distance <= threshold
        matched = below and selection.identity_id is not None

        if selection.ambiguous and selection.identity_id is None:
            logger.warning("Rejected ambiguous match at distance %.4f", selection.distance)
        logger.debug(
            "match: identity=%s distance=%.4f threshold=%s -> %s",
            selection.identity_id, selection.distance, threshold, matched,
        )

        return MatchResult(
            matched=matched,
            identity_id=selection.identity_id if matched else None,
            distance=selection.distance,
            below_threshold=below,
            ambiguous=selection.ambiguous,
        )
