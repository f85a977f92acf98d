"""Best-match selection."""

import logging
import math
from typing import Dict, Iterable

from ..models import MatchCandidate, UpstreamKey

logger = logging.getLogger(__name__)


class MatchSelector:
    """Reduces scored candidate pairs to at most one live feature per upstream key.

    The lowest score wins; equal scores go to the lowest live id, then type, so
    the choice does not depend on candidate order. A live feature may win for
    several upstream keys.
    """

    def select(self, candidates: Iterable[MatchCandidate]) -> Dict[UpstreamKey, MatchCandidate]:
        best: Dict[UpstreamKey, MatchCandidate] = {}
        for candidate in candidates:
            if math.isnan(candidate.score):
                logger.warning(f"Ignoring candidate with NaN score: {candidate}")
                continue
            current = best.get(candidate.upstream_key)
            if current is None or candidate.sort_key < current.sort_key:
                best[candidate.upstream_key] = candidate
        return best
