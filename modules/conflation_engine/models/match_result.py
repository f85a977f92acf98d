"""Match Data Models

Lightweight records produced while matching. MatchCandidate lives only for one
matching pass; MatchResult rows are kept in snapshots and drive tile rendering.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Tuple

from shapely.geometry.base import BaseGeometry

from .live_feature import ElementType
from .upstream_item import UpstreamKey


class MatchState(str, Enum):
    """Match state shown on the map."""
    IN_BOTH = "in-both"
    NOT_IN_LIVE = "not-in-live"
    NOT_IN_UPSTREAM = "not-in-upstream"


@dataclass(frozen=True)
class MatchCandidate:
    """A scored (upstream item, live feature) pair within the distance threshold."""
    upstream_key: UpstreamKey
    live_id: int
    live_type: ElementType
    score: float
    distance: float

    @property
    def sort_key(self) -> Tuple[float, int, str]:
        # Lowest score first, ties broken by ascending live id then type
        return (self.score, self.live_id, self.live_type.value)


@dataclass(frozen=True)
class MatchResult:
    """Resolved match state of one upstream item (or one unmatched live feature)."""
    upstream_ids: Tuple[int, ...]
    upstream_tags: Optional[Dict[str, str]]
    upstream_geom: Optional[BaseGeometry]
    live_id: Optional[int] = None
    live_type: Optional[ElementType] = None
    live_tags: Optional[Dict[str, str]] = None
    live_geom: Optional[BaseGeometry] = None

    @property
    def state(self) -> MatchState:
        if self.live_id is None:
            return MatchState.NOT_IN_LIVE
        if not self.upstream_ids:
            return MatchState.NOT_IN_UPSTREAM
        return MatchState.IN_BOTH

    def geometries(self) -> Tuple[BaseGeometry, ...]:
        """Non-empty geometries of both sides."""
        return tuple(g for g in (self.upstream_geom, self.live_geom) if g is not None)
