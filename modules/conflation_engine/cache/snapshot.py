"""Published, immutable result of one ruleset refresh."""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from shapely import STRtree
from shapely.geometry.base import BaseGeometry

from ..models import Deviation, MatchResult, UpstreamKey


@dataclass(frozen=True, eq=False)
class Snapshot:
    """Versioned match results and deviations of a ruleset.

    Snapshots are never mutated once published; workflow updates publish a
    modified copy made with ``with_deviation``. Readers holding a reference keep
    a consistent view for as long as they need it.
    """
    ruleset_id: str
    dataset_id: int
    layer_id: int
    crs: str
    version: int
    created_at: datetime
    matches: Tuple[MatchResult, ...]
    deviations: Tuple[Deviation, ...]
    skipped: int = 0
    _by_id: Dict[int, Deviation] = field(init=False, repr=False)
    _by_key: Dict[UpstreamKey, Deviation] = field(init=False, repr=False)
    _tree: STRtree = field(init=False, repr=False)
    _tree_owner: Tuple[int, ...] = field(init=False, repr=False)

    def __post_init__(self):
        object.__setattr__(self, "_by_id", {d.id: d for d in self.deviations})
        object.__setattr__(self, "_by_key", {d.upstream_key: d for d in self.deviations})

        # One tree entry per geometry; _tree_owner maps entries back to matches
        geometries, owners = [], []
        for index, match in enumerate(self.matches):
            for geometry in match.geometries():
                geometries.append(geometry)
                owners.append(index)
        object.__setattr__(self, "_tree", STRtree(geometries))
        object.__setattr__(self, "_tree_owner", tuple(owners))

    def deviation(self, deviation_id: int) -> Optional[Deviation]:
        return self._by_id.get(deviation_id)

    def deviation_for_key(self, key: UpstreamKey) -> Optional[Deviation]:
        return self._by_key.get(tuple(key))

    def matches_intersecting(self, geometry: BaseGeometry) -> List[MatchResult]:
        """Match results with an upstream or live geometry intersecting ``geometry``."""
        if not self._tree_owner:
            return []
        hits = self._tree.query(geometry, predicate="intersects")
        indices = sorted({self._tree_owner[int(i)] for i in hits})
        return [self.matches[i] for i in indices]

    def with_deviation(self, updated: Deviation, version: int) -> 'Snapshot':
        """Copy of this snapshot with one deviation replaced (matched by id)."""
        deviations = tuple(updated if d.id == updated.id else d for d in self.deviations)
        return replace(self, deviations=deviations, version=version)

    def open_deviations(self) -> List[Deviation]:
        return [d for d in self.deviations if not d.has_action()]

    def get_summary(self) -> str:
        return (f"Snapshot {self.ruleset_id} v{self.version}: {len(self.matches)} matches, "
                f"{len(self.deviations)} deviations, {self.skipped} skipped")
