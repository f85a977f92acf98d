"""Candidate Matcher

Finds, for every upstream item of a ruleset, the live features within the
distance threshold and scores each pair. Both collections are restricted to the
ruleset region before the pairwise join, which runs against an STRtree built
over the live geometries. All distances are measured in the store's projected
CRS.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List

import numpy as np
from shapely import STRtree

from ..models import LiveFeature, MatchCandidate, UpstreamItem, UpstreamKey
from ..store import GeometryStore
from .registry import RulesetRegistry
from .ruleset import RulesetConfig

logger = logging.getLogger(__name__)


@dataclass
class MatchingPass:
    """Everything one matching pass produced for a ruleset."""
    ruleset: RulesetConfig
    upstream_items: List[UpstreamItem]
    live_features: List[LiveFeature]
    candidates: List[MatchCandidate] = field(default_factory=list)
    derived_tags: Dict[UpstreamKey, Dict[str, str]] = field(default_factory=dict)
    skipped: int = 0

    def live_by_ref(self) -> Dict[tuple, LiveFeature]:
        return {feature.ref: feature for feature in self.live_features}


class CandidateMatcher:
    """Spatial candidate search for a ruleset."""

    def __init__(self, store: GeometryStore, registry: RulesetRegistry):
        self.store = store
        self.registry = registry

    def load(self, ruleset: RulesetConfig) -> MatchingPass:
        """Load region-filtered upstream items and eligible live features.

        Upstream items without geometry are counted as skipped. When the store
        holds the same upstream key twice only the first item is kept.
        """
        region = ruleset.region.to_geometry()
        derive_tags = self.registry.tag_derivation_for(ruleset)

        items: List[UpstreamItem] = []
        derived: Dict[UpstreamKey, Dict[str, str]] = {}
        skipped = 0
        for item in self.store.upstream_items(ruleset.dataset_id, region):
            if not item.has_geometry():
                skipped += 1
                continue
            if item.key in derived:
                logger.warning(f"Duplicate upstream key {item.key} in dataset "
                               f"{ruleset.dataset_id}, keeping the first item")
                skipped += 1
                continue
            items.append(item)
            derived[item.key] = derive_tags(item, ruleset)

        live = [feature for feature in self.store.live_features(region)
                if feature.geometry is not None and ruleset.live_filter.accepts(feature)]

        logger.info(f"Ruleset {ruleset.ruleset_id}: {len(items)} upstream items, "
                    f"{len(live)} eligible live features, {skipped} skipped")
        return MatchingPass(ruleset=ruleset, upstream_items=items, live_features=live,
                            derived_tags=derived, skipped=skipped)

    def find_candidates(self, ruleset: RulesetConfig) -> MatchingPass:
        """Run the region filter and the pairwise join for ``ruleset``.

        Returns:
            MatchingPass holding every scored pair within the distance threshold
        """
        matching_pass = self.load(ruleset)
        if not matching_pass.upstream_items or not matching_pass.live_features:
            return matching_pass

        score = self.registry.scoring_for(ruleset)
        threshold = ruleset.distance_threshold

        tree = STRtree([feature.geometry for feature in matching_pass.live_features])
        upstream_geoms = np.array([item.geometry for item in matching_pass.upstream_items],
                                  dtype=object)
        pairs = tree.query(upstream_geoms, predicate="dwithin", distance=threshold)

        candidates = []
        for item_index, live_index in zip(pairs[0], pairs[1]):
            item = matching_pass.upstream_items[int(item_index)]
            live = matching_pass.live_features[int(live_index)]
            distance = item.geometry.distance(live.geometry)
            if distance > threshold:
                continue
            candidates.append(MatchCandidate(
                upstream_key=item.key,
                live_id=live.id,
                live_type=live.type,
                score=float(score(matching_pass.derived_tags[item.key], live, distance, ruleset)),
                distance=distance,
            ))

        matching_pass.candidates = candidates
        logger.debug(f"Ruleset {ruleset.ruleset_id}: {len(candidates)} candidate pairs "
                     f"within {threshold} m")
        return matching_pass
