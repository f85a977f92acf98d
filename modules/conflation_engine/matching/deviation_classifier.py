"""Deviation Classifier

Turns the resolved match of an upstream item (or its absence) into a
Deviation, or into nothing when upstream and live agree.
"""

import logging
from enum import Enum
from typing import Dict, Optional

from ..models import Deviation, DeviationKind, LiveFeature, UpstreamItem
from .ruleset import RulesetConfig
from .tag_diff import tag_diff

logger = logging.getLogger(__name__)


class Classification(str, Enum):
    MISSING = "missing"
    TAG_MISMATCH = "tag_mismatch"
    NO_DEVIATION = "no_deviation"


class DeviationClassifier:
    """Classifies resolved matches into deviations.

    Missing: no live feature matched; the upstream geometry is suggested.
    Tag mismatch: a live feature matched but lacks or disagrees on upstream
    tags; the differing tags are suggested.
    No deviation: a live feature matched and agrees on every upstream tag.
    """

    @staticmethod
    def classification(derived_tags: Dict[str, str],
                       live: Optional[LiveFeature]) -> Classification:
        if live is None:
            return Classification.MISSING
        if tag_diff(derived_tags, live.tags):
            return Classification.TAG_MISMATCH
        return Classification.NO_DEVIATION

    def classify(self, item: UpstreamItem, derived_tags: Dict[str, str],
                 live: Optional[LiveFeature], ruleset: RulesetConfig) -> Optional[Deviation]:
        """Build the deviation for one upstream item.

        Args:
            item: Upstream item, which must have a geometry
            derived_tags: Tags derived from the item by the ruleset
            live: Best matching live feature, or None
            ruleset: Ruleset providing layer and texts

        Returns:
            Deviation without id, or None when there is nothing to review
        """
        kind = self.classification(derived_tags, live)
        if kind is Classification.NO_DEVIATION:
            return None

        texts = ruleset.texts
        if kind is Classification.MISSING:
            return Deviation(
                dataset_id=item.dataset_id,
                layer_id=ruleset.layer_id,
                upstream_item_ids=item.ids,
                kind=DeviationKind.MISSING,
                suggested_geom=item.geometry,
                title=texts.missing_title,
                description=texts.missing_description,
            )

        return Deviation(
            dataset_id=item.dataset_id,
            layer_id=ruleset.layer_id,
            upstream_item_ids=item.ids,
            kind=DeviationKind.TAG_MISMATCH,
            suggested_tags=tag_diff(derived_tags, live.tags),
            live_element_id=live.id,
            live_element_type=live.type,
            live_geom=live.geometry,
            title=texts.mismatch_title,
            description=texts.mismatch_description,
        )
