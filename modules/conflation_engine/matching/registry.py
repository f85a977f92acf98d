"""Ruleset Registry

Keeps the configured rulesets keyed by ruleset id and resolves the pluggable
scoring and tag-derivation functions a ruleset names.

Rulesets are stored raw and validated when first requested, so a malformed
entry only fails the refresh of its own ruleset.
"""

import logging
from typing import Any, Callable, Dict, List, Mapping, Optional

from src.config.config_loader import ConfigLoader
from src.exceptions import ConflationConfigurationError
from ..exceptions import RulesetNotFoundError
from ..models import LiveFeature, UpstreamItem
from .ruleset import RulesetConfig
from .tag_diff import tag_diff

logger = logging.getLogger(__name__)

ScoringFunction = Callable[[Dict[str, str], LiveFeature, float, RulesetConfig], float]
TagDerivation = Callable[[UpstreamItem, RulesetConfig], Dict[str, str]]

_SCORING_FUNCTIONS: Dict[str, ScoringFunction] = {}
_TAG_DERIVATIONS: Dict[str, TagDerivation] = {}


def register_scoring(name: str):
    """Decorator registering a scoring function under ``name``.

    A scoring function receives the upstream-derived tags, the live feature,
    the geometric distance in meters and the ruleset, and returns a score where
    lower is better.
    """
    def decorator(func: ScoringFunction) -> ScoringFunction:
        _SCORING_FUNCTIONS[name] = func
        return func
    return decorator


def register_tag_derivation(name: str):
    """Decorator registering a tag-derivation function under ``name``."""
    def decorator(func: TagDerivation) -> TagDerivation:
        _TAG_DERIVATIONS[name] = func
        return func
    return decorator


@register_scoring("distance")
def distance_score(upstream_tags: Dict[str, str], live: LiveFeature,
                   distance: float, ruleset: RulesetConfig) -> float:
    return distance


@register_scoring("tag_weighted")
def tag_weighted_score(upstream_tags: Dict[str, str], live: LiveFeature,
                       distance: float, ruleset: RulesetConfig) -> float:
    """Distance inflated by the share of upstream tags the live feature disagrees on.

    ``score_options.tag_weight`` (default 1.0) scales the penalty. A candidate
    with every tag in agreement scores its plain distance.
    """
    if not upstream_tags:
        return distance
    weight = ruleset.score_options.get("tag_weight", 1.0)
    mismatch = len(tag_diff(upstream_tags, live.tags)) / len(upstream_tags)
    return distance * (1.0 + weight * mismatch)


@register_tag_derivation("template")
def template_tags(item: UpstreamItem, ruleset: RulesetConfig) -> Dict[str, str]:
    """Render ``tag_template`` against the item's trimmed attributes.

    Tags whose template references an attribute the item does not have are left
    out.
    """
    attributes = {k: v.strip() for k, v in item.attributes.items()}
    tags = {}
    for key, template in ruleset.tag_template.items():
        try:
            tags[key] = template.format_map(attributes).strip()
        except KeyError:
            continue
        except (ValueError, IndexError) as e:
            raise ConflationConfigurationError(
                f"Invalid tag template for '{key}': {e}", {"ruleset_id": ruleset.ruleset_id}
            )
    return tags


@register_tag_derivation("attributes")
def attribute_tags(item: UpstreamItem, ruleset: RulesetConfig) -> Dict[str, str]:
    """Use the trimmed source attributes as tags unchanged."""
    return {k: v.strip() for k, v in item.attributes.items()}


def available_scoring() -> List[str]:
    return sorted(_SCORING_FUNCTIONS)


def available_tag_derivations() -> List[str]:
    return sorted(_TAG_DERIVATIONS)


class RulesetRegistry:
    """Rulesets keyed by id, queryable by dataset id."""

    def __init__(self, rulesets: Optional[Mapping[str, Dict[str, Any]]] = None):
        self._raw: Dict[str, Dict[str, Any]] = {}
        self._parsed: Dict[str, RulesetConfig] = {}
        for ruleset in (rulesets or {}).values():
            self.register(ruleset)

    @classmethod
    def from_config(cls, config_loader: ConfigLoader) -> 'RulesetRegistry':
        """Build the registry from ``rulesets.json``."""
        registry = cls({ruleset_id: config_loader.get_ruleset_config(ruleset_id)
                        for ruleset_id in config_loader.ruleset_ids()})
        logger.info(f"Ruleset registry loaded with {len(registry)} rulesets")
        return registry

    def __len__(self) -> int:
        return len(self._raw)

    def __contains__(self, ruleset_id: str) -> bool:
        return ruleset_id in self._raw

    def register(self, ruleset) -> None:
        """Add or replace a ruleset (a RulesetConfig or its raw mapping)."""
        if isinstance(ruleset, RulesetConfig):
            self._raw[ruleset.ruleset_id] = ruleset.model_dump()
            self._parsed[ruleset.ruleset_id] = ruleset
            return
        ruleset_id = ruleset.get("ruleset_id")
        if not ruleset_id:
            raise ConflationConfigurationError("Ruleset entry has no ruleset_id")
        self._raw[ruleset_id] = dict(ruleset)
        self._parsed.pop(ruleset_id, None)

    def ids(self) -> List[str]:
        return sorted(self._raw)

    def get(self, ruleset_id: str) -> RulesetConfig:
        """Validated ruleset for ``ruleset_id``.

        Raises:
            RulesetNotFoundError: If no ruleset has that id
            ConflationConfigurationError: If the ruleset entry is malformed
        """
        if ruleset_id not in self._raw:
            raise RulesetNotFoundError(ruleset_id)
        if ruleset_id not in self._parsed:
            ruleset = RulesetConfig.from_dict(self._raw[ruleset_id])
            self._check_functions(ruleset)
            self._parsed[ruleset_id] = ruleset
        return self._parsed[ruleset_id]

    def for_dataset(self, dataset_id: int) -> List[str]:
        """Ids of rulesets conflating ``dataset_id``."""
        return sorted(rid for rid, raw in self._raw.items() if raw.get("dataset_id") == dataset_id)

    def scoring_for(self, ruleset: RulesetConfig) -> ScoringFunction:
        self._check_functions(ruleset)
        return _SCORING_FUNCTIONS[ruleset.scoring]

    def tag_derivation_for(self, ruleset: RulesetConfig) -> TagDerivation:
        self._check_functions(ruleset)
        return _TAG_DERIVATIONS[ruleset.tag_derivation]

    @staticmethod
    def _check_functions(ruleset: RulesetConfig) -> None:
        if ruleset.scoring not in _SCORING_FUNCTIONS:
            raise ConflationConfigurationError(
                f"Unknown scoring function '{ruleset.scoring}'",
                {"ruleset_id": ruleset.ruleset_id, "available": available_scoring()}
            )
        if ruleset.tag_derivation not in _TAG_DERIVATIONS:
            raise ConflationConfigurationError(
                f"Unknown tag derivation '{ruleset.tag_derivation}'",
                {"ruleset_id": ruleset.ruleset_id, "available": available_tag_derivations()}
            )
