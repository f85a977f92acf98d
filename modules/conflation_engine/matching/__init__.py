"""
Matching pipeline: rulesets, candidate search, best-match selection and
deviation classification.
"""

from .ruleset import DeviationTexts, LiveFilter, RegionFilter, RulesetConfig
from .tag_diff import tag_diff
from .registry import (
    RulesetRegistry,
    available_scoring,
    available_tag_derivations,
    register_scoring,
    register_tag_derivation,
)
from .candidate_matcher import CandidateMatcher, MatchingPass
from .match_selector import MatchSelector
from .deviation_classifier import Classification, DeviationClassifier

__all__ = [
    'DeviationTexts', 'LiveFilter', 'RegionFilter', 'RulesetConfig',
    'tag_diff',
    'RulesetRegistry', 'available_scoring', 'available_tag_derivations',
    'register_scoring', 'register_tag_derivation',
    'CandidateMatcher', 'MatchingPass',
    'MatchSelector',
    'Classification', 'DeviationClassifier',
]
