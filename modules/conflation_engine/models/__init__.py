"""Conflation Engine Data Models

Pydantic models for upstream items, live features and deviations, plus the
lightweight match records produced by a matching pass.
"""

from .upstream_item import UpstreamItem, UpstreamKey
from .live_feature import LiveFeature, ElementType
from .deviation import Deviation, DeviationAction, DeviationKind, apply_action, parse_action
from .match_result import MatchCandidate, MatchResult, MatchState

__all__ = [
    'UpstreamItem', 'UpstreamKey',
    'LiveFeature', 'ElementType',
    'Deviation', 'DeviationAction', 'DeviationKind', 'apply_action', 'parse_action',
    'MatchCandidate', 'MatchResult', 'MatchState',
]
