"""Deviation Data Model

This module defines the Pydantic data model for deviations: discrepancies
between the upstream dataset and the live database that are presented for
human review. It also provides ``apply_action``, the state transition used by
the workflow-action update.
"""

from datetime import datetime
from enum import Enum
from pydantic import BaseModel, Field, model_validator
from shapely.geometry.base import BaseGeometry
from typing import Dict, Optional, Tuple, Union

from src.exceptions import ConflationValidationError
from .live_feature import ElementType
from .upstream_item import UpstreamKey


class DeviationAction(str, Enum):
    """Workflow decisions a reviewer can record on a deviation."""
    FIXED = "fixed"
    ALREADY_FIXED = "already-fixed"
    NOT_AN_ISSUE = "not-an-issue"
    DEFERRED = "deferred"


class DeviationKind(str, Enum):
    """Classification that produced the deviation."""
    MISSING = "missing"
    TAG_MISMATCH = "tag_mismatch"


class Deviation(BaseModel):
    """Data model for a deviation awaiting or carrying a review decision.

    Exactly one of ``suggested_geom`` (nothing matched in the live database) and
    ``suggested_tags`` (a live feature matched but its tags differ) is set.
    ``action`` and ``action_at`` are set together or not at all.

    Attributes:
        id: Identifier assigned by the result cache, stable across refreshes
        dataset_id: Upstream dataset identifier
        layer_id: Layer the deviation is published in
        upstream_item_ids: Identifiers of the upstream records behind the deviation
        kind: Classification that produced the deviation
        suggested_geom: Upstream geometry to add to the live database
        suggested_tags: Tags to add or correct on the matched live feature
        live_element_id: Identifier of the matched live feature
        live_element_type: Type of the matched live feature
        live_geom: Geometry of the matched live feature, for display
        title: Short human readable summary
        description: Human readable explanation
        note: Free text note
        action: Recorded workflow decision
        action_at: When the workflow decision was recorded
    """

    id: Optional[int] = Field(None, description="Deviation identifier", ge=1)
    dataset_id: int = Field(..., description="Upstream dataset identifier")
    layer_id: int = Field(..., description="Layer identifier")
    upstream_item_ids: Tuple[int, ...] = Field(..., min_length=1)
    kind: DeviationKind = Field(..., description="Classification of the deviation")
    suggested_geom: Optional[BaseGeometry] = Field(None)
    suggested_tags: Optional[Dict[str, str]] = Field(None)
    live_element_id: Optional[int] = Field(None)
    live_element_type: Optional[ElementType] = Field(None)
    live_geom: Optional[BaseGeometry] = Field(None)
    title: str = Field(..., min_length=1)
    description: str = Field("")
    note: str = Field("")
    action: Optional[DeviationAction] = Field(None)
    action_at: Optional[datetime] = Field(None)

    @model_validator(mode='after')
    def check_invariants(self) -> 'Deviation':
        """Enforce the suggestion and workflow invariants.

        Raises:
            ValueError: If suggestions or workflow fields are inconsistent
        """
        matched = self.live_element_id is not None
        if matched != (self.live_element_type is not None):
            raise ValueError('live_element_id and live_element_type must be set together')

        if matched:
            if self.suggested_geom is not None:
                raise ValueError('suggested_geom must be empty when a live feature matched')
            if not self.suggested_tags:
                raise ValueError('suggested_tags must be non-empty when a live feature matched')
        else:
            if self.suggested_geom is None:
                raise ValueError('suggested_geom is required when no live feature matched')
            if self.suggested_tags is not None:
                raise ValueError('suggested_tags must be empty when no live feature matched')

        if (self.action is None) != (self.action_at is None):
            raise ValueError('action and action_at must be set together')
        return self

    @property
    def upstream_key(self) -> UpstreamKey:
        return self.upstream_item_ids

    @property
    def center(self) -> BaseGeometry:
        """Point to center a map on."""
        if self.suggested_geom is not None:
            return self.suggested_geom.centroid
        if self.live_geom is not None:
            return self.live_geom.centroid
        raise ValueError(f"Deviation {self.id} has no geometry to center on")

    def has_action(self) -> bool:
        return self.action is not None

    def get_summary(self) -> str:
        """Get a one-line summary for logs and listings."""
        status = self.action.value if self.action else "open"
        target = (f"{self.live_element_type.value}{self.live_element_id}"
                  if self.live_element_id is not None else "not in live database")
        return f"Deviation {self.id} [{status}] {self.title} ({target})"

    model_config = {
        "frozen": True,
        "arbitrary_types_allowed": True,
    }


def parse_action(value: Union[DeviationAction, str]) -> DeviationAction:
    """Convert a raw action value into a DeviationAction.

    Raises:
        ConflationValidationError: If the value is not one of the enumerated actions
    """
    try:
        return DeviationAction(value)
    except ValueError:
        allowed = [a.value for a in DeviationAction]
        raise ConflationValidationError(
            f"Unknown workflow action '{value}'", {"allowed": allowed}
        )


def apply_action(old_state: Deviation,
                 action: Optional[Union[DeviationAction, str]],
                 now: datetime) -> Deviation:
    """Return the deviation after recording (or clearing) a workflow decision.

    Args:
        old_state: Deviation before the update
        action: Decision to record, or None to clear a previous decision
        now: Server time to stamp the decision with

    Returns:
        New Deviation; ``old_state`` is left untouched

    Raises:
        ConflationValidationError: If the action is not an enumerated value
    """
    if action is None:
        update = {"action": None, "action_at": None}
    else:
        update = {"action": parse_action(action), "action_at": now}
    return old_state.model_copy(update=update)
