"""Deviation Feed

Read side of the review workflow: deviations from the published snapshots
joined with catalog metadata and, when a lookup is configured, the current
state of the matched live element. Also routes workflow-action updates to the
result cache.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field
from shapely.geometry import mapping
from shapely.geometry.base import BaseGeometry

from ..cache import ResultCache
from ..models import Deviation, DeviationAction, ElementType
from ..store import DatasetInfo, LayerInfo, MetadataCatalog, ProviderInfo
from ..tiles import WGS84, reproject

logger = logging.getLogger(__name__)


class LiveElementInfo(BaseModel):
    """Current state of a live element as reported by the live database."""
    tags: Dict[str, str] = Field(default_factory=dict)
    timestamp: Optional[datetime] = Field(None, description="Last update of the element")
    user: Optional[str] = Field(None, description="User who last edited the element")


class LiveFeatureLookup(ABC):
    """Access to the current version of live elements."""

    @abstractmethod
    def get_element(self, element_type: ElementType, element_id: int) -> Optional[LiveElementInfo]:
        """Current state of an element, or None if it no longer exists."""


class EditLinkInputs(BaseModel):
    """Everything an edit-link builder needs; the URL itself is built elsewhere."""
    source: str = Field(..., description="Source attribution, provider and dataset name")
    comment: str = Field(..., description="Changeset comment")
    suggested_tags: Optional[Dict[str, str]] = Field(None)
    suggested_geometry: Optional[Dict[str, Any]] = Field(
        None, description="Suggested geometry as GeoJSON in WGS84"
    )
    element: Optional[str] = Field(None, description="Live element reference such as n123")


class DeviationView(BaseModel):
    """A deviation joined with its metadata, ready for display."""
    deviation: Deviation
    crs: str = Field(..., description="CRS of the deviation geometries")
    source: str = Field(..., description="Source attribution")
    dataset: Optional[DatasetInfo] = None
    provider: Optional[ProviderInfo] = None
    layer: Optional[LayerInfo] = None
    live_element: Optional[LiveElementInfo] = None

    model_config = {"arbitrary_types_allowed": True}

    def _geojson(self, geometry: Optional[BaseGeometry]) -> Optional[Dict[str, Any]]:
        if geometry is None:
            return None
        return mapping(reproject(geometry, self.crs, WGS84))

    @property
    def suggested_geojson(self) -> Optional[Dict[str, Any]]:
        return self._geojson(self.deviation.suggested_geom)

    @property
    def live_geojson(self) -> Optional[Dict[str, Any]]:
        return self._geojson(self.deviation.live_geom)

    @property
    def center_geojson(self) -> Dict[str, Any]:
        return self._geojson(self.deviation.center)

    def edit_link_inputs(self) -> EditLinkInputs:
        deviation = self.deviation
        element = None
        if deviation.live_element_id is not None:
            element = f"{deviation.live_element_type.value}{deviation.live_element_id}"
        return EditLinkInputs(
            source=self.source,
            comment=deviation.title,
            suggested_tags=deviation.suggested_tags,
            suggested_geometry=self.suggested_geojson,
            element=element,
        )

    def to_dict(self) -> Dict[str, Any]:
        """JSON friendly representation for API responses and the CLI."""
        deviation = self.deviation
        return {
            "id": deviation.id,
            "dataset_id": deviation.dataset_id,
            "layer_id": deviation.layer_id,
            "upstream_item_ids": list(deviation.upstream_item_ids),
            "title": deviation.title,
            "description": deviation.description,
            "note": deviation.note,
            "suggested_geom": self.suggested_geojson,
            "suggested_tags": deviation.suggested_tags,
            "live_element_id": deviation.live_element_id,
            "live_element_type": (deviation.live_element_type.value
                                  if deviation.live_element_type else None),
            "live_geom": self.live_geojson,
            "center": self.center_geojson,
            "action": deviation.action.value if deviation.action else None,
            "action_at": deviation.action_at.isoformat() if deviation.action_at else None,
            "dataset": self.dataset.model_dump(mode="json") if self.dataset else None,
            "provider": self.provider.model_dump(mode="json") if self.provider else None,
            "layer": self.layer.model_dump(mode="json") if self.layer else None,
            "live_element": (self.live_element.model_dump(mode="json")
                             if self.live_element else None),
            "edit_link": self.edit_link_inputs().model_dump(mode="json"),
        }


class DeviationFeed:
    """Query and update interface over the published deviations."""

    def __init__(self, cache: ResultCache, catalog: MetadataCatalog,
                 live_lookup: Optional[LiveFeatureLookup] = None):
        self.cache = cache
        self.catalog = catalog
        self.live_lookup = live_lookup

    def get(self, deviation_id: int, include_live_element: bool = True) -> DeviationView:
        """Single deviation by id.

        Raises:
            DeviationNotFoundError: If no published snapshot holds the id
        """
        snapshot, deviation = self.cache.find_deviation(deviation_id)
        return self._view(deviation, snapshot.crs, include_live_element)

    def query(self, dataset_id: Optional[int] = None, layer_id: Optional[int] = None,
              include_actioned: bool = False) -> List[DeviationView]:
        """Deviations matching the filters, ordered by id.

        Args:
            dataset_id: Only deviations of this dataset
            layer_id: Only deviations of this layer
            include_actioned: Also return deviations that already carry an action
        """
        views = []
        for snapshot in self.cache.snapshots():
            if dataset_id is not None and snapshot.dataset_id != dataset_id:
                continue
            if layer_id is not None and snapshot.layer_id != layer_id:
                continue
            for deviation in snapshot.deviations:
                if deviation.has_action() and not include_actioned:
                    continue
                views.append(self._view(deviation, snapshot.crs, include_live_element=False))
        views.sort(key=lambda v: v.deviation.id)
        return views

    def update_action(self, deviation_id: int,
                      action: Optional[Union[DeviationAction, str]]) -> DeviationView:
        """Record a workflow action and return the updated view.

        Raises:
            DeviationNotFoundError: If no published snapshot holds the id
            ConflationValidationError: If the action is not an enumerated value
        """
        self.cache.apply_action(deviation_id, action)
        return self.get(deviation_id, include_live_element=False)

    def _view(self, deviation: Deviation, crs: str, include_live_element: bool) -> DeviationView:
        dataset = self.catalog.dataset(deviation.dataset_id)
        live_element = None
        if (include_live_element and self.live_lookup is not None
                and deviation.live_element_id is not None):
            live_element = self.live_lookup.get_element(deviation.live_element_type,
                                                        deviation.live_element_id)
        return DeviationView(
            deviation=deviation,
            crs=crs,
            source=self.catalog.source_attribution(deviation.dataset_id),
            dataset=dataset,
            provider=self.catalog.provider(dataset.provider_id) if dataset else None,
            layer=self.catalog.layer(deviation.layer_id),
            live_element=live_element,
        )
