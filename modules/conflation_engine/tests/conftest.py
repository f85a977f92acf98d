"""Shared fixtures for conflation engine tests.

Geometries are in SWEREF99 TM (EPSG:3006) around central Gävle.
"""

from datetime import datetime, timezone
from typing import Dict, List, Optional

import geopandas as gpd
import pytest
from shapely.geometry import Point

from modules.conflation_engine.matching import RulesetRegistry
from modules.conflation_engine.models import ElementType, LiveFeature, UpstreamItem
from modules.conflation_engine.store import GeometryStore

REGION_BBOX = [600000.0, 6700000.0, 640000.0, 6760000.0]
ORIGIN_X, ORIGIN_Y = 615000.0, 6729000.0
FIXED_NOW = datetime(2024, 5, 2, 12, 0, 0, tzinfo=timezone.utc)


class ListStore(GeometryStore):
    """In-memory geometry store whose contents tests can change between refreshes."""

    def __init__(self, crs: str = "EPSG:3006"):
        self._crs = crs
        self.upstream: List[UpstreamItem] = []
        self.live: List[LiveFeature] = []
        self.error: Optional[Exception] = None

    @property
    def crs(self) -> str:
        return self._crs

    def upstream_items(self, dataset_id, region=None):
        if self.error is not None:
            raise self.error
        return [item for item in self.upstream
                if item.dataset_id == dataset_id
                and (region is None or item.geometry is None or region.contains(item.geometry))]

    def live_features(self, region=None):
        return [feature for feature in self.live
                if region is None or (feature.geometry is not None
                                      and region.contains(feature.geometry))]


def point(dx: float = 0.0, dy: float = 0.0) -> Point:
    """Point offset in meters from the test origin."""
    return Point(ORIGIN_X + dx, ORIGIN_Y + dy)


def make_upstream(ids, geometry=None, attributes=None, dataset_id: int = 27) -> UpstreamItem:
    if isinstance(ids, int):
        ids = (ids,)
    return UpstreamItem(ids=ids, dataset_id=dataset_id, geometry=geometry,
                        attributes=attributes or {})


def make_live(feature_id: int, geometry=None, tags: Optional[Dict[str, str]] = None,
              element_type: str = "n") -> LiveFeature:
    return LiveFeature(id=feature_id, type=ElementType(element_type), tags=tags,
                       geometry=geometry)


def ruleset_dict(**overrides) -> Dict:
    data = {
        "ruleset_id": "signs",
        "dataset_id": 27,
        "layer_id": 16,
        "region": {"bbox": REGION_BBOX},
        "distance_threshold": 50,
        "tag_template": {"information": "sign", "inscription": "{NAMN}"},
    }
    data.update(overrides)
    return data


@pytest.fixture
def store():
    return ListStore()


@pytest.fixture
def registry():
    return RulesetRegistry({"signs": ruleset_dict()})


@pytest.fixture
def upstream_frame():
    """Builder for upstream GeoDataFrames in EPSG:3006."""
    def build(rows: List[Dict], crs: str = "EPSG:3006") -> gpd.GeoDataFrame:
        return gpd.GeoDataFrame(
            {
                "ids": [row["ids"] for row in rows],
                "dataset_id": [row.get("dataset_id", 27) for row in rows],
                "attributes": [row.get("attributes", {}) for row in rows],
            },
            geometry=[row.get("geometry") for row in rows],
            crs=crs,
        )
    return build


@pytest.fixture
def live_frame():
    """Builder for live feature GeoDataFrames in EPSG:3006."""
    def build(rows: List[Dict], crs: str = "EPSG:3006") -> gpd.GeoDataFrame:
        return gpd.GeoDataFrame(
            {
                "id": [row["id"] for row in rows],
                "type": [row.get("type", "n") for row in rows],
                "tags": [row.get("tags") for row in rows],
            },
            geometry=[row.get("geometry") for row in rows],
            crs=crs,
        )
    return build
