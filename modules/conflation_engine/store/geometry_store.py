"""Geometry Store Adapter

Read-only access to the two geometry collections the engine conflates: upstream
items (written by ingestion) and live features (mirrored from the live
database). Both are exposed in one projected, meter based CRS.
"""

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional

import geopandas as gpd
import pandas as pd
from pydantic import ValidationError
from shapely.geometry.base import BaseGeometry
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from src.exceptions import ConflationStoreError, ConflationValidationError
from ..models import ElementType, LiveFeature, UpstreamItem

logger = logging.getLogger(__name__)

DEFAULT_CRS = "EPSG:3006"

UPSTREAM_COLUMNS = ["ids", "dataset_id", "attributes"]
LIVE_COLUMNS = ["id", "type", "tags"]


class GeometryStore(ABC):
    """Read-only source of upstream items and live features."""

    @property
    @abstractmethod
    def crs(self) -> str:
        """Projected CRS all geometries are expressed in."""

    @abstractmethod
    def upstream_items(self, dataset_id: int,
                       region: Optional[BaseGeometry] = None) -> List[UpstreamItem]:
        """Upstream items of a dataset.

        With a region, only items within it are returned, plus items that have
        no geometry at all (the region cannot be evaluated for those).
        """

    @abstractmethod
    def live_features(self, region: Optional[BaseGeometry] = None) -> List[LiveFeature]:
        """Live features, restricted to those within ``region`` when given."""


def _is_missing(value: Any) -> bool:
    return value is None or (pd.api.types.is_scalar(value) and pd.isna(value))


def _decode_mapping(value: Any, column: str) -> Optional[Dict[str, Any]]:
    """Decode a tag/attribute column value stored as dict or JSON text."""
    if _is_missing(value):
        return None
    if isinstance(value, dict):
        return value
    if isinstance(value, str):
        try:
            decoded = json.loads(value) if value.strip() else {}
        except json.JSONDecodeError as e:
            raise ConflationValidationError(f"Invalid JSON in column '{column}': {e}")
        if decoded is None:
            return None
        if not isinstance(decoded, dict):
            raise ConflationValidationError(f"Column '{column}' must hold a JSON object")
        return decoded
    raise ConflationValidationError(
        f"Unsupported value type {type(value).__name__} in column '{column}'"
    )


def _decode_ids(value: Any) -> List[int]:
    if isinstance(value, str):
        text = value.strip()
        value = json.loads(text) if text.startswith("[") else [text]
    elif hasattr(value, "tolist"):
        value = value.tolist()
    if not isinstance(value, (list, tuple)):
        value = [value]
    return [int(v) for v in value]


class GeoDataFrameStore(GeometryStore):
    """Geometry store backed by two GeoDataFrames.

    Expected columns:
        upstream frame: ``ids`` (int, list of ints or JSON array text),
            ``dataset_id``, ``attributes`` (dict or JSON text), geometry
        live frame: ``id``, ``type`` (n/w/r), ``tags`` (dict or JSON text), geometry

    Frames without a CRS are assumed to already be in the store CRS; frames in
    another CRS are reprojected once on construction.
    """

    def __init__(self, upstream: gpd.GeoDataFrame, live: gpd.GeoDataFrame,
                 crs: str = DEFAULT_CRS):
        self._crs = crs
        self._upstream = self._prepare_frame(upstream, UPSTREAM_COLUMNS, "upstream")
        self._live = self._prepare_frame(live, LIVE_COLUMNS, "live")
        logger.info(f"GeoDataFrameStore initialized: {len(self._upstream)} upstream rows, "
                    f"{len(self._live)} live rows ({crs})")

    @property
    def crs(self) -> str:
        return self._crs

    @classmethod
    def from_files(cls, upstream_path: str, live_path: str,
                   crs: str = DEFAULT_CRS) -> 'GeoDataFrameStore':
        """Create a store from any vector files geopandas can read.

        Raises:
            ConflationStoreError: If a file is missing or cannot be read
        """
        upstream = _read_frame(upstream_path)
        live = _read_frame(live_path)
        return cls(upstream, live, crs=crs)

    def _prepare_frame(self, frame: gpd.GeoDataFrame, columns: List[str],
                       name: str) -> gpd.GeoDataFrame:
        missing = [c for c in columns if c not in frame.columns]
        if missing:
            raise ConflationStoreError(f"{name} frame is missing columns: {missing}")

        if frame.crs is None:
            frame = frame.set_crs(self._crs)
        elif frame.crs != self._crs:
            logger.info(f"Reprojecting {name} frame from {frame.crs} to {self._crs}")
            frame = frame.to_crs(self._crs)
        return frame.reset_index(drop=True)

    def _positions_within(self, frame: gpd.GeoDataFrame,
                          region: Optional[BaseGeometry]) -> List[int]:
        if region is None:
            return list(range(len(frame)))
        # region contains geometry == geometry within region
        positions = frame.sindex.query(region, predicate="contains")
        return sorted(int(p) for p in positions)

    def upstream_items(self, dataset_id: int,
                       region: Optional[BaseGeometry] = None) -> List[UpstreamItem]:
        frame = self._upstream[self._upstream["dataset_id"] == dataset_id].reset_index(drop=True)
        positions = set(self._positions_within(frame, region))
        if region is not None:
            positions.update(i for i, geom in enumerate(frame.geometry) if geom is None or geom.is_empty)

        geometry_column = frame.geometry.name
        items = []
        for position in sorted(positions):
            row = frame.iloc[position]
            try:
                items.append(UpstreamItem(
                    ids=tuple(_decode_ids(row["ids"])),
                    dataset_id=int(row["dataset_id"]),
                    geometry=None if _is_missing(row[geometry_column]) else row[geometry_column],
                    attributes=_decode_mapping(row["attributes"], "attributes"),
                ))
            except (ValidationError, ValueError, TypeError) as e:
                raise ConflationValidationError(
                    f"Invalid upstream row: {e}", {"dataset_id": dataset_id, "row": position}
                )

        logger.debug(f"Loaded {len(items)} upstream items for dataset {dataset_id}")
        return items

    def live_features(self, region: Optional[BaseGeometry] = None) -> List[LiveFeature]:
        geometry_column = self._live.geometry.name
        features = []
        for position in self._positions_within(self._live, region):
            row = self._live.iloc[position]
            try:
                features.append(LiveFeature(
                    id=int(row["id"]),
                    type=ElementType(row["type"]),
                    tags=_decode_mapping(row["tags"], "tags"),
                    geometry=None if _is_missing(row[geometry_column]) else row[geometry_column],
                ))
            except (ValidationError, ValueError, TypeError) as e:
                raise ConflationValidationError(f"Invalid live feature row: {e}", {"row": position})

        logger.debug(f"Loaded {len(features)} live features")
        return features


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=8),
    retry=retry_if_exception_type(OSError),
    reraise=True
)
def _read_frame_with_retry(path: Path) -> gpd.GeoDataFrame:
    return gpd.read_file(path)


def _read_frame(path: str) -> gpd.GeoDataFrame:
    """Read a vector file, retrying transient I/O failures.

    Raises:
        ConflationStoreError: If the file does not exist or cannot be read
    """
    file_path = Path(path)
    if not file_path.exists():
        raise ConflationStoreError(f"Store file not found: {file_path}")
    try:
        return _read_frame_with_retry(file_path)
    except Exception as e:
        raise ConflationStoreError(f"Failed to read store file {file_path}: {e}")
