"""Matching Ruleset Models

A ruleset configures one matching pass: which upstream dataset is conflated,
the region both collections are restricted to, the distance threshold, the
scoring and tag-derivation functions, and the texts deviations are published
with. Rulesets are loaded from ``rulesets.json`` and validated with Pydantic.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

import shapely.wkt
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator
from shapely.errors import ShapelyError
from shapely.geometry import box
from shapely.geometry.base import BaseGeometry
from shapely.validation import make_valid

from src.exceptions import ConflationConfigurationError
from ..models import ElementType, LiveFeature

logger = logging.getLogger(__name__)

POLYGONAL_TYPES = ("Polygon", "MultiPolygon")


class RegionFilter(BaseModel):
    """Area of interest, given as WKT polygon or bounding box in the store CRS."""
    wkt: Optional[str] = Field(None, description="Polygon or multipolygon WKT")
    bbox: Optional[Tuple[float, float, float, float]] = Field(
        None, description="minx, miny, maxx, maxy"
    )

    @field_validator('wkt')
    @classmethod
    def validate_wkt(cls, v: Optional[str]) -> Optional[str]:
        """Ensure the WKT parses to a non-empty polygonal geometry."""
        if v is None:
            return v
        try:
            geometry = shapely.wkt.loads(v)
        except (ShapelyError, ValueError) as e:
            raise ValueError(f'region WKT cannot be parsed: {e}')
        if geometry.is_empty or geometry.geom_type not in POLYGONAL_TYPES:
            raise ValueError('region WKT must be a non-empty Polygon or MultiPolygon')
        return v

    @field_validator('bbox')
    @classmethod
    def validate_bbox(cls, v: Optional[Tuple[float, float, float, float]]):
        if v is not None:
            minx, miny, maxx, maxy = v
            if minx >= maxx or miny >= maxy:
                raise ValueError('region bbox must be ordered minx, miny, maxx, maxy')
        return v

    @model_validator(mode='after')
    def exactly_one_source(self) -> 'RegionFilter':
        if (self.wkt is None) == (self.bbox is None):
            raise ValueError("region requires exactly one of 'wkt' or 'bbox'")
        return self

    def to_geometry(self) -> BaseGeometry:
        """Region as a valid shapely geometry."""
        if self.bbox is not None:
            return box(*self.bbox)
        geometry = shapely.wkt.loads(self.wkt)
        if not geometry.is_valid:
            logger.warning("Region geometry is invalid, repairing with make_valid")
            geometry = make_valid(geometry)
        return geometry


class LiveFilter(BaseModel):
    """Restricts which live features are eligible as match candidates."""
    types: List[ElementType] = Field(
        default_factory=list, description="Allowed element types (empty allows all)"
    )
    tags: Dict[str, List[str]] = Field(
        default_factory=dict, description="Required tag keys and their allowed values"
    )

    def accepts(self, feature: LiveFeature) -> bool:
        if self.types and feature.type not in self.types:
            return False
        return all(feature.has_tag_value(key, values) for key, values in self.tags.items())


class DeviationTexts(BaseModel):
    """Titles and descriptions deviations are published with."""
    missing_title: str = Field("missing", min_length=1)
    missing_description: str = Field("Object is absent from the live database")
    mismatch_title: str = Field("tag mismatch", min_length=1)
    mismatch_description: str = Field(
        "Object is present in the live database but its attributes differ"
    )


class RulesetConfig(BaseModel):
    """Configuration of one dataset/region matching pass.

    Attributes:
        ruleset_id: Identifier used by the tile endpoint and the result cache
        dataset_id: Upstream dataset to conflate
        layer_id: Layer deviations are published in
        region: Area of interest both collections are restricted to
        distance_threshold: Maximum distance in meters between matched geometries
        scoring: Registered scoring function name
        score_options: Parameters passed to the scoring function
        tag_derivation: Registered tag-derivation function name
        tag_template: Tag key to ``str.format`` template over upstream attributes
        live_filter: Eligibility filter for live features
        include_unmatched_live: Surface live features no upstream item selected
        texts: Deviation titles and descriptions
    """
    ruleset_id: str = Field(..., min_length=1)
    dataset_id: int = Field(...)
    layer_id: int = Field(...)
    region: RegionFilter = Field(..., description="Region filter in the store CRS")
    distance_threshold: float = Field(50.0, gt=0, description="Match distance in meters")
    scoring: str = Field("distance")
    score_options: Dict[str, float] = Field(default_factory=dict)
    tag_derivation: str = Field("template")
    tag_template: Dict[str, str] = Field(default_factory=dict)
    live_filter: LiveFilter = Field(default_factory=LiveFilter)
    include_unmatched_live: bool = Field(False)
    texts: DeviationTexts = Field(default_factory=DeviationTexts)

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> 'RulesetConfig':
        """Validate a raw ruleset entry.

        Raises:
            ConflationConfigurationError: If the entry is missing required values
                or has a malformed region filter
        """
        try:
            return cls.model_validate(raw)
        except ValidationError as e:
            raise ConflationConfigurationError(
                f"Invalid ruleset configuration: {e}",
                {"ruleset_id": raw.get("ruleset_id", "unknown")}
            )

    model_config = {
        "frozen": True,
        "json_schema_extra": {
            "example": {
                "ruleset_id": "historiskaskyltar_gavle",
                "dataset_id": 27,
                "layer_id": 16,
                "region": {"bbox": [540000.0, 6700000.0, 640000.0, 6760000.0]},
                "distance_threshold": 50,
                "tag_template": {"information": "sign", "inscription": "{NAMN}"},
                "live_filter": {"types": ["n"], "tags": {"information": ["board", "sign"]}}
            }
        }
    }
