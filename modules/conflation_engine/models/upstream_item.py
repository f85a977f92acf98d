"""UpstreamItem Data Model

This module defines the Pydantic data model for records of the authoritative
external dataset. Items are produced by ingestion and never modified by the
engine; several source records may collapse into one conflation unit, which is
why an item carries a set of identifiers.
"""

from pydantic import BaseModel, Field, field_validator
from shapely.geometry.base import BaseGeometry
from typing import Any, Dict, Optional, Tuple


UpstreamKey = Tuple[int, ...]


class UpstreamItem(BaseModel):
    """Data model for one conflation unit of the upstream dataset.

    Attributes:
        ids: Identifiers of the source records merged into this unit (sorted, unique)
        dataset_id: Identifier of the dataset the records belong to
        geometry: Point or line geometry in the projected storage CRS, if any
        attributes: Original source attributes as strings
    """

    ids: Tuple[int, ...] = Field(
        ...,
        description="Identifiers of the source records merged into this unit",
        min_length=1
    )

    dataset_id: int = Field(
        ...,
        description="Identifier of the upstream dataset"
    )

    geometry: Optional[BaseGeometry] = Field(
        None,
        description="Geometry in the projected, meter based storage CRS"
    )

    attributes: Dict[str, str] = Field(
        default_factory=dict,
        description="Original source attributes (key to string value)"
    )

    @field_validator('ids')
    @classmethod
    def normalize_ids(cls, v: Tuple[int, ...]) -> Tuple[int, ...]:
        """Sort and deduplicate identifiers so equal sets compare equal.

        Args:
            v: The identifier tuple to normalize

        Returns:
            Sorted tuple of unique identifiers
        """
        return tuple(sorted(set(v)))

    @field_validator('geometry')
    @classmethod
    def empty_geometry_is_absent(cls, v: Optional[BaseGeometry]) -> Optional[BaseGeometry]:
        """Treat empty geometries as absent."""
        if v is not None and v.is_empty:
            return None
        return v

    @field_validator('attributes', mode='before')
    @classmethod
    def stringify_attributes(cls, v: Any) -> Dict[str, str]:
        """Convert attribute values to strings, dropping null values.

        Args:
            v: Raw attribute mapping (None is accepted as empty)

        Returns:
            Mapping of attribute names to string values
        """
        if v is None:
            return {}
        return {str(key): str(value) for key, value in dict(v).items() if value is not None}

    @property
    def key(self) -> UpstreamKey:
        """Identity of this item across refreshes."""
        return self.ids

    def has_geometry(self) -> bool:
        return self.geometry is not None

    model_config = {
        "frozen": True,
        "arbitrary_types_allowed": True,
        "json_schema_extra": {
            "example": {
                "ids": [90211],
                "dataset_id": 27,
                "geometry": "POINT (615231.2 6729412.8)",
                "attributes": {"NAMN": "Gamla rådhuset"}
            }
        }
    }
