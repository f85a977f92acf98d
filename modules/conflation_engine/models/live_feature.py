"""LiveFeature Data Model

This module defines the Pydantic data model for features of the live geospatial
database. The engine reads them but never writes them back.
"""

from enum import Enum
from pydantic import BaseModel, Field, field_validator
from shapely.geometry.base import BaseGeometry
from typing import Any, Dict, Optional, Tuple


class ElementType(str, Enum):
    """Primitive types of the live feature database."""
    NODE = "n"
    WAY = "w"
    RELATION = "r"


class LiveFeature(BaseModel):
    """Data model for a mapped feature in the live database.

    Attributes:
        id: Element identifier, unique per element type
        type: Element primitive type
        tags: Tag mapping, None when the element carries no tag data
        geometry: Geometry in the projected storage CRS, if any
    """

    id: int = Field(..., description="Element identifier")

    type: ElementType = Field(..., description="Element primitive type (n/w/r)")

    tags: Optional[Dict[str, str]] = Field(
        None,
        description="Tag mapping of the element"
    )

    geometry: Optional[BaseGeometry] = Field(
        None,
        description="Geometry in the projected, meter based storage CRS"
    )

    @field_validator('tags', mode='before')
    @classmethod
    def stringify_tags(cls, v: Any) -> Optional[Dict[str, str]]:
        if v is None:
            return None
        return {str(key): str(value) for key, value in dict(v).items() if value is not None}

    @field_validator('geometry')
    @classmethod
    def empty_geometry_is_absent(cls, v: Optional[BaseGeometry]) -> Optional[BaseGeometry]:
        if v is not None and v.is_empty:
            return None
        return v

    @property
    def ref(self) -> Tuple[int, str]:
        """Sortable reference (id first, then type)."""
        return (self.id, self.type.value)

    def has_tag_value(self, key: str, values) -> bool:
        """Check whether tag ``key`` holds one of ``values``."""
        return bool(self.tags) and self.tags.get(key) in values

    model_config = {
        "frozen": True,
        "arbitrary_types_allowed": True,
        "json_schema_extra": {
            "example": {
                "id": 1234567,
                "type": "n",
                "tags": {"information": "board", "tourism": "information"},
                "geometry": "POINT (615240.0 6729420.0)"
            }
        }
    }
