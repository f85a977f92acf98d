"""Tile Coordinate Math

XYZ tile envelopes in Web Mercator, their footprint in the store CRS and the
affine mapping from Web Mercator to tile pixel space.
"""

from functools import lru_cache
from typing import Optional, Tuple

import numpy as np
from pyproj import CRS, Transformer
import shapely
from shapely import affinity
from shapely.geometry import Polygon, box
from shapely.geometry.base import BaseGeometry

from ..exceptions import InvalidTileError

WEB_MERCATOR = "EPSG:3857"
WGS84 = "EPSG:4326"
# Half the width of the Web Mercator square, in meters
ORIGIN_SHIFT = 20037508.342789244
MAX_ZOOM = 30
# Latitude at which the Web Mercator square ends
MAX_LATITUDE = 85.0511287798066

DEFAULT_EXTENT = 4096
DEFAULT_BUFFER = 256

Envelope = Tuple[float, float, float, float]


def validate_tile(z: int, x: int, y: int) -> None:
    """Check that (z, x, y) addresses a tile of the pyramid.

    Raises:
        InvalidTileError: If zoom or column/row are out of range
    """
    for name, value in (("z", z), ("x", x), ("y", y)):
        if isinstance(value, bool) or not isinstance(value, int):
            raise InvalidTileError(f"Tile coordinate {name} must be an integer",
                                   {name: value})
    if not 0 <= z <= MAX_ZOOM:
        raise InvalidTileError(f"Zoom level {z} out of range 0-{MAX_ZOOM}", {"z": z})
    size = 2 ** z
    if not (0 <= x < size and 0 <= y < size):
        raise InvalidTileError(f"Tile {z}/{x}/{y} outside the tile pyramid",
                               {"z": z, "x": x, "y": y})


def tile_envelope(z: int, x: int, y: int) -> Envelope:
    """Web Mercator bounds (minx, miny, maxx, maxy) of tile (z, x, y)."""
    validate_tile(z, x, y)
    size = 2 * ORIGIN_SHIFT / 2 ** z
    minx = -ORIGIN_SHIFT + x * size
    maxy = ORIGIN_SHIFT - y * size
    return (minx, maxy - size, minx + size, maxy)


@lru_cache(maxsize=16)
def get_transformer(source_crs: str, target_crs: str) -> Transformer:
    return Transformer.from_crs(source_crs, target_crs, always_xy=True)


def reproject(geometry: BaseGeometry, source_crs: str, target_crs: str) -> BaseGeometry:
    if source_crs == target_crs or geometry.is_empty:
        return geometry
    transformer = get_transformer(source_crs, target_crs)
    return shapely.transform(
        geometry,
        lambda coords: np.column_stack(transformer.transform(coords[:, 0], coords[:, 1])),
    )


@lru_cache(maxsize=16)
def area_of_use_in_mercator(crs: str) -> Optional[BaseGeometry]:
    """Area of use of ``crs`` as a Web Mercator box, None when the CRS has none.

    Projections such as EPSG:3006 fold over or diverge far outside their area
    of use.
    """
    area = CRS.from_user_input(crs).area_of_use
    if area is None:
        return None
    west, south, east, north = area.bounds
    south = max(south, -MAX_LATITUDE)
    north = min(north, MAX_LATITUDE)
    if east < west:
        # Areas crossing the antimeridian cover the full width
        west, east = -180.0, 180.0
    xs, ys = get_transformer(WGS84, WEB_MERCATOR).transform([west, east], [south, north])
    return box(xs[0], ys[0], xs[1], ys[1])


def tile_bounds_in_crs(z: int, x: int, y: int, crs: str) -> BaseGeometry:
    """Tile footprint as a polygon in ``crs``, empty if the tile misses the CRS area of use.

    The footprint is clipped to the area of use of ``crs`` and its edges are
    densified before reprojecting, so that the curved outline of the tile in
    a projected CRS is followed closely.
    """
    minx, miny, maxx, maxy = tile_envelope(z, x, y)
    footprint = box(minx, miny, maxx, maxy)
    area = area_of_use_in_mercator(crs)
    if area is not None:
        footprint = footprint.intersection(area)
        if footprint.is_empty or footprint.area == 0:
            return Polygon()
    fminx, fminy, fmaxx, fmaxy = footprint.bounds
    outline = shapely.segmentize(footprint, max(fmaxx - fminx, fmaxy - fminy) / 16)
    bounds = reproject(outline, WEB_MERCATOR, crs)
    if not bounds.is_valid:
        bounds = shapely.make_valid(bounds)
    return bounds


def to_tile_pixels(geometry: BaseGeometry, envelope: Envelope,
                   extent: int = DEFAULT_EXTENT) -> BaseGeometry:
    """Map a Web Mercator geometry to tile pixel space, origin top-left, y down."""
    minx, miny, maxx, maxy = envelope
    scale_x = extent / (maxx - minx)
    scale_y = extent / (maxy - miny)
    return affinity.affine_transform(
        geometry, [scale_x, 0.0, 0.0, -scale_y, -minx * scale_x, maxy * scale_y]
    )
