"""
Vector tile rendering of cached match state.
"""

from .tile_math import (
    WEB_MERCATOR,
    WGS84,
    get_transformer,
    reproject,
    tile_bounds_in_crs,
    tile_envelope,
    to_tile_pixels,
    validate_tile,
)
from .tile_renderer import DEFAULT_LAYER, TileRenderer, decode_features

__all__ = [
    'WEB_MERCATOR', 'WGS84', 'get_transformer', 'reproject', 'tile_bounds_in_crs',
    'tile_envelope', 'to_tile_pixels', 'validate_tile',
    'DEFAULT_LAYER', 'TileRenderer', 'decode_features',
]
