"""Tile Renderer

Encodes the published match results of a ruleset as Mapbox Vector Tiles. Each
match result becomes one feature: a line between the upstream and live
centroids, or a single centroid when only one side exists.
"""

import json
import logging
import threading
from collections import OrderedDict
from typing import Any, Dict, List, NamedTuple, Optional, Tuple

import mapbox_vector_tile
from shapely import clip_by_rect
from shapely.geometry import LineString, Point
from shapely.geometry.base import BaseGeometry

from ..cache import ResultCache, Snapshot
from ..models import MatchResult
from .tile_math import (
    DEFAULT_BUFFER,
    DEFAULT_EXTENT,
    WEB_MERCATOR,
    reproject,
    tile_bounds_in_crs,
    tile_envelope,
    to_tile_pixels,
    validate_tile,
)

logger = logging.getLogger(__name__)

DEFAULT_LAYER = "default"

TileKey = Tuple[str, int, int, int, int]


class TileCacheInfo(NamedTuple):
    hits: int
    misses: int
    maxsize: int
    currsize: int


class TileRenderer:
    """Vector tiles of match state, cached per ruleset version.

    Cached tiles are keyed by (ruleset id, snapshot version, z, x, y) and hold
    no reference to the snapshot they were rendered from. The first tile
    rendered for a new version drops the tiles of older ones.

    Args:
        cache: Result cache the snapshots are read from
        extent: Tile pixel extent
        buffer: Pixels kept around the tile when clipping
        cache_size: Number of encoded tiles kept in memory
        layer_name: Name of the single layer in every tile
    """

    def __init__(self, cache: ResultCache, extent: int = DEFAULT_EXTENT,
                 buffer: int = DEFAULT_BUFFER, cache_size: int = 2048,
                 layer_name: str = DEFAULT_LAYER):
        self.cache = cache
        self.extent = extent
        self.buffer = buffer
        self.layer_name = layer_name
        self.cache_size = cache_size
        self._tiles: "OrderedDict[TileKey, bytes]" = OrderedDict()
        self._versions: Dict[str, int] = {}
        self._hits = 0
        self._misses = 0
        self._lock = threading.Lock()

    def render(self, ruleset_id: str, z: int, x: int, y: int) -> bytes:
        """Encoded tile (possibly zero bytes) for the ruleset's current snapshot.

        Raises:
            InvalidTileError: If (z, x, y) is not a tile of the pyramid
            SnapshotNotFoundError: If the ruleset has no published snapshot
        """
        validate_tile(z, x, y)
        snapshot = self.cache.get_snapshot(ruleset_id)
        key = (ruleset_id, snapshot.version, z, x, y)
        with self._lock:
            if key in self._tiles:
                self._hits += 1
                self._tiles.move_to_end(key)
                return self._tiles[key]
            self._misses += 1

        tile = self._render_tile(snapshot, z, x, y)
        self._store(key, tile)
        return tile

    def cache_key(self, ruleset_id: str, z: int, x: int, y: int) -> Tuple[str, int, int, int, int]:
        """Key identifying the tile content, e.g. for HTTP caching."""
        return (ruleset_id, z, x, y, self.cache.get_snapshot(ruleset_id).version)

    def cache_info(self) -> TileCacheInfo:
        with self._lock:
            return TileCacheInfo(self._hits, self._misses, self.cache_size, len(self._tiles))

    def clear_cache(self) -> None:
        with self._lock:
            self._tiles.clear()
            self._versions.clear()
            self._hits = 0
            self._misses = 0

    def _store(self, key: TileKey, tile: bytes) -> None:
        ruleset_id, version = key[0], key[1]
        with self._lock:
            cached_version = self._versions.get(ruleset_id)
            if cached_version is not None and version < cached_version:
                # Rendered from a snapshot superseded while encoding
                return
            if cached_version != version:
                stale = [k for k in self._tiles if k[0] == ruleset_id]
                for k in stale:
                    del self._tiles[k]
                self._versions[ruleset_id] = version
                if stale:
                    logger.debug(f"Dropped {len(stale)} cached tiles of {ruleset_id} "
                                 f"v{cached_version}")
            self._tiles[key] = tile
            while len(self._tiles) > self.cache_size:
                self._tiles.popitem(last=False)

    def _render_tile(self, snapshot: Snapshot, z: int, x: int, y: int) -> bytes:
        bounds = tile_bounds_in_crs(z, x, y, snapshot.crs)
        envelope = tile_envelope(z, x, y)

        features = []
        for match in snapshot.matches_intersecting(bounds):
            feature = self._build_feature(match, snapshot.crs, envelope)
            if feature is not None:
                features.append(feature)

        logger.debug(f"Tile {snapshot.ruleset_id} {z}/{x}/{y} v{snapshot.version}: "
                     f"{len(features)} features")
        if not features:
            return b""

        return mapbox_vector_tile.encode(
            [{"name": self.layer_name, "features": features}],
            default_options={"extents": self.extent, "y_coord_down": True},
        )

    def _pixel_centroid(self, geometry: Optional[BaseGeometry], crs: str,
                        envelope) -> Optional[Point]:
        if geometry is None:
            return None
        centroid = reproject(geometry.centroid, crs, WEB_MERCATOR)
        return to_tile_pixels(centroid, envelope, self.extent)

    def _build_feature(self, match: MatchResult, crs: str, envelope) -> Optional[Dict[str, Any]]:
        upstream = self._pixel_centroid(match.upstream_geom, crs, envelope)
        live = self._pixel_centroid(match.live_geom, crs, envelope)

        if upstream is not None and live is not None:
            if _same_pixel(upstream, live):
                geometry = upstream
            else:
                geometry = LineString([upstream, live])
        else:
            geometry = upstream if upstream is not None else live
        if geometry is None:
            return None

        low, high = -self.buffer, self.extent + self.buffer
        clipped = clip_by_rect(geometry, low, low, high, high)
        if clipped.is_empty:
            return None

        properties = {"state": match.state.value}
        if match.upstream_tags is not None:
            properties["upstream_tags"] = json.dumps(match.upstream_tags, ensure_ascii=False,
                                                     sort_keys=True)
        return {"geometry": clipped, "properties": properties}


def _same_pixel(a: Point, b: Point) -> bool:
    return (round(a.x), round(a.y)) == (round(b.x), round(b.y))


def decode_features(tile: bytes, layer_name: str = DEFAULT_LAYER) -> List[Dict[str, Any]]:
    """Decode the features of one layer, pixel coordinates y down."""
    if not tile:
        return []
    decoded = mapbox_vector_tile.decode(tile, default_options={"y_coord_down": True})
    return decoded.get(layer_name, {}).get("features", [])
