"""Store Adapters

Read-only access to upstream items, live features and catalog metadata.
"""

from .geometry_store import GeometryStore, GeoDataFrameStore, DEFAULT_CRS
from .catalog import MetadataCatalog, ProviderInfo, DatasetInfo, LayerInfo

__all__ = [
    'GeometryStore',
    'GeoDataFrameStore',
    'DEFAULT_CRS',
    'MetadataCatalog',
    'ProviderInfo',
    'DatasetInfo',
    'LayerInfo',
]
