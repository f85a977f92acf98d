"""Dataset Catalog

Descriptive metadata about providers, datasets and layers. The catalog is
maintained by ingestion; the engine only joins it onto deviations for display.
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, ValidationError

from src.config.config_loader import ConfigLoader
from src.exceptions import ConflationConfigurationError

logger = logging.getLogger(__name__)


class ProviderInfo(BaseModel):
    """Organisation publishing an upstream dataset."""
    id: int = Field(..., description="Provider identifier")
    name: str = Field(..., description="Provider display name")


class DatasetInfo(BaseModel):
    """Upstream dataset as fetched by ingestion."""
    id: int = Field(..., description="Dataset identifier")
    name: str = Field(..., description="Dataset display name")
    provider_id: Optional[int] = Field(None, description="Publishing provider")
    url: Optional[str] = Field(None, description="Source URL of the dataset")
    license: Optional[str] = Field(None, description="License the dataset is published under")
    fetched_at: Optional[datetime] = Field(None, description="Last successful fetch from the source")


class LayerInfo(BaseModel):
    """Thematic layer deviations are published in."""
    id: int = Field(..., description="Layer identifier")
    name: str = Field(..., description="Layer display name")
    description: str = Field("", description="Layer description")


class MetadataCatalog(BaseModel):
    """Lookup of providers, datasets and layers by id."""
    providers: List[ProviderInfo] = Field(default_factory=list)
    datasets: List[DatasetInfo] = Field(default_factory=list)
    layers: List[LayerInfo] = Field(default_factory=list)

    @classmethod
    def from_config(cls, config_loader: ConfigLoader) -> 'MetadataCatalog':
        """Build the catalog from ``catalog.json``.

        Raises:
            ConflationConfigurationError: If the catalog entries are malformed
        """
        try:
            return cls.model_validate(config_loader.load_catalog())
        except ValidationError as e:
            raise ConflationConfigurationError(f"Invalid catalog entry: {e}")

    def _index(self, entries) -> Dict[int, BaseModel]:
        return {entry.id: entry for entry in entries}

    def provider(self, provider_id: Optional[int]) -> Optional[ProviderInfo]:
        if provider_id is None:
            return None
        return self._index(self.providers).get(provider_id)

    def dataset(self, dataset_id: int) -> Optional[DatasetInfo]:
        return self._index(self.datasets).get(dataset_id)

    def layer(self, layer_id: int) -> Optional[LayerInfo]:
        return self._index(self.layers).get(layer_id)

    def source_attribution(self, dataset_id: int) -> str:
        """Attribution text such as "Gävle kommun Historiska skyltar"."""
        dataset = self.dataset(dataset_id)
        if dataset is None:
            logger.warning(f"Dataset {dataset_id} missing from catalog")
            return f"dataset {dataset_id}"
        provider = self.provider(dataset.provider_id)
        return f"{provider.name} {dataset.name}" if provider else dataset.name
