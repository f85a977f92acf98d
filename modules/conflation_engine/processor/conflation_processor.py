"""ConflationProcessor Implementation

This module implements the ConflationProcessor class, which wires the geometry
store, ruleset registry, result cache, deviation feed and tile renderer
together and exposes the snapshot refresh through the ModuleProcessor
interface so that it can be scheduled like any other processing module.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from src.config.config_loader import ConfigLoader
from src.exceptions import ConflationBaseException
from src.interfaces.module_processor import ModuleProcessor, ModuleStatus, ProcessingResult
from ..cache import ActionJournal, ResultCache
from ..feed import DeviationFeed, LiveFeatureLookup
from ..matching import RulesetRegistry
from ..store import DEFAULT_CRS, GeoDataFrameStore, GeometryStore, MetadataCatalog
from ..tiles import TileRenderer

logger = logging.getLogger(__name__)

MODULE_NAME = "conflation_engine"


class ConflationProcessor(ModuleProcessor):
    """Conflation engine implementing the ModuleProcessor interface.

    Components are created on first use from the environment configuration.
    A store can be injected, in which case the configured store paths are not
    read.
    """

    def __init__(self, config_loader: ConfigLoader, environment: str = "development",
                 store: Optional[GeometryStore] = None,
                 live_lookup: Optional[LiveFeatureLookup] = None):
        """Initialize the processor with shared configuration.

        Args:
            config_loader: ConfigLoader instance providing access to framework configuration
            environment: Environment whose storage and processing settings apply
            store: Geometry store to use instead of the configured files
            live_lookup: Live element lookup attached to the deviation feed
        """
        self.config_loader = config_loader
        self.environment = environment
        self.live_lookup = live_lookup
        self._store = store
        self._registry: Optional[RulesetRegistry] = None
        self._cache: Optional[ResultCache] = None
        self._catalog: Optional[MetadataCatalog] = None
        self._feed: Optional[DeviationFeed] = None
        self._renderer: Optional[TileRenderer] = None
        self._last_run: Optional[datetime] = None
        self._configuration_valid: Optional[bool] = None

        logger.info(f"ConflationProcessor initialized for environment '{environment}'")

    # Components

    @property
    def store(self) -> GeometryStore:
        if self._store is None:
            storage = self.config_loader.get_storage_config(self.environment)
            self._store = GeoDataFrameStore.from_files(
                storage["upstream_path"], storage["live_path"],
                crs=storage.get("crs", DEFAULT_CRS)
            )
        return self._store

    @property
    def registry(self) -> RulesetRegistry:
        if self._registry is None:
            self._registry = RulesetRegistry.from_config(self.config_loader)
        return self._registry

    @property
    def cache(self) -> ResultCache:
        if self._cache is None:
            storage = self.config_loader.get_storage_config(self.environment)
            actions_path = storage.get("actions_path")
            journal = ActionJournal(actions_path) if actions_path else None
            self._cache = ResultCache(self.store, self.registry, journal=journal)
        return self._cache

    @property
    def catalog(self) -> MetadataCatalog:
        if self._catalog is None:
            self._catalog = MetadataCatalog.from_config(self.config_loader)
        return self._catalog

    @property
    def feed(self) -> DeviationFeed:
        if self._feed is None:
            self._feed = DeviationFeed(self.cache, self.catalog, self.live_lookup)
        return self._feed

    @property
    def tile_renderer(self) -> TileRenderer:
        if self._renderer is None:
            processing = self.config_loader.get_processing_config(self.environment)
            self._renderer = TileRenderer(
                self.cache,
                extent=processing.get("tile_extent", 4096),
                buffer=processing.get("tile_buffer", 256),
                cache_size=processing.get("tile_cache_size", 2048),
            )
        return self._renderer

    # ModuleProcessor

    def validate_configuration(self) -> bool:
        """Validate environment, ruleset and catalog configuration.

        Every ruleset is parsed so that malformed regions and unknown scoring
        or tag-derivation names are reported up front.

        Returns:
            bool: True if configuration is valid and complete, False otherwise
        """
        if self._configuration_valid is not None:
            return self._configuration_valid

        try:
            self.config_loader.load_environment_config(self.environment)
            self.config_loader.validate_environment_variables(self.environment)
            for ruleset_id in self.registry.ids():
                self.registry.get(ruleset_id)
            self.catalog
            self._configuration_valid = True
            logger.info("Conflation engine configuration validated")
        except ConflationBaseException as e:
            logger.error(f"Configuration validation failed: {e}")
            self._configuration_valid = False

        return self._configuration_valid

    def process(self, dry_run: bool = False) -> ProcessingResult:
        """Refresh the snapshots of every registered ruleset.

        A ruleset that fails keeps its previous snapshot and is reported in
        ``errors``; the other rulesets are refreshed regardless.

        Args:
            dry_run: If True, compute every snapshot without publishing it

        Returns:
            ProcessingResult: Standardized result object with success status, metrics, and errors
        """
        start_time = datetime.now()
        logger.info(f"Starting conflation refresh (dry_run={dry_run})")

        try:
            processing = self.config_loader.get_processing_config(self.environment)
            results = self.cache.refresh_all(
                max_workers=processing.get("max_workers", 1), dry_run=dry_run
            )
        except ConflationBaseException as e:
            execution_time = (datetime.now() - start_time).total_seconds()
            logger.error(f"Processing failed: {e}")
            return ProcessingResult(
                success=False,
                records_processed=0,
                errors=[str(e)],
                metadata={"dry_run": dry_run, "error_occurred_at": datetime.now().isoformat()},
                execution_time=execution_time
            )

        errors = [f"{rid}: {r.error}" for rid, r in results.items() if not r.success]
        records_processed = sum(r.upstream_items for r in results.values())
        metadata: Dict[str, Any] = {
            "dry_run": dry_run,
            "environment": self.environment,
            "rulesets": {rid: r.model_dump() for rid, r in results.items()},
        }
        execution_time = (datetime.now() - start_time).total_seconds()

        if not errors and not dry_run:
            self._last_run = datetime.now()
        logger.info(f"Refreshed {len(results) - len(errors)} of {len(results)} rulesets, "
                    f"{records_processed} upstream items in {execution_time:.2f}s")

        return ProcessingResult(
            success=not errors,
            records_processed=records_processed,
            errors=errors,
            metadata=metadata,
            execution_time=execution_time
        )

    def get_status(self) -> ModuleStatus:
        """Get current module processing status.

        Returns:
            ModuleStatus: Current module status and health information
        """
        is_configured = self.validate_configuration()
        health_check_result = self._health_check() if is_configured else False

        if not is_configured or not health_check_result:
            status = "error"
        else:
            status = "ready"

        return ModuleStatus(
            module_name=MODULE_NAME,
            is_configured=is_configured,
            last_run=self._last_run,
            status=status,
            health_check=health_check_result
        )

    def _health_check(self) -> bool:
        # Healthy once the store is reachable
        try:
            self.store.crs
            return True
        except ConflationBaseException as e:
            logger.error(f"Health check failed: {e}")
            return False
