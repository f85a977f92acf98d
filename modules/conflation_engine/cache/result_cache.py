"""Result Cache

Runs the matching pipeline per ruleset and publishes the outcome as an
immutable, versioned Snapshot. Readers (deviation feed, tile renderer) only
ever dereference the currently published snapshot, so no spatial join runs per
request.

Publishing swaps a dictionary entry under a lock; a refresh that fails leaves
the previous snapshot in place. Deviation ids, notes and workflow actions are
carried forward by upstream item key.
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple, Union

import geopandas as gpd
from pydantic import BaseModel, Field

from src.exceptions import ConflationBaseException, ConflationStoreError
from src.utils import log_performance
from ..exceptions import DeviationNotFoundError, RefreshError, SnapshotNotFoundError
from ..matching import (
    CandidateMatcher,
    DeviationClassifier,
    MatchSelector,
    MatchingPass,
    RulesetConfig,
    RulesetRegistry,
)
from ..models import Deviation, DeviationAction, MatchResult, apply_action, parse_action
from ..store import GeometryStore
from .action_journal import ActionJournal
from .snapshot import Snapshot

logger = logging.getLogger(__name__)


class RefreshResult(BaseModel):
    """Outcome of refreshing one ruleset."""
    ruleset_id: str = Field(..., description="Refreshed ruleset")
    success: bool = Field(..., description="Whether the refresh completed")
    published: bool = Field(False, description="Whether a snapshot was published")
    version: Optional[int] = Field(None, description="Published snapshot version")
    upstream_items: int = Field(0, ge=0)
    live_features: int = Field(0, ge=0)
    candidates: int = Field(0, ge=0)
    matches: int = Field(0, ge=0)
    deviations: int = Field(0, ge=0)
    skipped: int = Field(0, ge=0, description="Upstream items that could not be classified")
    carried_forward: int = Field(0, ge=0, description="Deviations that kept a previous id")
    error: Optional[str] = Field(None)
    execution_time: float = Field(0.0, ge=0)


class ResultCache:
    """Single writer of ruleset snapshots."""

    def __init__(self, store: GeometryStore, registry: RulesetRegistry,
                 journal: Optional[ActionJournal] = None,
                 clock: Optional[Callable[[], datetime]] = None):
        self.store = store
        self.registry = registry
        self.journal = journal
        self.matcher = CandidateMatcher(store, registry)
        self.selector = MatchSelector()
        self.classifier = DeviationClassifier()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

        self._lock = threading.Lock()
        self._snapshots: Dict[str, Snapshot] = {}
        self._versions: Dict[str, int] = {}
        self._next_id = journal.next_id() if journal else 1

    # Readers

    def get_snapshot(self, ruleset_id: str) -> Snapshot:
        """Currently published snapshot of a ruleset.

        Raises:
            SnapshotNotFoundError: If the ruleset has never been refreshed
        """
        snapshot = self._snapshots.get(ruleset_id)
        if snapshot is None:
            raise SnapshotNotFoundError(ruleset_id)
        return snapshot

    def has_snapshot(self, ruleset_id: str) -> bool:
        return ruleset_id in self._snapshots

    def snapshots(self) -> List[Snapshot]:
        return list(self._snapshots.values())

    def find_deviation(self, deviation_id: int) -> Tuple[Snapshot, Deviation]:
        """Locate a deviation in the published snapshots.

        Raises:
            DeviationNotFoundError: If no published snapshot holds the id
        """
        for snapshot in list(self._snapshots.values()):
            deviation = snapshot.deviation(deviation_id)
            if deviation is not None:
                return snapshot, deviation
        raise DeviationNotFoundError(deviation_id)

    # Refresh

    def build(self, ruleset: RulesetConfig) -> Tuple[MatchingPass, List[MatchResult], List[Deviation]]:
        """Run matcher, selector and classifier without publishing anything.

        Returns:
            The matching pass, the match rows and the deviations (without ids)
        """
        matching_pass = self.matcher.find_candidates(ruleset)
        selected = self.selector.select(matching_pass.candidates)
        live_by_ref = matching_pass.live_by_ref()

        matches: List[MatchResult] = []
        deviations: List[Deviation] = []
        selected_refs = set()
        for item in matching_pass.upstream_items:
            derived = matching_pass.derived_tags[item.key]
            best = selected.get(item.key)
            live = live_by_ref[(best.live_id, best.live_type.value)] if best else None
            if live is not None:
                selected_refs.add(live.ref)

            matches.append(MatchResult(
                upstream_ids=item.ids,
                upstream_tags=derived,
                upstream_geom=item.geometry,
                live_id=live.id if live else None,
                live_type=live.type if live else None,
                live_tags=live.tags if live else None,
                live_geom=live.geometry if live else None,
            ))
            deviation = self.classifier.classify(item, derived, live, ruleset)
            if deviation is not None:
                deviations.append(deviation)

        if ruleset.include_unmatched_live:
            for feature in matching_pass.live_features:
                if feature.ref not in selected_refs:
                    matches.append(MatchResult(
                        upstream_ids=(),
                        upstream_tags=None,
                        upstream_geom=None,
                        live_id=feature.id,
                        live_type=feature.type,
                        live_tags=feature.tags,
                        live_geom=feature.geometry,
                    ))

        return matching_pass, matches, deviations

    @log_performance
    def refresh(self, ruleset: Union[RulesetConfig, str], dry_run: bool = False) -> RefreshResult:
        """Recompute and publish the snapshot of one ruleset.

        Idempotent: refreshing unchanged inputs publishes an equivalent snapshot
        under a new version. With ``dry_run`` nothing is published.

        Raises:
            ConflationBaseException: Configuration, store and validation errors,
                unchanged; the previous snapshot stays published
            RefreshError: For any other failure while building the snapshot
        """
        start_time = time.perf_counter()
        ruleset_id = ruleset if isinstance(ruleset, str) else ruleset.ruleset_id
        try:
            if isinstance(ruleset, str):
                ruleset = self.registry.get(ruleset)
            matching_pass, matches, deviations = self.build(ruleset)
        except ConflationBaseException:
            logger.error(f"Refresh of ruleset {ruleset_id} failed, keeping previous snapshot")
            raise
        except Exception as e:
            logger.error(f"Refresh of ruleset {ruleset_id} failed, keeping previous snapshot: {e}")
            raise RefreshError(f"Refresh failed: {e}", ruleset_id) from e

        result = RefreshResult(
            ruleset_id=ruleset_id,
            success=True,
            upstream_items=len(matching_pass.upstream_items),
            live_features=len(matching_pass.live_features),
            candidates=len(matching_pass.candidates),
            matches=len(matches),
            deviations=len(deviations),
            skipped=matching_pass.skipped,
        )
        if dry_run:
            logger.info(f"DRY RUN: ruleset {ruleset_id} would publish {len(deviations)} deviations")
            result.execution_time = time.perf_counter() - start_time
            return result

        with self._lock:
            snapshot, carried = self._publish(ruleset, matches, deviations, matching_pass.skipped)

        result.published = True
        result.version = snapshot.version
        result.carried_forward = carried
        result.execution_time = time.perf_counter() - start_time
        logger.info(snapshot.get_summary(),
                    extra={"ruleset_id": ruleset_id, "snapshot_version": snapshot.version})
        return result

    def _publish(self, ruleset: RulesetConfig, matches: List[MatchResult],
                 deviations: List[Deviation], skipped: int) -> Tuple[Snapshot, int]:
        # Caller holds self._lock
        ruleset_id = ruleset.ruleset_id
        previous = self._snapshots.get(ruleset_id)
        if previous is not None:
            carried_state = {d.upstream_key: (d.id, d.note, d.action, d.action_at)
                             for d in previous.deviations}
        elif self.journal is not None:
            carried_state = {key: (e.id, e.note, e.action, e.action_at)
                             for key, e in self.journal.entries(ruleset_id).items()}
        else:
            carried_state = {}

        next_id = self._next_id
        identified = []
        carried = 0
        for deviation in deviations:
            state = carried_state.get(deviation.upstream_key)
            if state is not None:
                deviation_id, note, action, action_at = state
                carried += 1
            else:
                deviation_id, note, action, action_at = next_id, "", None, None
                next_id += 1
            identified.append(deviation.model_copy(update={
                "id": deviation_id, "note": note, "action": action, "action_at": action_at,
            }))

        snapshot = Snapshot(
            ruleset_id=ruleset_id,
            dataset_id=ruleset.dataset_id,
            layer_id=ruleset.layer_id,
            crs=self.store.crs,
            version=self._versions.get(ruleset_id, 0) + 1,
            created_at=self._clock(),
            matches=tuple(matches),
            deviations=tuple(identified),
            skipped=skipped,
        )
        if self.journal is not None:
            self.journal.record(ruleset_id, snapshot.deviations, next_id)

        self._next_id = next_id
        self._versions[ruleset_id] = snapshot.version
        self._snapshots[ruleset_id] = snapshot
        return snapshot, carried

    def refresh_all(self, ruleset_ids: Optional[List[str]] = None, max_workers: int = 1,
                    dry_run: bool = False) -> Dict[str, RefreshResult]:
        """Refresh several rulesets, isolating failures per ruleset.

        Args:
            ruleset_ids: Rulesets to refresh (default: every registered ruleset)
            max_workers: Size of the thread pool; 1 runs sequentially
            dry_run: Compute without publishing

        Returns:
            RefreshResult per ruleset id; failed rulesets carry ``success=False``
        """
        ids = list(ruleset_ids) if ruleset_ids is not None else self.registry.ids()

        def run(ruleset_id: str) -> RefreshResult:
            try:
                return self.refresh(ruleset_id, dry_run=dry_run)
            except ConflationBaseException as e:
                return RefreshResult(ruleset_id=ruleset_id, success=False, error=str(e))

        if max_workers <= 1 or len(ids) <= 1:
            results = [run(rid) for rid in ids]
        else:
            with ThreadPoolExecutor(max_workers=max_workers) as executor:
                results = list(executor.map(run, ids))

        failed = [r.ruleset_id for r in results if not r.success]
        if failed:
            logger.warning(f"{len(failed)} of {len(ids)} ruleset refreshes failed: {failed}")
        return {r.ruleset_id: r for r in results}

    # Workflow

    def apply_action(self, deviation_id: int, action: Optional[Union[DeviationAction, str]],
                     now: Optional[datetime] = None) -> Deviation:
        """Record (or clear, with None) a workflow action on a published deviation.

        Raises:
            ConflationValidationError: If the action is not an enumerated value
            DeviationNotFoundError: If no published snapshot holds the id
        """
        if action is not None:
            action = parse_action(action)

        with self._lock:
            snapshot, deviation = self.find_deviation(deviation_id)
            updated = apply_action(deviation, action, now or self._clock())
            version = self._versions[snapshot.ruleset_id] + 1
            new_snapshot = snapshot.with_deviation(updated, version)
            if self.journal is not None:
                self.journal.record(snapshot.ruleset_id, new_snapshot.deviations, self._next_id)
            self._versions[snapshot.ruleset_id] = version
            self._snapshots[snapshot.ruleset_id] = new_snapshot

        logger.info(f"Recorded action on {updated.get_summary()}",
                    extra={"deviation_id": deviation_id, "ruleset_id": snapshot.ruleset_id})
        return updated

    # Export

    def export_snapshot(self, ruleset_id: str, path: str) -> int:
        """Write the deviations of a ruleset to a GeoJSON file in WGS84.

        Returns:
            Number of exported deviations

        Raises:
            SnapshotNotFoundError: If the ruleset has no published snapshot
            ConflationStoreError: If the file cannot be written
        """
        snapshot = self.get_snapshot(ruleset_id)
        records = []
        for deviation in snapshot.deviations:
            records.append({
                "id": deviation.id,
                "dataset_id": deviation.dataset_id,
                "layer_id": deviation.layer_id,
                "upstream_item_ids": ",".join(str(i) for i in deviation.upstream_item_ids),
                "kind": deviation.kind.value,
                "title": deviation.title,
                "description": deviation.description,
                "suggested_tags": (None if deviation.suggested_tags is None
                                   else ";".join(f"{k}={v}" for k, v in
                                                 sorted(deviation.suggested_tags.items()))),
                "live_element": (None if deviation.live_element_id is None else
                                 f"{deviation.live_element_type.value}{deviation.live_element_id}"),
                "action": deviation.action.value if deviation.action else None,
                "action_at": deviation.action_at.isoformat() if deviation.action_at else None,
                "geometry": (deviation.suggested_geom if deviation.suggested_geom is not None
                             else deviation.live_geom),
            })

        if records:
            frame = gpd.GeoDataFrame(records, geometry="geometry", crs=snapshot.crs)
        else:
            frame = gpd.GeoDataFrame({"id": []}, geometry=[], crs=snapshot.crs)
        try:
            Path(path).parent.mkdir(parents=True, exist_ok=True)
            frame.to_crs("EPSG:4326").to_file(path, driver="GeoJSON")
        except Exception as e:
            raise ConflationStoreError(f"Failed to export snapshot to {path}: {e}",
                                       {"ruleset_id": ruleset_id})
        logger.info(f"Exported {len(records)} deviations of {ruleset_id} to {path}")
        return len(records)
