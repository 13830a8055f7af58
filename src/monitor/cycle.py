"""Monitoring cycle orchestration.

fetch current -> load previous -> detect -> record check -> notify ->
append history -> save snapshot.

Fetching is strict: if it fails the cycle fails and nothing is written.
Everything after detection is best-effort; each step's outcome is
recorded in the CycleReport instead of failing the cycle.
"""

import logging
from datetime import datetime, timezone
from typing import List, Tuple

import httpx

from src.api.schemas import (
    CollaboratorResult, CycleReport, MonitoringStats, Snapshot, VersionedSnapshot,
)
from src.monitor.config import MonitorConfig
from src.monitor.errors import MonitorError
from src.notify.email_notifier import EmailNotifier
from src.pipeline.change_detector import (
    build_change_summary, dedupe_rating_changes, detect_changes,
)
from src.scraper.base_strategy import BaseListingSource
from src.storage.snapshot_store import SnapshotStore

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class MonitoringCycle:
    def __init__(
        self,
        config: MonitorConfig,
        source: BaseListingSource,
        store: SnapshotStore,
        notifier: EmailNotifier,
    ):
        self.config = config
        self.source = source
        self.store = store
        self.notifier = notifier

    async def _load_previous(self) -> Tuple[VersionedSnapshot, CollaboratorResult]:
        try:
            loaded = await self.store.load_snapshot()
            return loaded, CollaboratorResult(
                name="load_snapshot", ok=True,
                detail={"version": loaded.version, "listings": len(loaded.snapshot.listings)},
            )
        except Exception as e:
            # Degrade to a first run so detection still happens.
            logger.warning("Could not load previous snapshot, treating as first run: %s", e)
            return (
                VersionedSnapshot(snapshot=Snapshot.empty(), version=0),
                CollaboratorResult(name="load_snapshot", ok=False, error=str(e)),
            )

    async def _record_check(self) -> Tuple[MonitoringStats, CollaboratorResult]:
        try:
            stats = await self.store.record_check()
            return stats, CollaboratorResult(name="record_check", ok=True)
        except Exception as e:
            logger.error("Failed to record monitoring check: %s", e)
            stats = MonitoringStats(last_check_time=_now())
            return stats, CollaboratorResult(name="record_check", ok=False, error=str(e))

    async def run(self) -> CycleReport:
        logger.info("Starting monitoring cycle for sellers: %s", self.config.sellers)

        try:
            current = await self.source.fetch_snapshot(self.config.sellers, self.config.search_query)
        except (MonitorError, httpx.HTTPError) as e:
            logger.error("Monitoring cycle aborted, fetch failed: %s", e, exc_info=True)
            return CycleReport(
                success=False, timestamp=_now(), sellers=self.config.sellers, error=str(e),
            )

        collaborators: List[CollaboratorResult] = []

        previous, load_result = await self._load_previous()
        collaborators.append(load_result)

        diff = detect_changes(previous.snapshot, current)
        if self.config.dedupe_rating_changes:
            diff = dedupe_rating_changes(diff)
        counts = build_change_summary(diff)
        logger.info("Detected %d changes across %d listings", counts.total_changes, len(current.listings))

        stats, check_result = await self._record_check()
        collaborators.append(check_result)

        logger.info("Sending notification, changes: %s", "yes" if diff.has_changes else "no")
        try:
            delivery = await self.notifier.notify(diff, stats)
            collaborators.append(CollaboratorResult(
                name="notify", ok=delivery.success, error=delivery.error,
                detail={"message_id": delivery.message_id} if delivery.message_id else {},
            ))
        except Exception as e:
            logger.error("Notification failed: %s", e)
            collaborators.append(CollaboratorResult(name="notify", ok=False, error=str(e)))

        try:
            await self.store.append_history(counts, stats)
            collaborators.append(CollaboratorResult(name="append_history", ok=True))
        except Exception as e:
            logger.error("Failed to save change history: %s", e)
            collaborators.append(CollaboratorResult(name="append_history", ok=False, error=str(e)))

        try:
            version = await self.store.save_snapshot(current, previous.version)
            collaborators.append(CollaboratorResult(
                name="save_snapshot", ok=True, detail={"version": version},
            ))
        except Exception as e:
            logger.error("Failed to save snapshot: %s", e)
            collaborators.append(CollaboratorResult(name="save_snapshot", ok=False, error=str(e)))

        failed = [c.name for c in collaborators if not c.ok]
        if failed:
            logger.warning("Cycle completed with collaborator failures: %s", failed)
        else:
            logger.info("Cycle completed")

        return CycleReport(
            success=True,
            timestamp=_now(),
            has_changes=diff.has_changes,
            changes=diff if diff.has_changes else None,
            total_listings=len(current.listings),
            sellers=self.config.sellers,
            collaborators=collaborators,
        )
