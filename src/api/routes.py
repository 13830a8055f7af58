"""API routes for SellerWatch.

Endpoints for running a monitoring cycle (inline or as a background job),
polling jobs, historical statistics and an eBay search passthrough.
"""

import logging
from datetime import datetime, timezone
from functools import lru_cache
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse

from src.analytics import insights
from src.api.schemas import CycleReport, SearchResponse
from src.jobs import queue
from src.monitor.config import MonitorConfig
from src.monitor.cycle import MonitoringCycle
from src.monitor.errors import CredentialsError, StorageError, UpstreamError
from src.notify.email_notifier import EmailNotifier
from src.scraper.base_strategy import BaseListingSource
from src.scraper.ebay_strategy import EbayBrowseStrategy
from src.storage.snapshot_store import create_store

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api")


@lru_cache
def get_config() -> MonitorConfig:
    return MonitorConfig.from_env()


def get_source(config: MonitorConfig = Depends(get_config)) -> BaseListingSource:
    return EbayBrowseStrategy(config)


def get_notifier(config: MonitorConfig = Depends(get_config)) -> EmailNotifier:
    return EmailNotifier(config)


def _dump(report: CycleReport) -> dict:
    return report.model_dump(mode="json", by_alias=True)


async def run_cycle(
    config: MonitorConfig, source: BaseListingSource, notifier: EmailNotifier,
) -> CycleReport:
    """Open the store, run one cycle, close the store."""
    try:
        store = await create_store(config)
    except StorageError as e:
        logger.error("Snapshot store unavailable: %s", e)
        return CycleReport(
            success=False,
            timestamp=datetime.now(timezone.utc).isoformat(),
            sellers=config.sellers,
            error=str(e),
        )

    try:
        return await MonitoringCycle(config, source, store, notifier).run()
    finally:
        await store.close()


@router.api_route("/monitor", methods=["GET", "POST"])
async def monitor(
    config: MonitorConfig = Depends(get_config),
    source: BaseListingSource = Depends(get_source),
    notifier: EmailNotifier = Depends(get_notifier),
):
    """Run one monitoring cycle and return its report."""
    report = await queue.run_exclusive(lambda: run_cycle(config, source, notifier))
    return JSONResponse(status_code=200 if report.success else 500, content=_dump(report))


@router.post("/monitor/jobs")
async def start_monitor_job(
    config: MonitorConfig = Depends(get_config),
    source: BaseListingSource = Depends(get_source),
    notifier: EmailNotifier = Depends(get_notifier),
):
    """Start a background monitoring cycle. Returns job_id for polling."""
    job_id = await queue.enqueue(lambda: run_cycle(config, source, notifier))
    return {
        "job_id": job_id,
        "status": "queued",
        "poll_url": f"/api/monitor/jobs/{job_id}",
    }


@router.get("/monitor/jobs/{job_id}")
async def get_monitor_job(job_id: str):
    status = queue.get_status(job_id)
    if not status:
        raise HTTPException(status_code=404, detail="Job not found")
    return status


@router.get("/stats/history")
async def history_stats(config: MonitorConfig = Depends(get_config)):
    """Aggregate stored history; falls back to empty stats when storage is down."""
    now = datetime.now(timezone.utc)
    try:
        store = await create_store(config)
    except StorageError as e:
        logger.warning("History stats unavailable: %s", e)
        return insights.default_history_stats(now, note="Storage not configured or unavailable")

    try:
        meta = await store.get_meta()
        history = await store.get_history(limit=30)
    except Exception as e:
        logger.error("History stats query failed: %s", e)
        return insights.default_history_stats(now, note="History query failed")
    finally:
        await store.close()

    return insights.summarize_history(meta, history, now)


@router.get("/search")
async def search(
    q: Optional[str] = None,
    limit: int = Query(20, ge=1, le=200),
    source: BaseListingSource = Depends(get_source),
):
    """Keyword search on the eBay Browse API."""
    if not q:
        raise HTTPException(status_code=400, detail="Query parameter 'q' is required")
    if not isinstance(source, EbayBrowseStrategy):
        raise HTTPException(status_code=501, detail="Search not supported by this source")

    try:
        listings = await source.search(q, limit=limit)
    except CredentialsError as e:
        raise HTTPException(status_code=500, detail=e.to_dict())
    except UpstreamError as e:
        logger.error("Search failed: %s", e)
        raise HTTPException(status_code=502, detail=e.to_dict())

    response = SearchResponse(query=q, total=len(listings), listings=listings)
    return response.model_dump(mode="json", by_alias=True)


@router.get("/health")
async def health():
    recent_jobs = queue.list_recent(limit=10)
    active = sum(1 for j in recent_jobs if j["status"] in ("queued", "running"))
    return {"ok": True, "active_jobs": active}
