"""In-process background queue for monitoring cycles.

POST /api/monitor/jobs starts a cycle in the background and returns a
job_id; the client polls for the report. Jobs move queued -> running ->
completed/failed and run one at a time, so two cycles in the same
process never interleave their load and save.
"""

import asyncio
import uuid
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, Optional

logger = logging.getLogger(__name__)

_jobs: Dict[str, dict] = {}
_tasks: Dict[str, asyncio.Task] = {}
_lock: Optional[asyncio.Lock] = None


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _cycle_lock() -> asyncio.Lock:
    # Created lazily so it binds to the running event loop.
    global _lock
    if _lock is None:
        _lock = asyncio.Lock()
    return _lock


async def enqueue(coro_factory: Callable[[], Awaitable]) -> str:
    """Queue a coroutine for background execution. Returns job_id."""
    job_id = str(uuid.uuid4())
    _jobs[job_id] = {
        "job_id": job_id,
        "status": "queued",
        "created_at": _now(),
        "started_at": None,
        "completed_at": None,
        "error": None,
        "result": None,
    }
    task = asyncio.create_task(_run(job_id, coro_factory))
    _tasks[job_id] = task
    task.add_done_callback(lambda _: _tasks.pop(job_id, None))
    logger.info("Job %s queued", job_id)
    return job_id


async def run_exclusive(coro_factory: Callable[[], Awaitable]):
    """Run a coroutine while holding the cycle lock."""
    async with _cycle_lock():
        return await coro_factory()


async def _run(job_id: str, coro_factory: Callable[[], Awaitable]):
    async with _cycle_lock():
        job = _jobs[job_id]
        job["status"] = "running"
        job["started_at"] = _now()
        logger.info("Job %s running", job_id)

        try:
            result = await coro_factory()
            job["status"] = "completed"
            job["result"] = result.model_dump(mode="json", by_alias=True) if hasattr(result, "model_dump") else result
            logger.info("Job %s completed", job_id)
        except Exception as e:
            job["status"] = "failed"
            job["error"] = str(e)
            logger.error("Job %s failed: %s", job_id, e)
        finally:
            job["completed_at"] = _now()


def get_status(job_id: str) -> Optional[dict]:
    return _jobs.get(job_id)


def list_recent(limit: int = 50) -> list:
    """List the most recent jobs."""
    jobs = sorted(_jobs.values(), key=lambda j: j["created_at"], reverse=True)
    return jobs[:limit]


def reset():
    """Forget all jobs. Used between tests."""
    global _lock
    _jobs.clear()
    _tasks.clear()
    _lock = None
