"""Background runner for API-triggered pipeline runs.

POST starts a run as a background task and returns a job_id immediately;
the client polls for completion. Job state is kept in memory and moves
through queued → running → completed/failed. Only one run may be active:
starting another while one is queued or running returns the active job.
"""

import asyncio
import uuid
import logging
from datetime import datetime, timezone
from typing import Dict, Optional, Callable, Coroutine

logger = logging.getLogger(__name__)

_jobs: Dict[str, dict] = {}
_tasks: Dict[str, asyncio.Task] = {}

ACTIVE_STATES = ("queued", "running")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def active_job() -> Optional[dict]:
    """Return the queued or running job, if any."""
    for job in _jobs.values():
        if job["status"] in ACTIVE_STATES:
            return job
    return None


async def enqueue(coro_factory: Callable[[], Coroutine]) -> dict:
    """Start a run unless one is already active. Returns the job record."""
    existing = active_job()
    if existing:
        logger.info("Run %s already %s, not starting another", existing["job_id"], existing["status"])
        return existing

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
    _tasks[job_id] = asyncio.create_task(_run(job_id, coro_factory))
    logger.info("Run %s queued", job_id)
    return _jobs[job_id]


async def _run(job_id: str, coro_factory: Callable[[], Coroutine]):
    """Execute the run and update its state."""
    _jobs[job_id]["status"] = "running"
    _jobs[job_id]["started_at"] = _now()
    logger.info("Run %s running", job_id)

    try:
        result = await coro_factory()
        _jobs[job_id]["status"] = "completed"
        _jobs[job_id]["result"] = result
        logger.info("Run %s completed", job_id)
    except Exception as e:
        _jobs[job_id]["status"] = "failed"
        _jobs[job_id]["error"] = str(e)
        logger.error("Run %s failed: %s", job_id, e)
    finally:
        _jobs[job_id]["completed_at"] = _now()
        _tasks.pop(job_id, None)


def get_status(job_id: str) -> Optional[dict]:
    """Get the current status of a job."""
    return _jobs.get(job_id)
