"""API routes for changewatch.

Provides endpoints for triggering runs, polling their results, and reading
stored snapshots and run history.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

import aiosqlite
from fastapi import APIRouter, Depends, Query, HTTPException
from pydantic import ValidationError

from changewatch.api.schemas import RunRequest
from changewatch.config import Settings, load_settings
from changewatch.db.database import get_db
from changewatch.db.snapshot_store import SnapshotStore
from changewatch.errors import InvalidProductKey, StoreConnectionError, StoreError
from changewatch.jobs import queue
from changewatch.pipeline.runner import execute_run
from changewatch.analytics import insights

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api")


def get_settings() -> Settings:
    return load_settings()


@asynccontextmanager
async def _database(settings: Settings):
    """Open the store for one request; store failures answer 503."""
    try:
        db = await get_db(settings.db_path)
    except StoreConnectionError as e:
        logger.error("Cannot open the database: %s", e)
        raise HTTPException(status_code=503, detail="Database unavailable")
    try:
        yield db
    except (StoreError, aiosqlite.Error) as e:
        logger.error("Database read failed: %s", e)
        raise HTTPException(status_code=503, detail="Database unavailable")
    finally:
        await db.close()


async def _run_and_dump(settings: Settings) -> dict:
    summary = await execute_run(settings)
    return summary.model_dump(mode="json")


@router.post("/runs")
async def start_run(request: Optional[RunRequest] = None, settings: Settings = Depends(get_settings)):
    """Start a background run. Returns job_id for polling."""
    overrides = request.model_dump(exclude_none=True) if request else {}
    try:
        run_settings = Settings(**{**settings.model_dump(), **overrides})
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=e.errors(include_url=False, include_context=False))

    job = await queue.enqueue(lambda: _run_and_dump(run_settings))
    return {
        "job_id": job["job_id"],
        "status": job["status"],
        "poll_url": f"/api/runs/{job['job_id']}",
    }


@router.get("/runs/{job_id}")
async def get_run_status(job_id: str):
    """Poll run status."""
    status = queue.get_status(job_id)
    if not status:
        raise HTTPException(status_code=404, detail="Run not found")
    return status


@router.get("/history")
async def get_history(
    limit: int = Query(30, ge=1, le=500),
    settings: Settings = Depends(get_settings),
):
    """Recent run reports, newest first."""
    async with _database(settings) as db:
        return {"runs": await insights.get_run_history(db, limit)}


@router.get("/products/changed")
async def list_changed_products(
    limit: int = Query(50, ge=1, le=500),
    settings: Settings = Depends(get_settings),
):
    """Products ordered by their most recent competitor change."""
    async with _database(settings) as db:
        return {"products": await insights.get_recently_changed(db, limit)}


@router.get("/products/{product_id}")
async def get_product(product_id: str, settings: Settings = Depends(get_settings)):
    """Stored snapshot for one product."""
    async with _database(settings) as db:
        store = SnapshotStore(db, key_format=settings.key_format)
        try:
            key = store.parse_key(product_id)
        except InvalidProductKey as e:
            raise HTTPException(status_code=400, detail=str(e))
        snapshot = await store.get(key)
        if snapshot is None:
            raise HTTPException(status_code=404, detail="Product not found")
        return snapshot.model_dump(mode="json")


@router.get("/stats")
async def get_stats(settings: Settings = Depends(get_settings)):
    """Totals across all stored products and runs."""
    async with _database(settings) as db:
        return await insights.get_totals(db)


@router.get("/health")
async def health():
    active = queue.active_job()
    return {"ok": True, "active_run": active["job_id"] if active else None}
