"""Two-stage change-detection pipeline.

Stage 1: fetch workers pull page indices from a bounded queue, fetch and
decode each page, and push the product lists onto a second bounded queue.
Stage 2: detection workers pull product lists and run change detection for
every product, each keeping its own partial RunReport.

Queues are closed with one sentinel per consumer. The product queue is only
closed once every fetch worker has returned, and the final report is the sum
of the partials returned by the detection workers.
"""

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple

import aiosqlite

from changewatch.api.schemas import (
    PageOutcome, PageStatus, ProductOutcome, ProductStatus, RunReport, RunSummary,
)
from changewatch.catalog.page_source import CatalogPageSource, decode_page
from changewatch.config import Settings
from changewatch.db.database import connect
from changewatch.db.snapshot_store import HistorySink, SnapshotStore
from changewatch.errors import MalformedPage, PageCountUnavailable, StoreError
from changewatch.pipeline.change_detector import check_product
from changewatch.pipeline.report import merge_reports, record_page, record_product, summary_line

logger = logging.getLogger(__name__)

_DONE = object()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


async def _fetch_one(source, page: int, batches: asyncio.Queue) -> PageOutcome:
    """Fetch and decode one page; push its products downstream."""
    fetch = await source.fetch_page(page)
    if fetch.status is not PageStatus.OK:
        return PageOutcome(page=page, status=fetch.status, reason=fetch.reason)

    try:
        products = decode_page(fetch.body)
    except MalformedPage as e:
        logger.warning("Dropping page %d: %s", page, e)
        return PageOutcome(page=page, status=PageStatus.MALFORMED, reason=str(e))

    if products:
        await batches.put(products)
    logger.debug("Page %d: %d products queued", page, len(products))
    return PageOutcome(page=page, status=PageStatus.OK, products=len(products))


async def _fetch_worker(worker_id: int, source, pages: asyncio.Queue, batches: asyncio.Queue) -> List[PageOutcome]:
    outcomes = []
    while True:
        page = await pages.get()
        if page is _DONE:
            return outcomes
        try:
            outcomes.append(await _fetch_one(source, page, batches))
        except Exception as e:
            logger.error("Fetch worker %d failed on page %d: %s", worker_id, page, e, exc_info=True)
            outcomes.append(PageOutcome(page=page, status=PageStatus.ERROR, reason=str(e)))


async def _enqueue_pages(pages: asyncio.Queue, count: int, workers: int):
    for page in range(1, count + 1):
        await pages.put(page)
    for _ in range(workers):
        await pages.put(_DONE)


async def _probe_pages(source, batches: asyncio.Queue) -> List[PageOutcome]:
    """Fetch pages 1, 2, 3... in order until the first page that is not usable.

    A non-200 response, an empty body, an undecodable body or a page with no
    products all end the walk.
    """
    outcomes = []
    page = 1
    while True:
        try:
            outcome = await _fetch_one(source, page, batches)
        except Exception as e:
            logger.error("Probing failed on page %d: %s", page, e, exc_info=True)
            outcome = PageOutcome(page=page, status=PageStatus.ERROR, reason=str(e))
        outcomes.append(outcome)
        if outcome.status is not PageStatus.OK:
            logger.info("Probing stopped at page %d (%s)", page, outcome.status.value)
            return outcomes
        if outcome.products == 0:
            logger.info("Probing stopped at page %d (no products)", page)
            return outcomes
        page += 1


async def _detect_worker(
    worker_id: int,
    store,
    batches: asyncio.Queue,
    clock: Callable[[], datetime],
) -> Tuple[RunReport, List[ProductOutcome]]:
    partial = RunReport()
    problems = []
    while True:
        batch = await batches.get()
        if batch is _DONE:
            return partial, problems
        for product in batch:
            try:
                outcome = await check_product(store, product, clock())
            except Exception as e:
                logger.error("Detection worker %d failed on %s: %s", worker_id, product.oid, e, exc_info=True)
                outcome = ProductOutcome(product_id=product.oid, status=ProductStatus.FAILED, reason=str(e))
            record_product(partial, outcome)
            if outcome.status in (ProductStatus.SKIPPED, ProductStatus.FAILED):
                problems.append(outcome)


async def run_pipeline(
    source,
    store,
    history=None,
    *,
    fetch_workers: int = 5,
    detect_workers: int = 20,
    queue_size: int = 100,
    pagination: str = "count",
    clock: Callable[[], datetime] = _utcnow,
) -> RunSummary:
    """Run one complete pass over the catalog.

    Args:
        source: page source exposing fetch_page() and discover_page_count().
        store: snapshot store shared by every detection worker.
        history: optional sink; the final report is appended to it.
        pagination: "count" sizes the run from number_of_pages and falls back
            to "probe" when the count is unavailable.

    Returns:
        RunSummary with the summed report plus page and product outcomes.
    """
    started = time.monotonic()
    mode = pagination
    page_count = 0

    if mode == "count":
        try:
            page_count = await source.discover_page_count()
        except PageCountUnavailable as e:
            logger.warning("Page count unavailable (%s), probing pages instead", e)
            mode = "probe"

    pages: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
    batches: asyncio.Queue = asyncio.Queue(maxsize=queue_size)

    detectors = [
        asyncio.create_task(_detect_worker(i, store, batches, clock))
        for i in range(detect_workers)
    ]

    if mode == "count":
        logger.info("Fetching %d pages with %d workers", page_count, fetch_workers)
        fetchers = [
            asyncio.create_task(_fetch_worker(i, source, pages, batches))
            for i in range(fetch_workers)
        ]
        await _enqueue_pages(pages, page_count, fetch_workers)
        fetched = await asyncio.gather(*fetchers)
        page_outcomes = [outcome for outcomes in fetched for outcome in outcomes]
    else:
        page_outcomes = await _probe_pages(source, batches)

    for _ in range(detect_workers):
        await batches.put(_DONE)
    results = await asyncio.gather(*detectors)

    report = merge_reports(partial for partial, _ in results)
    for outcome in page_outcomes:
        record_page(report, outcome)
    report.timestamp = clock()
    report.duration_seconds = round(time.monotonic() - started, 3)

    if history is not None:
        try:
            await history.append(report)
        except StoreError as e:
            logger.error("Failed to record run history: %s", e)

    logger.info(
        "Run finished in %.1fs: %d checked, %d updated, +%d/-%d competitors",
        report.duration_seconds, report.checked, report.updated, report.added, report.removed,
    )
    logger.info(summary_line(report))

    return RunSummary(
        report=report,
        pages=sorted(page_outcomes, key=lambda o: o.page),
        problems=[p for _, problems in results for p in problems],
        mode=mode,
    )


async def execute_run(settings: Settings, db: Optional[aiosqlite.Connection] = None) -> RunSummary:
    """Run the pipeline with everything built from settings.

    Opens the database when no connection is given; StoreConnectionError
    from that step is the only error that propagates.
    """
    owns_db = db is None
    if owns_db:
        db = await connect(settings.db_path)

    try:
        store = SnapshotStore(db, key_format=settings.key_format)
        history = HistorySink(db)
        async with CatalogPageSource.from_settings(settings) as source:
            return await run_pipeline(
                source,
                store,
                history,
                fetch_workers=settings.fetch_workers,
                detect_workers=settings.detect_workers,
                queue_size=settings.queue_size,
                pagination=settings.pagination,
            )
    finally:
        if owns_db:
            await db.close()
