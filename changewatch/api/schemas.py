"""Pydantic models for catalog payloads, stored records and run results."""

from datetime import datetime
from enum import Enum
from typing import Optional, List

from pydantic import BaseModel


class Competitor(BaseModel):
    """One competitor listing attached to a catalog product."""
    oid: Optional[str] = None


class CatalogProduct(BaseModel):
    """Product as received from the catalog API.

    A missing or null oid still decodes; the store rejects it for this
    product alone.
    """
    oid: Optional[str] = None
    competitors: Optional[List[Competitor]] = None

    def competitor_ids(self) -> List[str]:
        return [c.oid for c in self.competitors or [] if c.oid is not None]


class CatalogPage(BaseModel):
    """Envelope of one catalog page."""
    skus: Optional[List[CatalogProduct]] = None
    number_of_pages: Optional[int] = None


class ProductSnapshot(BaseModel):
    """Last persisted competitor state of a product."""
    id: str
    competitors_hash: str
    competitors: List[str] = []
    last_checked: datetime
    last_changed: datetime


class RunReport(BaseModel):
    """Counters of a single pipeline execution."""
    timestamp: Optional[datetime] = None
    added: int = 0
    removed: int = 0
    checked: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0
    pages_fetched: int = 0
    pages_failed: int = 0
    duration_seconds: float = 0.0


class PageStatus(str, Enum):
    OK = "ok"
    END_OF_DATA = "end_of_data"
    ERROR = "error"
    MALFORMED = "malformed"


class PageFetch(BaseModel):
    """Raw result of requesting one catalog page."""
    page: int
    status: PageStatus
    body: Optional[bytes] = None
    status_code: Optional[int] = None
    reason: Optional[str] = None


class PageOutcome(BaseModel):
    """What the fetch stage did with one page index."""
    page: int
    status: PageStatus
    products: int = 0
    reason: Optional[str] = None


class ProductStatus(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    SKIPPED = "skipped"
    FAILED = "failed"


class ProductOutcome(BaseModel):
    """Result of running change detection for one product."""
    product_id: Optional[str] = None
    status: ProductStatus
    added: int = 0
    removed: int = 0
    changed: bool = False
    reason: Optional[str] = None


class RunSummary(BaseModel):
    """Everything a pipeline run produced, for callers and tests."""
    report: RunReport
    pages: List[PageOutcome] = []
    problems: List[ProductOutcome] = []
    mode: str = "count"


class RunRequest(BaseModel):
    """Optional overrides when starting a run over the API."""
    fetch_workers: Optional[int] = None
    detect_workers: Optional[int] = None
    pagination: Optional[str] = None


class RunStatusResponse(BaseModel):
    """Response for background run status."""
    job_id: str
    status: str  # queued, running, completed, failed
    created_at: str
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    error: Optional[str] = None
    result: Optional[dict] = None
