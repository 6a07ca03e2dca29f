import json

import httpx
import pytest_asyncio

from changewatch.db.database import connect
from changewatch.db.snapshot_store import SnapshotStore, HistorySink
from changewatch.catalog.page_source import CatalogPageSource

BASE_URL = "https://catalog.test/breuninger"


@pytest_asyncio.fixture
async def db():
    conn = await connect(":memory:")
    yield conn
    await conn.close()


@pytest_asyncio.fixture
async def store(db):
    return SnapshotStore(db)


@pytest_asyncio.fixture
async def history(db):
    return HistorySink(db)


def page_body(products, number_of_pages=None):
    """Build a catalog page body from {product_id: [competitor ids]}."""
    envelope = {
        "skus": [
            {"oid": oid, "competitors": [{"oid": c} for c in competitors]}
            for oid, competitors in products.items()
        ]
    }
    if number_of_pages is not None:
        envelope["number_of_pages"] = number_of_pages
    return json.dumps(envelope).encode()


def catalog_source(pages, statuses=None, requests=None, **kwargs):
    """A page source answering from in-memory pages.

    pages maps page number to a products dict (or raw bytes); pages not in
    the map answer 404 unless statuses gives another status code.
    """
    statuses = statuses or {}
    number_of_pages = kwargs.pop("number_of_pages", len(pages))

    def handler(request: httpx.Request) -> httpx.Response:
        page = int(request.url.params["page"])
        if requests is not None:
            requests.append(page)
        if page in statuses:
            return httpx.Response(statuses[page])
        if page not in pages:
            return httpx.Response(404)
        content = pages[page]
        if isinstance(content, dict):
            content = page_body(content, number_of_pages if page == 1 else None)
        return httpx.Response(200, content=content)

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return CatalogPageSource(BASE_URL, app_key="test-key", client=client, **kwargs)
