"""Paginated catalog API client.

Fetches one page at a time from GET <base>?page=<n>&app_key=<key>. A
definitive end-of-pagination status (204/404 by default) is reported as
END_OF_DATA, and so is a 200 with an empty body. Any other non-200 status
or transport failure is an ERROR.
With treat_errors_as_end every non-200 status ends pagination, which is
how the catalog's own client behaves.
"""

import logging
from typing import List, Optional, Iterable

import httpx
from pydantic import ValidationError

from changewatch.api.schemas import CatalogPage, CatalogProduct, PageFetch, PageStatus
from changewatch.errors import MalformedPage, PageCountUnavailable

logger = logging.getLogger(__name__)


def decode_page(body: bytes) -> List[CatalogProduct]:
    """Decode a page envelope into its products."""
    try:
        return CatalogPage.model_validate_json(body).skus or []
    except ValidationError as e:
        raise MalformedPage(f"invalid page body: {e.error_count()} error(s), first: {e.errors()[0]['msg']}") from e


class CatalogPageSource:
    """Catalog API client shared by every fetch worker."""

    def __init__(
        self,
        base_url: str,
        app_key: str = "",
        timeout: float = 30.0,
        end_statuses: Iterable[int] = (204, 404),
        treat_errors_as_end: bool = False,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url
        self.app_key = app_key
        self.end_statuses = set(end_statuses)
        self.treat_errors_as_end = treat_errors_as_end
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=timeout)

    @classmethod
    def from_settings(cls, settings, client: Optional[httpx.AsyncClient] = None) -> "CatalogPageSource":
        return cls(
            base_url=settings.api_url,
            app_key=settings.app_key,
            timeout=settings.http_timeout,
            end_statuses=settings.end_statuses,
            treat_errors_as_end=settings.treat_errors_as_end,
            client=client,
        )

    async def __aenter__(self) -> "CatalogPageSource":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    def _params(self, page: int) -> dict:
        params = {"page": page}
        if self.app_key:
            params["app_key"] = self.app_key
        return params

    async def fetch_page(self, page: int) -> PageFetch:
        """Request one page. Never raises for HTTP or transport failures."""
        try:
            response = await self.client.get(self.base_url, params=self._params(page))
        except httpx.HTTPError as e:
            logger.warning("Request for page %d failed: %s", page, e)
            return PageFetch(page=page, status=PageStatus.ERROR, reason=f"{type(e).__name__}: {e}")

        code = response.status_code
        if code == 200:
            if not response.content.strip():
                logger.info("Page %d returned an empty body, end of pages", page)
                return PageFetch(page=page, status=PageStatus.END_OF_DATA, status_code=code, reason="empty body")
            return PageFetch(page=page, status=PageStatus.OK, body=response.content, status_code=code)

        if code in self.end_statuses or self.treat_errors_as_end:
            logger.info("Page %d returned %d, end of pages", page, code)
            return PageFetch(page=page, status=PageStatus.END_OF_DATA, status_code=code, reason="end of pages")

        logger.warning("Page %d returned unexpected status %d", page, code)
        return PageFetch(page=page, status=PageStatus.ERROR, status_code=code, reason=f"HTTP {code}")

    async def discover_page_count(self) -> int:
        """Read number_of_pages from the first page's envelope."""
        fetch = await self.fetch_page(1)
        if fetch.status is not PageStatus.OK:
            raise PageCountUnavailable(f"page 1 not available ({fetch.reason})")

        try:
            pages = CatalogPage.model_validate_json(fetch.body).number_of_pages
        except ValidationError as e:
            raise PageCountUnavailable(f"page 1 envelope is invalid: {e.errors()[0]['msg']}") from e

        if pages is None or pages < 0:
            raise PageCountUnavailable(f"number_of_pages missing or invalid: {pages!r}")

        logger.info("Catalog reports %d pages", pages)
        return pages
