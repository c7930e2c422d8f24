"""
Paginated fetching for the polling system.

Every poller lists resources through PaginatedFetcher, which walks the page
cursor, waits out rate limits, and degrades to partial results on any other
API error instead of raising.
"""

from collections.abc import Awaitable, Callable
from typing import TypeVar

import structlog

from ..exceptions import GitHubAPIError, RateLimitError
from ..models import Page
from .rate_limiter import RateLimitBackoff

logger = structlog.get_logger(__name__)

T = TypeVar("T")

# GitHub caps list endpoints at 100 items per page.
MAX_PER_PAGE = 100


class PaginatedFetcher:
    """
    Collects every page of a list endpoint into one list.

    Rate-limit rejections are retried on the same page for as long as it
    takes. Any other API error ends pagination and returns what was already
    collected.
    """

    def __init__(self, backoff: RateLimitBackoff, per_page: int = MAX_PER_PAGE):
        """
        Initialize the fetcher.

        Args:
            backoff: Policy used to wait out rate limits
            per_page: Page size requested from the API
        """
        self.backoff = backoff
        self.per_page = per_page

    async def fetch_all(
        self,
        fetch_page: Callable[..., Awaitable[Page[T]]],
        **context: str,
    ) -> list[T]:
        """
        Fetch all pages.

        Args:
            fetch_page: Callable taking ``page`` and ``per_page`` keywords
            **context: Identifiers (organization, repository, ...) for logs

        Returns:
            Items of every page fetched, in cursor order
        """
        items: list[T] = []
        page = 1

        while True:
            try:
                result = await fetch_page(page=page, per_page=self.per_page)
            except RateLimitError as e:
                await self.backoff.wait_until(e.reset_time, **context)
                continue
            except GitHubAPIError as e:
                logger.error(
                    "List request failed, keeping partial results",
                    page=page,
                    items_collected=len(items),
                    status_code=e.status_code,
                    error=str(e),
                    **context,
                )
                return items

            items.extend(result.items)
            if result.next_page is None:
                return items
            page = result.next_page
