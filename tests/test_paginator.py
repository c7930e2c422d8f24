"""
Tests for the paginated rate-limited fetcher.
"""

from typing import Any

import pytest

from actions_exporter.exceptions import GitHubAPIError, RateLimitError
from actions_exporter.models import Page
from actions_exporter.polling.paginator import PaginatedFetcher
from actions_exporter.polling.rate_limiter import RateLimitBackoff


class TestPaginatedFetcher:
    """Test PaginatedFetcher.fetch_all."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("per_page", [1, 7, 100])
    async def test_page_size_does_not_change_result(self, backoff, paged, per_page):
        """Concatenated pages are the same record set for any page size."""
        records = list(range(250))
        fetcher = PaginatedFetcher(backoff, per_page=per_page)

        result = await fetcher.fetch_all(paged(records))

        assert result == records

    @pytest.mark.asyncio
    async def test_exhausted_first_page_makes_one_request(self, fetcher, paged):
        fetch_page = paged([1, 2, 3])

        result = await fetcher.fetch_all(fetch_page)

        assert result == [1, 2, 3]
        assert fetch_page.calls == [1]

    @pytest.mark.asyncio
    async def test_empty_result_is_not_an_error(self, fetcher, paged):
        fetch_page = paged([])

        assert await fetcher.fetch_all(fetch_page) == []
        assert fetch_page.calls == [1]

    @pytest.mark.asyncio
    async def test_rate_limit_retries_same_page_until_success(self, fake_sleep):
        """N rate-limit rejections block for the sum of reported waits."""
        backoff = RateLimitBackoff(clock=lambda: 1_000.0, sleep=fake_sleep)
        fetcher = PaginatedFetcher(backoff, per_page=2)
        reset_times = [1_010.0, 1_020.0, 1_005.0, 1_300.0]
        requested: list[int] = []

        async def fetch_page(*, page: int, per_page: int) -> Page[str]:
            requested.append(page)
            if reset_times:
                raise RateLimitError("limited", reset_time=reset_times.pop(0))
            return Page(items=["a", "b"])

        result = await fetcher.fetch_all(fetch_page)

        assert result == ["a", "b"]
        assert requested == [1, 1, 1, 1, 1]
        assert fake_sleep.calls == [10.0, 20.0, 5.0, 300.0]
        assert fake_sleep.total == 335.0

    @pytest.mark.asyncio
    async def test_rate_limit_reset_in_the_past_retries_immediately(self, fake_sleep):
        backoff = RateLimitBackoff(clock=lambda: 1_000.0, sleep=fake_sleep)
        fetcher = PaginatedFetcher(backoff)
        attempts = {"count": 0}

        async def fetch_page(*, page: int, per_page: int) -> Page[int]:
            attempts["count"] += 1
            if attempts["count"] == 1:
                raise RateLimitError("limited", reset_time=900.0)
            return Page(items=[1])

        assert await fetcher.fetch_all(fetch_page) == [1]
        assert fake_sleep.calls == [0.0]

    @pytest.mark.asyncio
    async def test_error_on_later_page_returns_earlier_pages(self, backoff, paged):
        """An API error on page k keeps exactly the records of pages 1..k-1."""
        fetcher = PaginatedFetcher(backoff, per_page=2)
        inner = paged(list(range(10)))

        async def fetch_page(*, page: int, per_page: int) -> Any:
            if page == 3:
                raise GitHubAPIError("boom", status_code=502)
            return await inner(page=page, per_page=per_page)

        result = await fetcher.fetch_all(fetch_page)

        assert result == [0, 1, 2, 3]

    @pytest.mark.asyncio
    async def test_error_on_first_page_returns_empty(self, fetcher):
        async def fetch_page(*, page: int, per_page: int) -> Page[int]:
            raise GitHubAPIError("unauthorized", status_code=401)

        assert await fetcher.fetch_all(fetch_page, organization="acme") == []

    @pytest.mark.asyncio
    async def test_follows_next_page_cursor(self, fetcher):
        """The cursor comes from the response, not from counting pages."""
        requested: list[int] = []
        pages = {1: Page(items=["a"], next_page=5), 5: Page(items=["b"])}

        async def fetch_page(*, page: int, per_page: int) -> Page[str]:
            requested.append(page)
            return pages[page]

        assert await fetcher.fetch_all(fetch_page) == ["a", "b"]
        assert requested == [1, 5]
