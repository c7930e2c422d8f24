"""
Pytest configuration and fixtures for GitHub Actions exporter tests.
"""

from collections.abc import Sequence
from typing import Any
from unittest.mock import AsyncMock

import pytest

from actions_exporter.config import Settings
from actions_exporter.github_client import GitHubClient
from actions_exporter.models import Page, Runner
from actions_exporter.polling.paginator import PaginatedFetcher
from actions_exporter.polling.rate_limiter import RateLimitBackoff


class FakeSnapshotGauge:
    """
    In-memory spy implementing the SnapshotGauge protocol.

    Usage:
        gauge = FakeSnapshotGauge("runners", ("organization",))
        gauge.set(("acme",), 1)
        assert gauge.values == {("acme",): 1}
    """

    def __init__(self, name: str = "fake", labelnames: Sequence[str] = ()) -> None:
        self.name = name
        self.labelnames = tuple(labelnames)
        self.values: dict[tuple[str, ...], float] = {}
        self.reset_count = 0
        self.set_count = 0

    def set(self, labels: Sequence[str], value: float) -> None:
        self.values[tuple(labels)] = value
        self.set_count += 1

    def reset_all(self) -> None:
        self.values.clear()
        self.reset_count += 1


class FakeSleep:
    """Async sleep that records requested delays instead of blocking."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)

    @property
    def total(self) -> float:
        return sum(self.calls)


def _make_runner(**overrides: Any) -> Runner:
    """Build a runner record as returned by the API."""
    data: dict[str, Any] = {
        "id": 1,
        "name": "r1",
        "os": "linux",
        "status": "online",
        "busy": False,
        "labels": [{"name": "self-hosted"}, {"name": "linux"}],
    }
    data.update(overrides)
    return Runner.model_validate(data)


def _paged(items: list[Any]):
    """Build a page function serving ``items`` with GitHub-style page numbers."""
    calls: list[int] = []

    async def fetch_page(*_args: Any, page: int, per_page: int, **_kwargs: Any) -> Page:
        calls.append(page)
        start = (page - 1) * per_page
        chunk = items[start : start + per_page]
        has_more = start + per_page < len(items)
        return Page(items=chunk, next_page=page + 1 if has_more else None)

    fetch_page.calls = calls  # type: ignore[attr-defined]
    return fetch_page


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch: pytest.MonkeyPatch, tmp_path: Any) -> None:
    """Keep the developer's environment and .env file out of Settings."""
    for name in Settings.model_fields:
        monkeypatch.delenv(name.upper(), raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def mock_settings() -> Settings:
    """Settings for testing."""
    return Settings(
        github_token="test-token",
        github_organizations="acme",
        github_refresh_seconds=30,
        github_cache_size_bytes=1024 * 1024,
        log_level="DEBUG",
    )


@pytest.fixture
def fake_sleep() -> FakeSleep:
    return FakeSleep()


@pytest.fixture
def fake_clock() -> Any:
    return lambda: 1_000.0


@pytest.fixture
def backoff(fake_clock: Any, fake_sleep: FakeSleep) -> RateLimitBackoff:
    return RateLimitBackoff(clock=fake_clock, sleep=fake_sleep)


@pytest.fixture
def fetcher(backoff: RateLimitBackoff) -> PaginatedFetcher:
    return PaginatedFetcher(backoff)


@pytest.fixture
def mock_github_client() -> AsyncMock:
    """Mock GitHub client for testing."""
    client = AsyncMock(spec=GitHubClient)
    client.list_organization_runners.side_effect = lambda *a, **kw: Page()
    client.list_organization_repositories.side_effect = lambda *a, **kw: Page()
    client.list_repository_workflows.side_effect = lambda *a, **kw: Page()
    client.list_workflow_runs.side_effect = lambda *a, **kw: Page()
    client.list_workflow_jobs.side_effect = lambda *a, **kw: Page()
    return client


@pytest.fixture
def make_runner() -> Any:
    return _make_runner


@pytest.fixture
def paged() -> Any:
    return _paged


@pytest.fixture
def fake_gauge() -> Any:
    """Factory for FakeSnapshotGauge instances."""
    return FakeSnapshotGauge
