"""
Organization runners poller.

Publishes the status of every self-hosted runner registered to the
configured organizations.
"""

import asyncio
from collections.abc import Awaitable, Callable
from functools import partial

import structlog

from ..github_client import GitHubClient
from ..models import Runner
from .base import Poller
from .metrics import RUNNER_ORGANIZATION_STATUS
from .paginator import PaginatedFetcher
from .sink import LabelTuple, Snapshot, SnapshotGauge

logger = structlog.get_logger(__name__)

RUNNER_OFFLINE = 0
RUNNER_IDLE = 1
RUNNER_ACTIVE = 2
RUNNER_UNKNOWN = -1


def runner_status_to_code(runner: Runner) -> int:
    """Map a runner's status and busy flag to its gauge value."""
    if runner.status == "offline":
        return RUNNER_OFFLINE
    if runner.status == "online":
        return RUNNER_ACTIVE if runner.busy else RUNNER_IDLE

    logger.warning("Unknown runner status", status=runner.status, runner=runner.name)
    return RUNNER_UNKNOWN


def runner_label_tuple(organization: str, runner: Runner) -> LabelTuple:
    return (organization, runner.os, runner.name, str(runner.id), runner.labels_str)


class OrganizationRunnersPoller(Poller):
    """Poller for runners registered at organization level."""

    name = "organization_runners"

    def __init__(
        self,
        client: GitHubClient,
        fetcher: PaginatedFetcher,
        organizations: list[str],
        sink: SnapshotGauge,
        interval_seconds: float,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        super().__init__(
            {RUNNER_ORGANIZATION_STATUS: sink}, interval_seconds, sleep=sleep
        )
        self.client = client
        self.fetcher = fetcher
        self.organizations = list(organizations)

    async def collect(self) -> dict[str, Snapshot]:
        snapshot: Snapshot = {}
        for organization in self.organizations:
            runners = await self.fetcher.fetch_all(
                partial(self.client.list_organization_runners, organization),
                organization=organization,
            )
            for runner in runners:
                labels = runner_label_tuple(organization, runner)
                snapshot[labels] = runner_status_to_code(runner)

        return {RUNNER_ORGANIZATION_STATUS: snapshot}
