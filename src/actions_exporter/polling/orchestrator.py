"""
Polling orchestrator for the GitHub Actions exporter.

This module wires the pollers to the shared client and their gauges and runs
each of them, plus the workflow catalog refresher, as an independent task.
"""

import asyncio

import structlog

from ..config import Settings
from ..github_client import GitHubClient
from .metrics import ExporterMetrics
from .paginator import PaginatedFetcher
from .rate_limiter import RateLimitBackoff
from .runners import OrganizationRunnersPoller
from .workflows import WorkflowCatalog, WorkflowRunsPoller

logger = structlog.get_logger(__name__)


class PollingOrchestrator:
    """
    Owns the background polling tasks.

    Pollers share only the client; every gauge is written by a single
    poller, so no locking is needed between them.
    """

    def __init__(
        self,
        github_client: GitHubClient,
        metrics: ExporterMetrics,
        settings: Settings,
        backoff: RateLimitBackoff | None = None,
    ):
        """
        Initialize the polling orchestrator.

        Args:
            github_client: Shared GitHub API client
            metrics: Gauges to publish into
            settings: Application settings
            backoff: Rate limit policy shared by every fetch
        """
        self.github_client = github_client
        self.metrics = metrics
        self.settings = settings
        self.config = settings.polling_config

        self.fetcher = PaginatedFetcher(
            backoff or RateLimitBackoff(), per_page=self.config.per_page
        )
        self.catalog = WorkflowCatalog(
            github_client,
            self.fetcher,
            organizations=settings.organizations,
            repositories=settings.repositories,
            interval_seconds=self.config.catalog_refresh_seconds,
        )
        self.runners_poller = OrganizationRunnersPoller(
            github_client,
            self.fetcher,
            organizations=settings.organizations,
            sink=metrics.runner_organization_status,
            interval_seconds=self.config.interval_seconds,
        )
        self.workflow_runs_poller = WorkflowRunsPoller(
            github_client,
            self.fetcher,
            self.catalog,
            workflow_fields=settings.workflow_label_fields,
            run_status_sink=metrics.workflow_run_status,
            run_duration_sink=metrics.workflow_run_duration,
            job_total_sink=metrics.workflow_job_total,
            job_completed_sink=metrics.workflow_job_completed,
            interval_seconds=self.config.interval_seconds,
            lookback_hours=self.config.workflow_runs_lookback_hours,
            collect_jobs=self.config.collect_workflow_jobs,
        )
        self.tasks: list[asyncio.Task[None]] = []

    def is_running(self) -> bool:
        """Check if polling tasks are active."""
        return any(not task.done() for task in self.tasks)

    def start(self) -> None:
        """Start the catalog refresher and every poller."""
        if self.is_running():
            logger.warning("Polling already running")
            return

        logger.info(
            "Starting polling orchestrator",
            organizations=self.settings.organizations,
            repositories=self.settings.repositories,
            interval_seconds=self.config.interval_seconds,
        )
        self.tasks = [
            asyncio.create_task(self.catalog.run_forever(), name="workflow_catalog"),
            asyncio.create_task(
                self.runners_poller.run_forever(), name=self.runners_poller.name
            ),
            asyncio.create_task(
                self.workflow_runs_poller.run_forever(),
                name=self.workflow_runs_poller.name,
            ),
        ]

    async def stop(self) -> None:
        """Cancel every polling task and wait for them to finish."""
        if not self.tasks:
            return

        logger.info("Stopping polling orchestrator")
        for task in self.tasks:
            task.cancel()
        await asyncio.gather(*self.tasks, return_exceptions=True)
        self.tasks = []
