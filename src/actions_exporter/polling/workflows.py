"""
Workflow catalog refresher and workflow runs poller.

The catalog resolves the repositories to watch and caches their workflow
definitions, so runs can be labeled with their workflow name. The runs
poller waits for the first catalog refresh before its first cycle; labeling
against an empty catalog would publish series with blank workflow names.
"""

import asyncio
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta, timezone
from functools import partial

import structlog

from ..exceptions import GitHubAPIError, RateLimitError
from ..github_client import GitHubClient
from ..models import Workflow, WorkflowJob, WorkflowRun
from .base import Poller
from .metrics import (
    WORKFLOW_JOB_COMPLETED,
    WORKFLOW_JOB_TOTAL,
    WORKFLOW_RUN_DURATION,
    WORKFLOW_RUN_STATUS,
)
from .paginator import PaginatedFetcher
from .sink import LabelTuple, Snapshot, SnapshotGauge

logger = structlog.get_logger(__name__)

UNKNOWN = -1

WORKFLOW_RUN_STATUS_CODES = {
    "completed": 1,
    "in_progress": 2,
    "queued": 3,
    "pending": 4,
}

WORKFLOW_JOB_CONCLUSION_CODES = {
    "failure": 0,
    "success": 1,
    "cancelled": 2,
    "skipped": 3,
}


def workflow_run_status_to_code(run: WorkflowRun) -> int:
    """Map a workflow run status to its gauge value."""
    code = WORKFLOW_RUN_STATUS_CODES.get(run.status or "")
    if code is None:
        logger.warning("Unknown workflow run status", status=run.status, run_id=run.id)
        return UNKNOWN
    return code


def workflow_job_conclusion_to_code(job: WorkflowJob) -> int:
    """Map a completed job's conclusion to its gauge value."""
    code = WORKFLOW_JOB_CONCLUSION_CODES.get(job.conclusion or "")
    if code is None:
        logger.warning(
            "Unknown workflow job conclusion", conclusion=job.conclusion, job_id=job.id
        )
        return UNKNOWN
    return code


def _label(value: object) -> str:
    return "" if value is None else str(value)


class WorkflowCatalog:
    """
    Repositories to watch and their workflow definitions.

    ``ready`` is set after the first refresh, whatever its outcome, so
    dependent pollers never block on a failing API.
    """

    def __init__(
        self,
        client: GitHubClient,
        fetcher: PaginatedFetcher,
        organizations: list[str],
        repositories: list[str],
        interval_seconds: float,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.client = client
        self.fetcher = fetcher
        self.organizations = list(organizations)
        self.configured_repositories = list(repositories)
        self.interval_seconds = interval_seconds
        self.ready = asyncio.Event()
        self._sleep = sleep
        self._workflows: dict[str, dict[int, Workflow]] = {}

    @property
    def repositories(self) -> list[str]:
        return list(self._workflows)

    def workflow_name(self, repository: str, workflow_id: int) -> str:
        """Name of a workflow, or an empty string if it is not cataloged."""
        workflow = self._workflows.get(repository, {}).get(workflow_id)
        return workflow.name if workflow else ""

    async def _resolve_repositories(self) -> list[str]:
        if self.configured_repositories:
            return self.configured_repositories

        repositories: list[str] = []
        for organization in self.organizations:
            repos = await self.fetcher.fetch_all(
                partial(self.client.list_organization_repositories, organization),
                organization=organization,
            )
            repositories.extend(repo.full_name for repo in repos if not repo.archived)
        return repositories

    async def refresh(self) -> None:
        """Rebuild the catalog and swap it in as a whole."""
        catalog: dict[str, dict[int, Workflow]] = {}
        for repository in await self._resolve_repositories():
            workflows = await self.fetcher.fetch_all(
                partial(self.client.list_repository_workflows, repository),
                repository=repository,
            )
            catalog[repository] = {workflow.id: workflow for workflow in workflows}

        self._workflows = catalog
        logger.info(
            "Workflow catalog refreshed",
            repositories=len(catalog),
            workflows=sum(len(workflows) for workflows in catalog.values()),
        )

    async def run_forever(self) -> None:
        """Refresh until cancelled."""
        while True:
            try:
                await self.refresh()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error("Workflow catalog refresh failed", error=str(e))
            finally:
                self.ready.set()
            await self._sleep(self.interval_seconds)


class WorkflowRunsPoller(Poller):
    """
    Poller for recent workflow runs and their jobs.

    Publishes run status and duration keyed by the configured workflow
    fields, and, when enabled, one series per job plus the conclusion of
    completed jobs.
    """

    name = "workflow_runs"

    def __init__(
        self,
        client: GitHubClient,
        fetcher: PaginatedFetcher,
        catalog: WorkflowCatalog,
        workflow_fields: list[str],
        run_status_sink: SnapshotGauge,
        run_duration_sink: SnapshotGauge,
        job_total_sink: SnapshotGauge,
        job_completed_sink: SnapshotGauge,
        interval_seconds: float,
        lookback_hours: int = 12,
        collect_jobs: bool = True,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        sinks = {
            WORKFLOW_RUN_STATUS: run_status_sink,
            WORKFLOW_RUN_DURATION: run_duration_sink,
        }
        if collect_jobs:
            sinks[WORKFLOW_JOB_TOTAL] = job_total_sink
            sinks[WORKFLOW_JOB_COMPLETED] = job_completed_sink
        super().__init__(sinks, interval_seconds, ready=catalog.ready, sleep=sleep)

        self.client = client
        self.fetcher = fetcher
        self.catalog = catalog
        self.workflow_fields = list(workflow_fields)
        self.lookback = timedelta(hours=lookback_hours)
        self.collect_jobs = collect_jobs
        self._clock = clock

    def run_label_tuple(self, repository: str, run: WorkflowRun) -> LabelTuple:
        """Resolve the configured workflow fields for one run."""
        values = []
        for field in self.workflow_fields:
            if field == "repo":
                values.append(repository)
            elif field == "workflow":
                values.append(self.catalog.workflow_name(repository, run.workflow_id))
            else:
                values.append(_label(run.field_value(field)))
        return tuple(values)

    async def _run_duration(self, repository: str, run: WorkflowRun) -> int | None:
        while True:
            try:
                timing = await self.client.get_workflow_run_timing(repository, run.id)
                return timing.run_duration_ms
            except RateLimitError as e:
                await self.fetcher.backoff.wait_until(
                    e.reset_time, repository=repository
                )
            except GitHubAPIError as e:
                logger.error(
                    "Failed to get workflow run timing",
                    repository=repository,
                    run_id=run.id,
                    error=str(e),
                )
                return None

    def _add_jobs(
        self, jobs: list[WorkflowJob], total: Snapshot, completed: Snapshot
    ) -> None:
        for job in jobs:
            total[
                (
                    str(job.id),
                    job.name,
                    job.labels_str,
                    _label(job.runner_id),
                    _label(job.runner_name),
                    _label(job.status),
                    _label(job.conclusion),
                )
            ] = 1
            if job.status == "completed":
                completed[
                    (str(job.id), job.name, job.labels_str, _label(job.runner_name))
                ] = workflow_job_conclusion_to_code(job)

    async def collect(self) -> dict[str, Snapshot]:
        created_since = self._clock() - self.lookback
        created = f">={created_since.strftime('%Y-%m-%dT%H:%M:%SZ')}"

        status: Snapshot = {}
        duration: Snapshot = {}
        job_total: Snapshot = {}
        job_completed: Snapshot = {}

        for repository in self.catalog.repositories:
            runs = await self.fetcher.fetch_all(
                partial(self.client.list_workflow_runs, repository, created=created),
                repository=repository,
            )
            for run in runs:
                labels = self.run_label_tuple(repository, run)
                status[labels] = workflow_run_status_to_code(run)

                run_duration = await self._run_duration(repository, run)
                if run_duration is not None:
                    duration[labels] = run_duration

                if self.collect_jobs:
                    jobs = await self.fetcher.fetch_all(
                        partial(self.client.list_workflow_jobs, repository, run.id),
                        repository=repository,
                        run_id=str(run.id),
                    )
                    self._add_jobs(jobs, job_total, job_completed)

        return {
            WORKFLOW_RUN_STATUS: status,
            WORKFLOW_RUN_DURATION: duration,
            WORKFLOW_JOB_TOTAL: job_total,
            WORKFLOW_JOB_COMPLETED: job_completed,
        }
