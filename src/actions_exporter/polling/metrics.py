"""
Gauge definitions exported by the pollers.

Metric names and label schemas are consumed by dashboards and alerts;
renaming or reordering labels is a breaking change.
"""

from collections.abc import Sequence
from dataclasses import dataclass

from prometheus_client import CollectorRegistry

from .sink import PrometheusSnapshotGauge, SnapshotGauge

RUNNER_ORGANIZATION_STATUS = "github_tr_runner_organization_current_status"
RUNNER_ORGANIZATION_LABELS = ("organization", "os", "name", "id", "all_labels")

WORKFLOW_RUN_STATUS = "github_workflow_run_status_v2"
WORKFLOW_RUN_DURATION = "github_workflow_run_duration_ms"

WORKFLOW_JOB_TOTAL = "github_workflow_job_total"
WORKFLOW_JOB_TOTAL_LABELS = (
    "id",
    "name",
    "labels_str",
    "runner_id",
    "runner_name",
    "status",
    "conclusion",
)

WORKFLOW_JOB_COMPLETED = "github_workflow_job_completed_v1"
WORKFLOW_JOB_COMPLETED_LABELS = ("id", "name", "labels_str", "runner_name")


@dataclass
class ExporterMetrics:
    """All gauges of the exporter, each owned by exactly one poller."""

    runner_organization_status: SnapshotGauge
    workflow_run_status: SnapshotGauge
    workflow_run_duration: SnapshotGauge
    workflow_job_total: SnapshotGauge
    workflow_job_completed: SnapshotGauge

    @classmethod
    def create(
        cls, registry: CollectorRegistry, workflow_fields: Sequence[str]
    ) -> "ExporterMetrics":
        """
        Register every gauge on ``registry``.

        Args:
            registry: Registry served on the metrics endpoint
            workflow_fields: Label names of the workflow run gauges
        """
        return cls(
            runner_organization_status=PrometheusSnapshotGauge(
                RUNNER_ORGANIZATION_STATUS,
                "runner status: 0: offline; 1: idle; 2: active; -1: unknown",
                RUNNER_ORGANIZATION_LABELS,
                registry=registry,
            ),
            workflow_run_status=PrometheusSnapshotGauge(
                WORKFLOW_RUN_STATUS,
                "Current workflow run status: 1-4: completed,in_progress,queued,pending",
                workflow_fields,
                registry=registry,
            ),
            workflow_run_duration=PrometheusSnapshotGauge(
                WORKFLOW_RUN_DURATION,
                "Workflow run duration (in milliseconds) of all workflow runs "
                "created in the lookback window",
                workflow_fields,
                registry=registry,
            ),
            workflow_job_total=PrometheusSnapshotGauge(
                WORKFLOW_JOB_TOTAL,
                "Total number of workflow jobs for all workflow runs scanned",
                WORKFLOW_JOB_TOTAL_LABELS,
                registry=registry,
            ),
            workflow_job_completed=PrometheusSnapshotGauge(
                WORKFLOW_JOB_COMPLETED,
                "Completed workflow job status; "
                "0: failed; 1: success; 2: cancelled; 3: skipped; -1: unknown",
                WORKFLOW_JOB_COMPLETED_LABELS,
                registry=registry,
            ),
        )
