"""
GitHub REST resource models consumed by the pollers.

Only the fields the exporter reads are declared; everything else in the API
payload is ignored, except for workflow runs whose extra fields stay
available for configurable label export.
"""

from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict

T = TypeVar("T")


class GitHubModel(BaseModel):
    """Base model for GitHub API payloads."""

    model_config = ConfigDict(extra="ignore")


class RunnerLabel(GitHubModel):
    name: str


class Runner(GitHubModel):
    """Self-hosted Actions runner."""

    id: int
    name: str
    os: str = ""
    status: str = ""
    busy: bool = False
    labels: list[RunnerLabel] = []

    @property
    def labels_str(self) -> str:
        """Comma-joined runner label names, in API order."""
        return ",".join(label.name for label in self.labels)


class Repository(GitHubModel):
    full_name: str
    archived: bool = False


class Workflow(GitHubModel):
    id: int
    name: str
    path: str = ""
    state: str = ""


class WorkflowRun(GitHubModel):
    """Workflow run; unknown fields are kept for label export."""

    model_config = ConfigDict(extra="allow")

    id: int
    workflow_id: int
    status: str | None = None
    conclusion: str | None = None

    def field_value(self, name: str) -> Any:
        """Look up a declared or extra field by name."""
        return self.model_dump().get(name)


class WorkflowJob(GitHubModel):
    id: int
    run_id: int
    name: str
    status: str | None = None
    conclusion: str | None = None
    labels: list[str] = []
    runner_id: int | None = None
    runner_name: str | None = None

    @property
    def labels_str(self) -> str:
        return ",".join(self.labels)


class WorkflowRunTiming(GitHubModel):
    run_duration_ms: int | None = None


@dataclass
class Page(Generic[T]):
    """One page of a list endpoint."""

    items: list[T] = field(default_factory=list)
    next_page: int | None = None
