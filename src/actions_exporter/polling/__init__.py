"""
Polling system for the GitHub Actions exporter.

This package contains the collection engine: paginated rate-limited fetching,
snapshot gauge sinks, and one poller per tracked resource kind.
"""

from .orchestrator import PollingOrchestrator
from .paginator import PaginatedFetcher
from .rate_limiter import RateLimitBackoff
from .runners import OrganizationRunnersPoller
from .workflows import WorkflowCatalog, WorkflowRunsPoller

__all__ = [
    "OrganizationRunnersPoller",
    "PaginatedFetcher",
    "PollingOrchestrator",
    "RateLimitBackoff",
    "WorkflowCatalog",
    "WorkflowRunsPoller",
]
