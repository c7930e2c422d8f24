"""
GitHub Actions Exporter

Publishes the live state of self-hosted GitHub Actions runners and recent
workflow runs as Prometheus gauges.
"""

__version__ = "0.1.0"

from .config import Settings
from .exceptions import ExporterError
from .github_client import GitHubClient, create_github_client

__all__ = [
    "Settings",
    "GitHubClient",
    "ExporterError",
    "create_github_client",
]
