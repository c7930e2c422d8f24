"""
Custom exceptions for the GitHub Actions exporter.

This module defines the exception hierarchy shared by the client factory,
the paginated fetcher and the pollers.
"""

from typing import Any


class ExporterError(Exception):
    """Base exception for GitHub Actions exporter errors."""

    def __init__(
        self,
        message: str,
        code: str | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.code = code or "EXPORTER_ERROR"
        self.context = context or {}


class GitHubAPIError(ExporterError):
    """Exception for GitHub API related errors."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message, "GITHUB_API_ERROR", context)
        self.status_code = status_code


class AuthenticationError(GitHubAPIError):
    """Exception for installation token exchange failures."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message, status_code, context)
        self.code = "AUTHENTICATION_ERROR"


class RateLimitError(ExporterError):
    """Exception for rate limit related errors."""

    def __init__(
        self,
        message: str,
        reset_time: float,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message, "RATE_LIMIT_ERROR", context)
        self.reset_time = reset_time


class ClientConstructionError(ExporterError):
    """Exception for a GitHub client that cannot be built from configuration."""

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message, "CLIENT_CONSTRUCTION_ERROR", context)
