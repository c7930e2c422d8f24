"""
Configuration management for the GitHub Actions exporter.

This module handles environment variables, settings validation, and configuration
management using Pydantic Settings for type safety and validation.
"""

from typing import Any

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_WORKFLOW_FIELDS = (
    "repo,id,node_id,head_branch,head_sha,run_number,workflow_id,workflow,event,status"
)


class GitHubAppConfig(BaseModel):
    """GitHub App installation credentials."""

    app_id: int = Field(..., description="GitHub App ID")
    installation_id: int = Field(..., description="GitHub App installation ID")
    private_key_path: str = Field(..., description="Path to GitHub App private key")


class ServerConfig(BaseModel):
    """Metrics server configuration settings."""

    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=9999, description="Server port")


class PollingConfig(BaseModel):
    """Polling configuration settings."""

    interval_seconds: int = Field(default=30, description="Poll interval in seconds")
    per_page: int = Field(default=100, description="Page size for list requests")
    workflow_runs_lookback_hours: int = Field(
        default=12, description="Age window of workflow runs to report"
    )
    collect_workflow_jobs: bool = Field(
        default=True, description="Publish per-job gauges for workflow runs"
    )
    catalog_refresh_seconds: int = Field(
        default=300, description="Workflow catalog refresh interval in seconds"
    )


def _split_list(value: Any, field_name: str) -> list[str]:
    if isinstance(value, str):
        if not value.strip():
            return []
        return [item.strip() for item in value.split(",") if item.strip()]
    elif isinstance(value, list):
        return [str(item) for item in value]
    elif isinstance(value, (int, float)):
        # JSON decoding turns a lone numeric name such as "1234" into a number
        return [str(value)]
    else:
        raise ValueError(f"{field_name} must be a string or list, got {type(value)}")


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # GitHub credentials (token takes precedence over the App credentials)
    github_token: str = Field(default="", description="GitHub access token")
    github_app_id: int = Field(default=0, description="GitHub App ID")
    github_app_installation_id: int = Field(
        default=0, description="GitHub App installation ID"
    )
    github_app_private_key_path: str = Field(
        default="", description="GitHub App private key path"
    )
    github_api_url: str = Field(
        default="https://api.github.com",
        description="GitHub API URL (GitHub Enterprise Server base URL allowed)",
    )

    # Targets
    github_organizations: str | list[str] = Field(
        default="", description="Organizations to monitor (comma-separated)"
    )
    github_repositories: str | list[str] = Field(
        default="",
        description="Repositories to monitor for workflow runs "
        "(comma-separated owner/repo). "
        "If empty, all repositories of the organizations are monitored.",
    )

    # Collection
    github_refresh_seconds: int = Field(
        default=30, gt=0, description="Poll interval in seconds"
    )
    github_cache_size_bytes: int = Field(
        default=100 * 1024 * 1024, ge=0, description="HTTP response cache size"
    )
    github_per_page: int = Field(
        default=100, ge=1, le=100, description="Page size for list requests"
    )
    github_request_timeout_seconds: float = Field(
        default=30.0, gt=0, description="HTTP request timeout"
    )
    workflow_fields: str | list[str] = Field(
        default=DEFAULT_WORKFLOW_FIELDS,
        description="Workflow run fields exported as labels (comma-separated)",
    )
    workflow_runs_lookback_hours: int = Field(
        default=12, gt=0, description="Age window of workflow runs to report"
    )
    collect_workflow_jobs: bool = Field(
        default=True, description="Publish per-job gauges for workflow runs"
    )
    workflow_catalog_refresh_seconds: int = Field(
        default=300, gt=0, description="Workflow catalog refresh interval"
    )

    # Server configuration
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=9999, description="Server port")

    # Logging configuration
    log_level: str = Field(default="INFO", description="Log level")
    log_format: str = Field(default="json", description="Log format")

    @field_validator("github_organizations", mode="before")
    @classmethod
    def parse_organizations(cls, v: Any) -> list[str]:
        """Parse organizations from comma-separated string or list."""
        return _split_list(v, "github_organizations")

    @field_validator("github_repositories", mode="before")
    @classmethod
    def parse_repositories(cls, v: Any) -> list[str]:
        """Parse repositories from comma-separated string or list."""
        return _split_list(v, "github_repositories")

    @field_validator("github_repositories")
    @classmethod
    def validate_repositories(cls, v: list[str]) -> list[str]:
        """Validate repositories use the owner/repo format."""
        for repo in v:
            owner, _, name = repo.partition("/")
            if not owner or not name or "/" in name:
                raise ValueError(f"Invalid repository name: {repo}")
        return v

    @field_validator("workflow_fields", mode="before")
    @classmethod
    def parse_workflow_fields(cls, v: Any) -> list[str]:
        """Parse workflow label fields from comma-separated string or list."""
        return _split_list(v, "workflow_fields")

    @field_validator("workflow_fields")
    @classmethod
    def validate_workflow_fields(cls, v: list[str]) -> list[str]:
        """Validate workflow label fields."""
        if not v:
            raise ValueError("workflow_fields must name at least one field")
        if len(set(v)) != len(v):
            raise ValueError(f"Duplicate workflow fields: {','.join(v)}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        allowed_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in allowed_levels:
            raise ValueError(f"Invalid log level: {v}")
        return v.upper()

    @property
    def organizations(self) -> list[str]:
        """Configured organizations as a list."""
        return _split_list(self.github_organizations, "github_organizations")

    @property
    def repositories(self) -> list[str]:
        """Configured repositories as a list."""
        return _split_list(self.github_repositories, "github_repositories")

    @property
    def workflow_label_fields(self) -> list[str]:
        """Workflow run label names, in export order."""
        return _split_list(self.workflow_fields, "workflow_fields")

    @property
    def has_app_credentials(self) -> bool:
        """Check whether a complete set of GitHub App credentials is configured."""
        return bool(
            self.github_app_id
            and self.github_app_installation_id
            and self.github_app_private_key_path
        )

    @property
    def credential_mode(self) -> str | None:
        """
        Resolve the credential mode.

        A non-empty token always wins, even when App credentials are also
        configured.

        Returns:
            "token", "app", or None when nothing usable is configured
        """
        if self.github_token:
            return "token"
        if self.has_app_credentials:
            return "app"
        return None

    @property
    def github_app_config(self) -> GitHubAppConfig:
        """Get GitHub App configuration."""
        return GitHubAppConfig(
            app_id=self.github_app_id,
            installation_id=self.github_app_installation_id,
            private_key_path=self.github_app_private_key_path,
        )

    @property
    def server_config(self) -> ServerConfig:
        """Get server configuration."""
        return ServerConfig(host=self.host, port=self.port)

    @property
    def polling_config(self) -> PollingConfig:
        """Get polling configuration."""
        return PollingConfig(
            interval_seconds=self.github_refresh_seconds,
            per_page=self.github_per_page,
            workflow_runs_lookback_hours=self.workflow_runs_lookback_hours,
            collect_workflow_jobs=self.collect_workflow_jobs,
            catalog_refresh_seconds=self.workflow_catalog_refresh_seconds,
        )


# Global settings instance - initialized lazily to avoid import-time errors
_settings_instance = None


def get_settings() -> Settings:
    """Get the global settings instance, creating it if necessary."""
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = Settings()
    return _settings_instance
