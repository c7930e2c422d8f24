"""
GitHub API client for the GitHub Actions exporter.

This module builds the single long-lived client shared by all pollers:
token or GitHub App installation authentication, GitHub Enterprise Server
URL handling, a caching transport, and rate-limit aware error mapping for
the Actions list endpoints.
"""

import time
from collections.abc import Callable, Generator
from datetime import datetime
from pathlib import Path
from typing import Any, TypeVar

import httpx
import jwt
import structlog
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.types import PrivateKeyTypes
from pydantic import BaseModel

from .config import Settings
from .exceptions import (
    AuthenticationError,
    ClientConstructionError,
    GitHubAPIError,
    RateLimitError,
)
from .http_cache import CachingTransport, LRUByteCache
from .models import (
    Page,
    Repository,
    Runner,
    Workflow,
    WorkflowJob,
    WorkflowRun,
    WorkflowRunTiming,
)

logger = structlog.get_logger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

DEFAULT_HEADERS = {
    "Accept": "application/vnd.github+json",
    "X-GitHub-Api-Version": "2022-11-28",
    "User-Agent": "github-actions-exporter",
}

# Fallback pause when GitHub rejects a request without saying for how long.
SECONDARY_RATE_LIMIT_SECONDS = 60


def enterprise_api_url(base_url: str) -> str:
    """
    Derive the REST API root from a GitHub base URL.

    A bare host is treated as https. ``api/v3`` is appended unless the host is
    already an API host (``api.`` prefix or ``.api.`` infix) or the path
    already ends with it.

    Args:
        base_url: Configured GitHub (Enterprise Server) URL

    Returns:
        API root without a trailing slash

    Raises:
        ClientConstructionError: If the URL cannot be used as an API root
    """
    raw = base_url.strip()
    if "://" not in raw:
        raw = f"https://{raw}"

    try:
        url = httpx.URL(raw)
    except httpx.InvalidURL as e:
        raise ClientConstructionError(
            f"Invalid GitHub API URL: {base_url!r}", context={"url": base_url}
        ) from e

    if url.scheme not in ("http", "https") or not url.host:
        raise ClientConstructionError(
            f"Invalid GitHub API URL: {base_url!r}", context={"url": base_url}
        )

    path = url.path
    if not path.endswith("/"):
        path += "/"
    host = url.host
    if (
        not path.endswith("/api/v3/")
        and not host.startswith("api.")
        and ".api." not in host
    ):
        path += "api/v3/"

    # No trailing slash, otherwise token URLs get a double slash
    netloc = url.netloc.decode("ascii")
    return f"{url.scheme}://{netloc}{path.rstrip('/')}"


def load_private_key(private_key_path: str) -> PrivateKeyTypes:
    """Read and parse a PEM encoded GitHub App private key."""
    try:
        data = Path(private_key_path).read_bytes()
    except OSError as e:
        raise ClientConstructionError(
            f"Failed to read GitHub App private key {private_key_path}: {e}",
            context={"path": private_key_path},
        ) from e

    try:
        return serialization.load_pem_private_key(data, password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise ClientConstructionError(
            f"Invalid GitHub App private key {private_key_path}: {e}",
            context={"path": private_key_path},
        ) from e


def rate_limit_reset(
    response: httpx.Response, clock: Callable[[], float] = time.time
) -> float | None:
    """Return the reset instant if the response is a rate-limit rejection."""
    if response.status_code not in (403, 429):
        return None

    retry_after = response.headers.get("retry-after")
    if retry_after is not None and retry_after.isdigit():
        return clock() + int(retry_after)

    if response.headers.get("x-ratelimit-remaining") == "0":
        reset = response.headers.get("x-ratelimit-reset", "")
        if reset.isdigit():
            return float(reset)
        return clock() + SECONDARY_RATE_LIMIT_SECONDS

    if response.status_code == 429:
        return clock() + SECONDARY_RATE_LIMIT_SECONDS
    return None


class TokenAuth(httpx.Auth):
    """Static access token authentication."""

    def __init__(self, token: str) -> None:
        self._token = token

    def auth_flow(
        self, request: httpx.Request
    ) -> Generator[httpx.Request, httpx.Response, None]:
        request.headers["Authorization"] = f"Bearer {self._token}"
        yield request


class GitHubAppAuth(httpx.Auth):
    """
    GitHub App installation authentication.

    Requests are signed with an installation access token, exchanged for a
    short-lived App JWT whenever the cached token is missing or about to
    expire.
    """

    requires_response_body = True

    def __init__(
        self,
        app_id: int,
        installation_id: int,
        private_key: PrivateKeyTypes,
        api_url: str,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.app_id = app_id
        self.installation_id = installation_id
        self.api_url = api_url
        self._private_key = private_key
        self._clock = clock
        self._token: str | None = None
        self._expires_at = 0.0

    def _create_jwt_token(self) -> str:
        """Create JWT token for GitHub App authentication."""
        now = int(self._clock())
        payload = {
            "iat": now - 60,  # allow for clock drift
            "exp": now + 540,  # 9 minutes, GitHub caps at 10
            "iss": str(self.app_id),
        }
        return jwt.encode(payload, self._private_key, algorithm="RS256")

    def _token_request(self) -> httpx.Request:
        return httpx.Request(
            "POST",
            f"{self.api_url}/app/installations/{self.installation_id}/access_tokens",
            headers={
                **DEFAULT_HEADERS,
                "Authorization": f"Bearer {self._create_jwt_token()}",
            },
        )

    def _store_token(self, response: httpx.Response) -> None:
        reset_time = rate_limit_reset(response, self._clock)
        if reset_time is not None:
            raise RateLimitError(
                "Rate limit exceeded for installation token exchange",
                reset_time=reset_time,
                context={"installation_id": self.installation_id},
            )

        if response.status_code != 201:
            raise AuthenticationError(
                f"Failed to get installation access token: {response.text}",
                status_code=response.status_code,
                context={"installation_id": self.installation_id},
            )

        try:
            payload = response.json()
            token = payload["token"]
            expires_at = datetime.fromisoformat(
                payload["expires_at"].replace("Z", "+00:00")
            )
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise AuthenticationError(
                f"Invalid installation access token response: {e}",
                status_code=response.status_code,
            ) from e

        self._token = token
        # Refresh a minute early so in-flight requests never carry a dead token
        self._expires_at = expires_at.timestamp() - 60
        logger.info(
            "GitHub App installation token refreshed",
            installation_id=self.installation_id,
            expires_at=expires_at.isoformat(),
        )

    def auth_flow(
        self, request: httpx.Request
    ) -> Generator[httpx.Request, httpx.Response, None]:
        if self._token is None or self._clock() >= self._expires_at:
            token_response = yield self._token_request()
            self._store_token(token_response)

        request.headers["Authorization"] = f"Bearer {self._token}"
        yield request


def _next_page(response: httpx.Response) -> int | None:
    """Extract the next page number from the Link header."""
    next_url = response.links.get("next", {}).get("url")
    if not next_url:
        return None
    page = httpx.URL(next_url).params.get("page")
    if page is None or not page.isdigit():
        return None
    return int(page)


class GitHubClient:
    """
    GitHub Actions REST client.

    List methods return a single Page and raise RateLimitError or
    GitHubAPIError; pagination and retries belong to the caller.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        api_url: str,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """
        Initialize the GitHub client.

        Args:
            http: Authenticated httpx client rooted at the API URL
            api_url: REST API root
            clock: Time source for relative rate-limit waits
        """
        self._http = http
        self.api_url = api_url
        self._clock = clock

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _get(self, path: str, params: dict[str, Any] | None = None) -> httpx.Response:
        try:
            response = await self._http.get(path, params=params)
        except httpx.HTTPError as e:
            raise GitHubAPIError(
                f"Request to {path} failed: {e}", context={"path": path}
            ) from e

        if response.is_success:
            return response

        reset_time = rate_limit_reset(response, self._clock)
        if reset_time is not None:
            raise RateLimitError(
                f"Rate limit exceeded for {path}",
                reset_time=reset_time,
                context={"path": path},
            )

        raise GitHubAPIError(
            f"GET {path} returned {response.status_code}: {response.text[:200]}",
            status_code=response.status_code,
            context={"path": path},
        )

    async def _get_page(
        self,
        path: str,
        model: type[ModelT],
        *,
        page: int,
        per_page: int,
        key: str | None = None,
        params: dict[str, Any] | None = None,
    ) -> Page[ModelT]:
        query = {**(params or {}), "per_page": per_page, "page": page}
        response = await self._get(path, query)

        try:
            payload = response.json()
            raw_items = payload[key] if key else payload
            items = [model.model_validate(item) for item in raw_items]
        except (ValueError, KeyError, TypeError) as e:
            raise GitHubAPIError(
                f"Unexpected payload from {path}: {e}",
                status_code=response.status_code,
                context={"path": path},
            ) from e

        return Page(items=items, next_page=_next_page(response))

    async def list_organization_runners(
        self, org: str, *, page: int = 1, per_page: int = 100
    ) -> Page[Runner]:
        """List self-hosted runners registered to an organization."""
        return await self._get_page(
            f"/orgs/{org}/actions/runners",
            Runner,
            page=page,
            per_page=per_page,
            key="runners",
        )

    async def list_organization_repositories(
        self, org: str, *, page: int = 1, per_page: int = 100
    ) -> Page[Repository]:
        """List repositories of an organization."""
        return await self._get_page(
            f"/orgs/{org}/repos",
            Repository,
            page=page,
            per_page=per_page,
            params={"type": "all"},
        )

    async def list_repository_workflows(
        self, repo: str, *, page: int = 1, per_page: int = 100
    ) -> Page[Workflow]:
        """List workflow definitions of a repository (owner/repo)."""
        return await self._get_page(
            f"/repos/{repo}/actions/workflows",
            Workflow,
            page=page,
            per_page=per_page,
            key="workflows",
        )

    async def list_workflow_runs(
        self,
        repo: str,
        *,
        created: str | None = None,
        page: int = 1,
        per_page: int = 100,
    ) -> Page[WorkflowRun]:
        """
        List workflow runs of a repository.

        Args:
            repo: Repository full name (owner/repo)
            created: GitHub date filter, e.g. ``>=2024-01-01T00:00:00Z``
            page: Page number
            per_page: Page size

        Returns:
            One page of workflow runs
        """
        return await self._get_page(
            f"/repos/{repo}/actions/runs",
            WorkflowRun,
            page=page,
            per_page=per_page,
            key="workflow_runs",
            params={"created": created} if created else None,
        )

    async def list_workflow_jobs(
        self, repo: str, run_id: int, *, page: int = 1, per_page: int = 100
    ) -> Page[WorkflowJob]:
        """List jobs of a workflow run."""
        return await self._get_page(
            f"/repos/{repo}/actions/runs/{run_id}/jobs",
            WorkflowJob,
            page=page,
            per_page=per_page,
            key="jobs",
        )

    async def get_workflow_run_timing(self, repo: str, run_id: int) -> WorkflowRunTiming:
        """Get billable timing and total duration of a workflow run."""
        path = f"/repos/{repo}/actions/runs/{run_id}/timing"
        response = await self._get(path)
        try:
            return WorkflowRunTiming.model_validate(response.json())
        except ValueError as e:
            raise GitHubAPIError(
                f"Unexpected payload from {path}: {e}",
                status_code=response.status_code,
                context={"path": path},
            ) from e


def create_github_client(
    settings: Settings, transport: httpx.AsyncBaseTransport | None = None
) -> GitHubClient:
    """
    Build the process-wide GitHub client.

    A configured token takes precedence over GitHub App credentials; the App
    credentials are then ignored with a warning.

    Args:
        settings: Application settings
        transport: Network transport beneath the cache (tests inject one)

    Returns:
        Ready-to-use GitHub client

    Raises:
        ClientConstructionError: On a malformed API URL, missing credentials
            or unreadable private key
    """
    api_url = enterprise_api_url(settings.github_api_url)

    auth: httpx.Auth
    mode = settings.credential_mode
    if mode == "token":
        if settings.has_app_credentials:
            logger.warning(
                "Both token and GitHub App credentials configured, using token",
                app_id=settings.github_app_id,
            )
        auth = TokenAuth(settings.github_token)
    elif mode == "app":
        app_config = settings.github_app_config
        private_key = load_private_key(app_config.private_key_path)
        auth = GitHubAppAuth(
            app_id=app_config.app_id,
            installation_id=app_config.installation_id,
            private_key=private_key,
            api_url=api_url,
        )
    elif settings.github_app_id or settings.github_app_private_key_path:
        raise ClientConstructionError(
            "Incomplete GitHub App credentials: GITHUB_APP_ID, "
            "GITHUB_APP_INSTALLATION_ID and GITHUB_APP_PRIVATE_KEY_PATH are required"
        )
    else:
        raise ClientConstructionError(
            "No GitHub credentials configured: set GITHUB_TOKEN or GitHub App credentials"
        )

    cache = LRUByteCache(settings.github_cache_size_bytes)
    http = httpx.AsyncClient(
        base_url=api_url,
        auth=auth,
        headers=DEFAULT_HEADERS,
        timeout=settings.github_request_timeout_seconds,
        transport=CachingTransport(cache, transport),
    )

    logger.info(
        "GitHub client created",
        api_url=api_url,
        credential_mode=mode,
        cache_size_bytes=settings.github_cache_size_bytes,
    )
    return GitHubClient(http, api_url)
