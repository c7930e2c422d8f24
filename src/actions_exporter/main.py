"""
Main application entry point for the GitHub Actions exporter.

This module sets up the FastAPI application, configures logging, builds the
GitHub client and starts the pollers whose gauges are served on /metrics.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request, Response
from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, generate_latest

from . import __version__
from .config import Settings, get_settings
from .github_client import create_github_client
from .polling.metrics import ExporterMetrics
from .polling.orchestrator import PollingOrchestrator


def setup_logging(settings: Settings) -> None:
    """Configure structured logging."""
    logging.basicConfig(
        level=getattr(logging, settings.log_level), format="%(message)s"
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            (
                structlog.processors.JSONRenderer()
                if settings.log_format == "json"
                else structlog.dev.ConsoleRenderer()
            ),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    settings = get_settings()
    setup_logging(settings)
    logger = structlog.get_logger()

    logger.info("Starting GitHub Actions exporter")
    logger.info(
        "Configuration loaded",
        organizations=settings.organizations,
        repositories=settings.repositories,
        api_url=settings.github_api_url,
        refresh_seconds=settings.github_refresh_seconds,
    )

    # Construction errors are fatal: never serve metrics without a client
    github_client = create_github_client(settings)

    registry = CollectorRegistry()
    metrics = ExporterMetrics.create(registry, settings.workflow_label_fields)
    orchestrator = PollingOrchestrator(github_client, metrics, settings)

    app.state.registry = registry
    app.state.github_client = github_client
    app.state.orchestrator = orchestrator

    orchestrator.start()
    try:
        yield
    finally:
        logger.info("Shutting down GitHub Actions exporter")
        await orchestrator.stop()
        await github_client.aclose()


app = FastAPI(
    title="GitHub Actions Exporter",
    description="Prometheus exporter for GitHub Actions runners and workflow runs",
    version=__version__,
    lifespan=lifespan,
)


@app.get("/metrics")
async def metrics(request: Request) -> Response:
    """Prometheus scrape endpoint."""
    # Served on the event loop, so it never interleaves with a snapshot write
    registry: CollectorRegistry = request.app.state.registry
    return Response(content=generate_latest(registry), media_type=CONTENT_TYPE_LATEST)


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy"}


def main() -> None:
    """Main entry point."""
    import uvicorn

    settings = get_settings()
    setup_logging(settings)
    logger = structlog.get_logger()
    server_config = settings.server_config

    logger.info("Starting server", host=server_config.host, port=server_config.port)

    uvicorn.run(
        "actions_exporter.main:app",
        host=server_config.host,
        port=server_config.port,
        log_config=None,  # We handle logging ourselves
    )


if __name__ == "__main__":
    main()
