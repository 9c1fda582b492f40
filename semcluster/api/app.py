"""FastAPI application entry point.

Configures the application with logging, exception handling, metrics,
health checks and the clustering and workspace routes.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response

from semcluster import __version__
from semcluster.api.routes import router
from semcluster.clustering.engine import ClusteringEngine
from semcluster.config import Settings, StorageBackend, get_settings
from semcluster.embeddings.service import HTTPEmbeddingService, TextFileVectorizer
from semcluster.exceptions import SemClusterError
from semcluster.logging_config import get_logger, setup_logging
from semcluster.observability.metrics import (
    MetricsMiddleware,
    get_metrics,
    get_metrics_content_type,
)
from semcluster.workspaces.repository import (
    InMemoryWorkspaceRepository,
    JSONFileWorkspaceRepository,
    WorkspaceRepository,
)
from semcluster.workspaces.service import WorkspaceService

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    Handles startup and shutdown events.
    """
    # Startup
    settings = get_settings()
    setup_logging(level=settings.log_level)
    logger.info(
        "Starting semantic clustering service",
        extra={
            "version": __version__,
            "environment": settings.environment.value,
            "storage": settings.storage.backend.value,
        },
    )

    yield

    # Shutdown
    embedding_service = getattr(app.state, "embedding_service", None)
    if embedding_service is not None:
        await embedding_service.close()
    logger.info("Shutting down semantic clustering service")


def build_repository(settings: Settings) -> WorkspaceRepository:
    """Create the workspace repository selected by the storage settings."""
    if settings.storage.backend == StorageBackend.JSON:
        return JSONFileWorkspaceRepository(settings.storage.directory)
    return InMemoryWorkspaceRepository()


def create_app(
    workspace_service: WorkspaceService | None = None,
    engine: ClusteringEngine | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        workspace_service: Service to serve workspace routes. Built from
            settings if not provided.
        engine: Engine for one-off clustering requests.

    Returns:
        Configured FastAPI application instance.
    """
    settings = get_settings()

    app = FastAPI(
        title="Semantic Clustering Service",
        description="Similarity clustering and centroid-tracked workspaces",
        version=__version__,
        lifespan=lifespan,
        debug=settings.debug,
    )

    engine = engine or ClusteringEngine(settings.clustering)
    if workspace_service is None:
        embedding_service = HTTPEmbeddingService(
            settings.embedding,
            dimension=settings.clustering.dimension,
        )
        app.state.embedding_service = embedding_service
        workspace_service = WorkspaceService(
            repository=build_repository(settings),
            vectorizer=TextFileVectorizer(embedding_service, settings.embedding.max_chars),
            engine=engine,
            settings=settings,
        )
    app.state.engine = engine
    app.state.workspace_service = workspace_service

    # Register exception handlers
    app.add_exception_handler(SemClusterError, semcluster_exception_handler)

    app.add_middleware(MetricsMiddleware)

    # Register routes
    app.add_api_route("/health", health_check, methods=["GET"], tags=["Health"])
    app.add_api_route("/health/ready", readiness_check, methods=["GET"], tags=["Health"])
    app.add_api_route("/health/live", liveness_check, methods=["GET"], tags=["Health"])
    app.add_api_route("/metrics", metrics_endpoint, methods=["GET"], tags=["Observability"])
    app.include_router(router)

    return app


async def semcluster_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """Handle SemClusterError exceptions.

    Converts exceptions to structured JSON responses.
    """
    if not isinstance(exc, SemClusterError):
        return JSONResponse(
            status_code=500,
            content={"error": {"code": "SCL-1000", "message": str(exc), "details": {}}},
        )

    logger.error(
        f"Request failed: {exc.message}",
        extra={
            "error_code": exc.code.value,
            "path": request.url.path,
            "details": exc.details,
        },
    )

    status_code = _get_status_code(exc.code.value)

    return JSONResponse(
        status_code=status_code,
        content=exc.to_dict(),
    )


def _get_status_code(error_code: str) -> int:
    """Map error code to HTTP status code."""
    # Validation errors -> 400
    if error_code in ("SCL-1002", "SCL-2000", "SCL-3002"):
        return 400

    # Not found errors -> 404
    if error_code in ("SCL-4000",):
        return 404

    # Conflict errors -> 409
    if error_code in ("SCL-2002", "SCL-4001"):
        return 409

    # Upstream embedding failures -> 502
    if error_code in ("SCL-3000", "SCL-3001"):
        return 502

    # Default to 500 for internal errors
    return 500


async def health_check() -> dict[str, Any]:
    """Basic health check endpoint.

    Returns:
        Health status with version and timestamp.
    """
    return {
        "status": "healthy",
        "version": __version__,
        "timestamp": datetime.now(UTC).isoformat(),
    }


async def readiness_check(request: Request) -> dict[str, Any]:
    """Kubernetes readiness probe.

    Checks that the workspace store can be listed.

    Returns:
        Readiness status with component checks.
    """
    checks: dict[str, str] = {"config": "ok"}

    service: WorkspaceService = request.app.state.workspace_service
    try:
        await service.list_workspaces()
        checks["storage"] = "ok"
    except SemClusterError as e:
        logger.warning("Storage not ready", extra={"error": e.message})
        checks["storage"] = "error"

    all_ok = all(v == "ok" for v in checks.values())

    return {
        "status": "ready" if all_ok else "not_ready",
        "checks": checks,
        "timestamp": datetime.now(UTC).isoformat(),
    }


async def liveness_check() -> dict[str, str]:
    """Kubernetes liveness probe.

    Simple check that the service is running.

    Returns:
        Liveness status.
    """
    return {"status": "alive"}


async def metrics_endpoint() -> Response:
    """Prometheus scrape endpoint."""
    return Response(content=get_metrics(), media_type=get_metrics_content_type())


# Create the application instance
app = create_app()
