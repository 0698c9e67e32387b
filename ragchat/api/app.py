"""FastAPI application entry point.

Configures the application with logging, exception handling, metrics,
health checks and the RAG routes.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse

from ragchat import __version__
from ragchat.api.dependencies import build_services
from ragchat.api.routes import router
from ragchat.config import get_settings
from ragchat.exceptions import ErrorCode, RAGPlatformError
from ragchat.logging_config import get_logger, setup_logging
from ragchat.observability.metrics import (
    MetricsMiddleware,
    get_metrics,
    get_metrics_content_type,
)

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    Builds every collaborator before serving and closes them on shutdown.
    """
    settings = get_settings()
    setup_logging(level=settings.log_level)
    logger.info(
        "Starting RAG chat service",
        extra={
            "version": __version__,
            "environment": settings.environment.value,
        },
    )

    services = await build_services(settings)
    app.state.pipeline = services.pipeline

    try:
        yield
    finally:
        logger.info("Shutting down RAG chat service")
        app.state.pipeline = None
        await services.close()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance.
    """
    settings = get_settings()

    app = FastAPI(
        title="RAG Chat",
        description="Retrieval-augmented question answering over ingested documents",
        version=__version__,
        lifespan=lifespan,
        debug=settings.debug,
    )
    app.state.pipeline = None

    app.add_middleware(MetricsMiddleware)
    app.add_exception_handler(RAGPlatformError, rag_exception_handler)

    app.include_router(router)
    app.add_api_route("/health", health_check, methods=["GET"], tags=["Health"])
    app.add_api_route("/health/ready", readiness_check, methods=["GET"], tags=["Health"])
    app.add_api_route("/health/live", liveness_check, methods=["GET"], tags=["Health"])
    app.add_api_route(
        "/metrics",
        metrics_endpoint,
        methods=["GET"],
        tags=["Observability"],
        include_in_schema=False,
    )

    return app


async def rag_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """Convert RAGPlatformError into a structured JSON error response."""
    if not isinstance(exc, RAGPlatformError):
        return JSONResponse(
            status_code=500,
            content={
                "error": {
                    "code": ErrorCode.INTERNAL_ERROR.value,
                    "message": str(exc),
                    "details": {},
                }
            },
        )

    logger.error(
        f"Request failed: {exc.message}",
        extra={
            "error_code": exc.code.value,
            "path": request.url.path,
            "details": exc.details,
        },
    )

    return JSONResponse(
        status_code=_get_status_code(exc.code),
        content=exc.to_dict(),
    )


_STATUS_CODES: dict[ErrorCode, int] = {
    ErrorCode.VALIDATION_ERROR: 400,
    ErrorCode.COLLECTION_NOT_FOUND: 404,
    ErrorCode.COLLECTION_EXISTS: 409,
    ErrorCode.GENERATION_RATE_LIMIT: 429,
    ErrorCode.GENERATION_TIMEOUT: 504,
}

# Failures of a backing service rather than of this one.
_UPSTREAM_PREFIXES = ("RAG-2", "RAG-3", "RAG-4", "RAG-5", "RAG-6")


def _get_status_code(code: ErrorCode) -> int:
    """Map error code to HTTP status code."""
    if code in _STATUS_CODES:
        return _STATUS_CODES[code]
    if code.value.startswith(_UPSTREAM_PREFIXES):
        return 502
    return 500


async def health_check() -> dict[str, Any]:
    """Basic health check endpoint."""
    return {
        "status": "healthy",
        "version": __version__,
        "timestamp": datetime.now(UTC).isoformat(),
    }


async def readiness_check(request: Request) -> dict[str, Any]:
    """Readiness probe.

    Reports the pipeline as ready once it is wired and its vector store
    answers a count query.
    """
    checks: dict[str, str] = {"config": "ok"}

    pipeline = getattr(request.app.state, "pipeline", None)
    if pipeline is None:
        checks["vector_store"] = "not_configured"
    else:
        try:
            await pipeline.count_documents()
            checks["vector_store"] = "ok"
        except RAGPlatformError as e:
            logger.warning(f"Readiness check failed: {e.message}")
            checks["vector_store"] = "error"

    all_ok = all(v == "ok" for v in checks.values())

    return {
        "status": "ready" if all_ok else "not_ready",
        "checks": checks,
        "timestamp": datetime.now(UTC).isoformat(),
    }


async def liveness_check() -> dict[str, str]:
    """Liveness probe: the process is up."""
    return {"status": "alive"}


async def metrics_endpoint() -> Response:
    """Prometheus scrape endpoint."""
    return Response(content=get_metrics(), media_type=get_metrics_content_type())


# Create the application instance
app = create_app()
