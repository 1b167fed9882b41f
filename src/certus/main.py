"""FastAPI application factory for Certus.

This module creates and configures the FastAPI application with:
- Lifespan management (drug service, background cache cleanup)
- Middleware configuration (CORS, request ID, logging)
- Exception handlers
- API routers
"""

import asyncio
import contextlib
import time
import uuid
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from certus.config import Settings, get_settings
from certus.core.exceptions import CertusError
from certus.core.logging import (
    clear_request_id,
    configure_logging,
    get_logger,
    set_request_id,
)
from certus.dependencies import CacheStoreDep, DrugServiceDep
from certus.schemas.common import HealthCheckResponse
from certus.schemas.drugs import CacheCleanupResponse, CacheStatsResponse
from certus.services.cache import periodic_cleanup
from certus.services.drugs import DrugInformationService

# Initialize logger for this module
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application lifespan events.

    Handles initialization and cleanup of:
    - Logging configuration
    - The drug information service and its HTTP client
    - The periodic cache cleanup task

    Args:
        app: The FastAPI application instance

    Yields:
        None: Control back to the application
    """
    settings: Settings = getattr(app.state, "settings", None) or get_settings()

    # ========================================
    # Startup
    # ========================================
    # Configure logging first
    configure_logging(settings)

    # Re-get logger after configuration
    startup_logger = get_logger(__name__)

    service = DrugInformationService.from_settings(settings)
    app.state.settings = settings
    app.state.drug_service = service

    cleanup_task = asyncio.create_task(
        periodic_cleanup(service.cache, settings.cache_cleanup_interval)
    )

    startup_logger.info(
        "Application starting",
        app_name=settings.app_name,
        version=settings.app_version,
        environment=settings.app_env.value,
        api_key_configured=settings.api_key_configured,
    )

    yield

    # ========================================
    # Shutdown
    # ========================================
    cleanup_task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await cleanup_task

    await service.close()

    startup_logger.info("Application shutting down", app_name=settings.app_name)


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Optional settings override for testing

    Returns:
        FastAPI: Configured application instance
    """
    if settings is None:
        settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        description=(
            "Drug safety data from openFDA: shortages, recalls, labels and "
            "adverse events, with shortage trend analysis and batch screening."
        ),
        version=settings.app_version,
        lifespan=lifespan,
    )
    app.state.settings = settings

    # ========================================
    # Middleware
    # ========================================
    configure_middleware(app, settings)

    # ========================================
    # Exception Handlers
    # ========================================
    configure_exception_handlers(app)

    # ========================================
    # Routes
    # ========================================
    configure_routes(app)

    return app


def configure_middleware(app: FastAPI, settings: Settings) -> None:
    """Configure application middleware.

    Args:
        app: The FastAPI application instance
        settings: Application settings
    """
    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.is_development else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Request logging middleware
    @app.middleware("http")
    async def logging_middleware(request: Request, call_next: Any) -> Any:
        """Log requests and responses with a request ID."""
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
        request.state.request_id = request_id

        # Every log in this request context carries the request ID
        set_request_id(request_id)

        request_logger = get_logger("certus.request")
        start_time = time.perf_counter()

        request_logger.info(
            "Request started",
            method=request.method,
            path=request.url.path,
        )

        try:
            response = await call_next(request)

            duration_ms = (time.perf_counter() - start_time) * 1000
            request_logger.info(
                "Request completed",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=round(duration_ms, 2),
            )

            response.headers["X-Request-ID"] = request_id
            return response

        except Exception as exc:
            duration_ms = (time.perf_counter() - start_time) * 1000
            request_logger.error(
                "Request failed",
                method=request.method,
                path=request.url.path,
                duration_ms=round(duration_ms, 2),
                error=str(exc),
            )
            raise

        finally:
            clear_request_id()


def configure_exception_handlers(app: FastAPI) -> None:
    """Configure global exception handlers.

    Args:
        app: The FastAPI application instance
    """
    exception_logger = get_logger("certus.exceptions")

    @app.exception_handler(CertusError)
    async def certus_exception_handler(
        request: Request, exc: CertusError
    ) -> JSONResponse:
        """Handle Certus exceptions with a structured error response."""
        request_id = getattr(request.state, "request_id", None)

        if exc.status_code >= 500:
            exception_logger.error(
                "Application error",
                error_code=exc.code,
                error_message=exc.message,
                status_code=exc.status_code,
                path=request.url.path,
            )
        else:
            exception_logger.warning(
                "Client error",
                error_code=exc.code,
                error_message=exc.message,
                status_code=exc.status_code,
                path=request.url.path,
            )

        return JSONResponse(
            status_code=exc.status_code,
            content=exc.to_dict(request_id=request_id),
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        """Handle unexpected exceptions with a consistent error response."""
        request_id = getattr(request.state, "request_id", None)

        exception_logger.exception(
            "Unhandled exception",
            error_type=type(exc).__name__,
            error_message=str(exc),
            path=request.url.path,
        )

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": {
                    "code": "INTERNAL_SERVER_ERROR",
                    "message": "An unexpected error occurred",
                    "request_id": request_id,
                }
            },
        )


def configure_routes(app: FastAPI) -> None:
    """Configure application routes.

    Args:
        app: The FastAPI application instance
    """

    @app.get(
        "/health/live",
        tags=["Health"],
        summary="Liveness probe",
        description="Returns OK if the service is running",
    )
    async def liveness() -> dict[str, str]:
        """Liveness probe for container orchestration."""
        return {"status": "ok"}

    @app.get(
        "/health/ready",
        tags=["Health"],
        summary="Readiness probe",
        description="Checks the cache and probes every openFDA endpoint",
        response_model=HealthCheckResponse,
    )
    async def readiness(service: DrugServiceDep) -> HealthCheckResponse:
        """Readiness probe checking the cache and openFDA."""
        cache_ok = service.cache is not None
        upstream = await service.health_check()
        endpoints_ok = all(
            probe.get("available") for probe in upstream["endpoints"].values()
        )

        if not cache_ok:
            overall_status = "error"
        elif not endpoints_ok:
            overall_status = "degraded"
        else:
            overall_status = "ok"

        return HealthCheckResponse(
            status=overall_status,
            checks={
                "cache": "ok" if cache_ok else "error",
                "openfda": upstream["endpoints"],
                "api_key_configured": upstream["api_key_configured"],
            },
        )

    @app.get(
        "/cache/stats",
        tags=["Cache"],
        summary="Cache statistics",
        response_model=CacheStatsResponse,
    )
    async def cache_stats(cache: CacheStoreDep) -> dict[str, Any]:
        return cache.stats()

    @app.post(
        "/cache/cleanup",
        tags=["Cache"],
        summary="Remove expired cache entries",
        response_model=CacheCleanupResponse,
    )
    async def cache_cleanup(service: DrugServiceDep) -> dict[str, Any]:
        return service.cleanup_cache()

    @app.get(
        "/",
        tags=["Root"],
        summary="API root",
        description="Returns API information",
    )
    async def root(request: Request) -> dict[str, str]:
        """API root endpoint with service information."""
        settings = request.app.state.settings
        return {
            "service": settings.app_name,
            "version": settings.app_version,
            "docs": "/docs",
            "health": "/health/live",
        }

    # Include API v1 router
    from certus.api.v1.router import router as v1_router

    app.include_router(v1_router, prefix="/api/v1")


# Create the application instance
app = create_app()


def cli() -> None:
    """CLI entry point for running the application."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "certus.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.is_development,
        log_level=settings.log_level.value.lower(),
    )


if __name__ == "__main__":
    cli()
