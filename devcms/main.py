"""FastAPI application entry point."""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError

from devcms.api.health import router as health_router
from devcms.api.projects import router as projects_router
from devcms.api.sync import router as sync_router
from devcms.config import Settings
from devcms.database import create_engine, ensure_sqlite_directory
from devcms.exceptions import InternalServerError
from devcms.models.base import Base
from devcms.realpad.client import RealpadClient
from devcms.services.media_service import MediaStorage, ResourceCache
from devcms.services.retry_service import RetryPolicy
from devcms.services.scheduler import SyncScheduler
from devcms.services.sync_service import SyncOrchestrator

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

logger = logging.getLogger(__name__)


def _configure_logging(debug: bool) -> None:
    """Configure application logging."""
    level = logging.DEBUG if debug else logging.INFO
    fmt = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
    logging.basicConfig(
        level=level,
        format=fmt,
        stream=sys.stdout,
        force=True,
    )
    # Quiet noisy libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO if debug else logging.WARNING)


def init_sync_services(
    app: FastAPI,
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    http_client: httpx.AsyncClient,
) -> SyncScheduler:
    """Wire the Realpad client, resource cache, orchestrator and scheduler into app state."""
    client = RealpadClient(
        http_client,
        endpoint=settings.realpad_endpoint,
        resource_base_url=settings.realpad_resource_base_url,
    )
    retry_policy = RetryPolicy(
        attempts=settings.realpad_retry_attempts,
        initial=settings.realpad_retry_initial_seconds,
        maximum=settings.realpad_retry_max_seconds,
    )
    resource_cache = ResourceCache(
        session_factory,
        client,
        MediaStorage(settings.media_dir),
        retry_policy=retry_policy,
    )
    orchestrator = SyncOrchestrator(
        session_factory,
        client,
        resource_cache,
        secret_key=settings.secret_key,
        retry_policy=retry_policy,
        resource_suffixes=settings.realpad_resource_suffixes,
        concurrency=settings.sync_concurrency,
        project_timeout=settings.sync_project_timeout_seconds,
    )
    scheduler = SyncScheduler(
        orchestrator,
        interval_seconds=settings.sync_interval_seconds,
        grace_seconds=settings.sync_shutdown_grace_seconds,
    )
    app.state.http_client = http_client
    app.state.sync_orchestrator = orchestrator
    app.state.sync_scheduler = scheduler
    return scheduler


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Application lifespan: startup and shutdown."""
    settings: Settings = app.state.settings
    settings.validate_runtime_security()
    _configure_logging(settings.debug)
    logger.info("Starting devcms (debug=%s)", settings.debug)

    ensure_sqlite_directory(settings.database_url)

    try:
        engine, session_factory = create_engine(settings)
        app.state.engine = engine
        app.state.session_factory = session_factory
    except Exception as exc:
        logger.critical(
            "Failed to initialize database: %s. Check database path and permissions.", exc
        )
        raise

    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    except Exception as exc:
        logger.critical("Failed to create database schema: %s.", exc)
        raise

    try:
        settings.media_dir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        logger.critical("Failed to create media directory at %s: %s.", settings.media_dir, exc)
        raise

    http_client = httpx.AsyncClient(timeout=settings.realpad_timeout_seconds)
    scheduler = init_sync_services(app, settings, session_factory, http_client)
    if settings.sync_enabled:
        scheduler.start()
    else:
        logger.info("Realpad sync scheduler disabled by configuration")

    yield

    try:
        await scheduler.stop()
    except Exception as exc:
        logger.error("Error during sync scheduler shutdown: %s", exc, exc_info=True)

    try:
        await http_client.aclose()
    except Exception as exc:
        logger.error("Error during HTTP client shutdown: %s", exc, exc_info=True)

    try:
        await engine.dispose()
    except Exception as exc:
        logger.error("Error during engine disposal: %s", exc, exc_info=True)

    logger.info("devcms stopped")


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    if settings is None:
        settings = Settings()

    docs_enabled = settings.debug or settings.expose_docs

    app = FastAPI(
        title="devcms",
        description="Real-estate developer CMS backend with Realpad inventory sync",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/docs" if docs_enabled else None,
        redoc_url="/redoc" if docs_enabled else None,
        openapi_url="/openapi.json" if docs_enabled else None,
    )
    app.state.settings = settings

    app.include_router(health_router)
    app.include_router(projects_router)
    app.include_router(sync_router)

    # Global exception handlers

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = []
        for err in exc.errors():
            loc = err.get("loc", ())
            field = str(loc[-1]) if loc else "unknown"
            errors.append({"field": field, "message": err.get("msg", "Invalid value")})
        logger.warning(
            "RequestValidationError in %s %s: %s",
            request.method,
            request.url.path,
            errors,
        )
        return JSONResponse(status_code=422, content={"detail": errors})

    @app.exception_handler(InternalServerError)
    async def internal_server_error_handler(
        request: Request, exc: InternalServerError
    ) -> JSONResponse:
        logger.error(
            "InternalServerError in %s %s: %s",
            request.method,
            request.url.path,
            exc,
            exc_info=exc,
        )
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
        logger.error("ValueError in %s %s: %s", request.method, request.url.path, exc, exc_info=exc)
        message = str(exc) or "Invalid value"
        return JSONResponse(
            status_code=422,
            content={"detail": message},
        )

    @app.exception_handler(OperationalError)
    async def operational_error_handler(request: Request, exc: OperationalError) -> JSONResponse:
        logger.error(
            "OperationalError in %s %s: %s", request.method, request.url.path, exc, exc_info=exc
        )
        return JSONResponse(
            status_code=503,
            content={"detail": "Database temporarily unavailable"},
        )

    return app


app = create_app()


def cli_entry() -> None:
    """CLI entry point for running the server."""
    import uvicorn

    settings: Settings = app.state.settings
    uvicorn.run(
        "devcms.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
