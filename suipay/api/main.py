"""
Main FastAPI application.

SuiPay merchant backend with:
- Wallet and zkLogin authentication issuing bearer credentials
- Order creation and lookup
- Background payment indexer started with the app
- Request ID tracking and structured logging
- Prometheus metrics
"""
import asyncio
import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional

import structlog
from fastapi import FastAPI, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncEngine

from suipay.auth import AuthError
from suipay.config import Settings, get_settings
from suipay.core.reconciler import Reconciler
from suipay.database.connection import close_db, create_session_factory, get_engine, init_db
from suipay.integrations.sui_client import EventSource, SuiEventSource
from suipay.monitoring.logging import setup_logging
from suipay.monitoring.metrics import metrics

from .dependencies import Services
from .routes import admin_router, auth_router, monitoring_router, order_router

logger = structlog.get_logger(__name__)

INDEXER_SHUTDOWN_TIMEOUT_SECONDS = 30.0


async def stop_indexer(
    reconciler: Reconciler,
    task: asyncio.Task,
    timeout: float = INDEXER_SHUTDOWN_TIMEOUT_SECONDS,
) -> None:
    """
    Stop the indexer and wait for its in-flight page.

    A task that outlives the timeout is cancelled before the pool is closed.
    """
    reconciler.stop()
    try:
        await asyncio.wait_for(asyncio.shield(task), timeout=timeout)
    except asyncio.TimeoutError:
        logger.error("indexer_shutdown_timeout", timeout_seconds=timeout)
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            logger.info("indexer_cancelled")
    except Exception as e:
        logger.error("indexer_shutdown_error", error=str(e))


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, Any]:
    """
    Application lifespan manager.

    Creates tables, then runs the indexer as a background task for the life
    of the process. On shutdown the indexer finishes its in-flight page
    before the pool is closed.
    """
    services: Services = app.state.services
    settings = services.settings

    logger.info(
        "application_startup",
        app_name=settings.app_name,
        env=settings.app_env,
        indexing_enabled=settings.indexing_enabled,
    )

    try:
        await init_db(services.engine)
        logger.info("database_initialized")
    except Exception as e:
        logger.error("database_initialization_failed", error=str(e))
        raise

    indexer_task: Optional[asyncio.Task] = None
    if services.reconciler is not None:
        indexer_task = asyncio.create_task(services.reconciler.start(), name="payment-indexer")
    else:
        logger.info("indexer_disabled", reason="suipay_package_id not configured")

    yield

    logger.info("application_shutdown")

    if indexer_task is not None:
        await stop_indexer(services.reconciler, indexer_task)

    if isinstance(services.event_source, SuiEventSource):
        await services.event_source.aclose()

    try:
        await close_db()
        logger.info("database_connections_closed")
    except Exception as e:
        logger.error("database_shutdown_error", error=str(e))


def create_app(
    settings: Optional[Settings] = None,
    engine: Optional[AsyncEngine] = None,
    event_source: Optional[EventSource] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Application settings (loaded from the environment if omitted)
        engine: Database engine (the shared pooled one if omitted)
        event_source: Event source override for the indexer

    Returns:
        FastAPI: Configured application
    """
    settings = settings or get_settings()
    setup_logging(settings)

    app = FastAPI(
        title="SuiPay Backend",
        description=(
            "Merchant backend accepting Sui payments for off-chain orders. "
            "Features: wallet and zkLogin authentication, order management and "
            "an on-chain payment indexer."
        ),
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    engine = engine or get_engine(settings)
    app.state.services = Services.build(
        settings,
        engine,
        create_session_factory(engine),
        event_source=event_source,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.get_allowed_origins_list(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def add_request_id_middleware(request: Request, call_next: Any) -> Response:
        """
        Add request ID to all requests for tracing.

        Also adds timing information and structured logging context.
        """
        request_id = str(uuid.uuid4())
        start_time = time.time()

        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id

            logger.info(
                "request_completed",
                status_code=response.status_code,
                duration_seconds=time.time() - start_time,
            )
            return response

        except Exception as e:
            logger.error(
                "request_failed",
                error=str(e),
                duration_seconds=time.time() - start_time,
            )
            raise

        finally:
            structlog.contextvars.clear_contextvars()

    @app.exception_handler(AuthError)
    async def auth_exception_handler(request: Request, exc: AuthError) -> JSONResponse:
        """Render auth faults with their stable code and status."""
        metrics.record_auth_failure(exc.code)
        logger.warning("auth_failed", code=exc.code, error=str(exc))

        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.code, "message": str(exc)},
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Global exception handler for unhandled exceptions."""
        logger.error(
            "unhandled_exception",
            error=str(exc),
            error_type=type(exc).__name__,
            path=request.url.path,
        )

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": "Internal server error",
                "message": "An unexpected error occurred. Please try again later.",
            },
        )

    app.include_router(auth_router)
    app.include_router(order_router)
    app.include_router(admin_router)
    app.include_router(monitoring_router)

    @app.get("/", tags=["root"])
    async def root() -> dict[str, Any]:
        """Root endpoint with API information."""
        return {
            "service": settings.app_name,
            "version": "1.0.0",
            "status": "operational",
            "environment": settings.app_env,
            "indexing_enabled": settings.indexing_enabled,
            "docs": "/docs",
            "health": "/health",
            "metrics": "/metrics",
        }

    return app


def main() -> None:
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "suipay.api.main:create_app",
        factory=True,
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
