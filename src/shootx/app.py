"""FastAPI application factory."""

import asyncio
from contextlib import asynccontextmanager
from typing import Awaitable, Callable

import structlog
from fastapi import FastAPI, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from shootx.api.routes import tryon, widget
from shootx.core import timezone  # noqa: F401
from shootx.core.config import Settings, configure_logging
from shootx.core.database import setup_db_session
from shootx.services.exceptions import InternalError, ServiceError
from shootx.services.generation.comfyui_client import ComfyUIClient
from shootx.services.orchestrator import TryOnOrchestrator
from shootx.uow import create_uow_factory
from shootx.workers.generation_dispatcher import GenerationDispatcher
from shootx.workers.stale_job_reconciler import run_stale_job_reconciler

logger = structlog.get_logger()


def create_resilient_worker(
    coro_func: Callable[[], Awaitable[None]],
    worker_name: str,
    shutdown_event: asyncio.Event,
    restart_delay: float = 1.0,
) -> asyncio.Task:
    """Create a background worker that restarts after crashing.

    Args:
        coro_func: Zero-argument coroutine function running the worker loop
        worker_name: Human-readable worker name for logging
        shutdown_event: Event to signal graceful shutdown
        restart_delay: Seconds to wait before restarting a crashed worker

    Returns:
        Initial task handle (will be auto-recreated on crash)
    """

    def on_worker_done(task: asyncio.Task):
        if shutdown_event.is_set():
            logger.info("worker.shutdown_complete", worker=worker_name)
            return

        if task.cancelled():
            logger.info("worker.cancelled", worker=worker_name)
            return

        exc = task.exception()
        if exc:
            logger.error(
                "worker.crashed",
                worker=worker_name,
                error=str(exc),
                error_type=type(exc).__name__,
                retry_in_seconds=restart_delay,
                exc_info=exc,
            )
        else:
            # Worker loops never return on their own
            logger.warning(
                "worker.stopped_unexpectedly",
                worker=worker_name,
                retry_in_seconds=restart_delay,
            )

        async def restart_worker():
            await asyncio.sleep(restart_delay)

            if shutdown_event.is_set():
                return

            logger.info("worker.restarting", worker=worker_name)
            new_task = asyncio.create_task(coro_func())
            new_task.add_done_callback(on_worker_done)

        asyncio.create_task(restart_worker())

    task = asyncio.create_task(coro_func())
    task.add_done_callback(on_worker_done)
    return task


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan context manager.

    Handles startup and shutdown tasks:
    - Startup: Configure logging, database session factory, generation pool, reconciler
    - Shutdown: Stop the reconciler and the generation pool
    """
    settings = Settings()  # type: ignore[call-arg]
    configure_logging(settings)

    session_factory = setup_db_session(settings.database_url, settings.db_pool_size)
    uow_factory = create_uow_factory(session_factory)

    generator = ComfyUIClient(
        base_url=settings.runpod_api_url,
        api_key=settings.runpod_api_key,
        poll_interval=settings.generation_poll_interval_seconds,
        max_attempts=settings.generation_max_attempts,
        timeout=settings.generation_request_timeout_seconds,
    )
    orchestrator = TryOnOrchestrator(uow_factory, generator)
    dispatcher = GenerationDispatcher(
        orchestrator.run,
        workers=settings.generation_workers,
        max_pending=settings.generation_max_pending,
    )

    app.state.session_factory = session_factory
    app.state.uow_factory = uow_factory
    app.state.orchestrator = orchestrator
    app.state.dispatcher = dispatcher

    shutdown_event = asyncio.Event()

    dispatcher.start()
    reconciler_task = create_resilient_worker(
        lambda: run_stale_job_reconciler(orchestrator, settings),
        "stale_job_reconciler",
        shutdown_event,
    )

    logger.info("application.startup", db_url=settings.database_url.split("@")[-1])

    yield

    logger.info("application.shutdown")
    shutdown_event.set()

    reconciler_task.cancel()
    await asyncio.gather(reconciler_task, return_exceptions=True)
    await dispatcher.stop()


async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    """Render request-facing service errors as ``{"error": message}``."""
    if exc.status_code >= 500:
        logger.error(
            "request.failed",
            path=request.url.path,
            error_type=type(exc).__name__,
            error_message=str(exc),
        )
        message = exc.public_message
    else:
        message = str(exc)
    return JSONResponse(status_code=exc.status_code, content={"error": message})


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last-resort handler: log and return a generic 500."""
    logger.error(
        "request.unhandled_error",
        path=request.url.path,
        error_type=type(exc).__name__,
        error_message=str(exc),
        exc_info=exc,
    )
    return JSONResponse(
        status_code=InternalError.status_code,
        content={"error": InternalError.public_message},
    )


def create_app() -> FastAPI:
    """Create and configure FastAPI application.

    Returns:
        Configured FastAPI application instance
    """
    settings = Settings()  # type: ignore[call-arg]

    app = FastAPI(
        title="ShootX Try-On API",
        description="Virtual try-on request relay for storefront widgets",
        version="0.1.0",
        lifespan=lifespan,
    )

    # Storefront pages on any shop domain call the public endpoints
    allow_all = settings.cors_origins_list == ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=not allow_all,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(ServiceError, service_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, unhandled_error_handler)

    app.include_router(tryon.router)
    app.include_router(widget.router)

    @app.get("/health")
    async def health_check(response: Response):
        """Health check endpoint with database connectivity test.

        Returns:
            200: {"status": "healthy"} if database connection succeeds
            503: {"status": "unhealthy", "error": {...}} if database connection fails
        """
        try:
            async with app.state.session_factory() as session:
                result = await session.execute(text("SELECT 1"))
                result.scalar()

            logger.debug("health_check.success")
            return {"status": "healthy"}

        except Exception as e:
            logger.error(
                "health_check.failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
            return {
                "status": "unhealthy",
                "error": {
                    "type": type(e).__name__,
                    "message": str(e),
                },
            }

    return app


# Create app instance for uvicorn
app = create_app()
