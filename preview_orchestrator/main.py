"""
Preview Orchestrator API
FastAPI entry point: turns prompts into deployed web previews in the background.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse

from preview_orchestrator.core.config import Settings, get_settings
from preview_orchestrator.core.errors import PreviewError
from preview_orchestrator.core.logging_utils import setup_logging
from preview_orchestrator.core.redis import mask_url
from preview_orchestrator.api import previews, queue as queue_routes
from preview_orchestrator.services.previews import PreviewService
from preview_orchestrator.services.status import StatusProjector
from preview_orchestrator.services.store import PreviewStore
from preview_orchestrator.workers.queue import JobQueue

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[PreviewStore] = None,
    queue: Optional[JobQueue] = None,
) -> FastAPI:
    """
    Build the API with explicitly constructed dependencies.

    Args:
        settings: Defaults to environment settings
        store: PreviewStore, built from DATABASE_URL if omitted
        queue: JobQueue, built from REDIS_URL if omitted
    """
    settings = settings or get_settings()
    setup_logging(settings.LOG_LEVEL)

    store = store or PreviewStore.from_url(settings.DATABASE_URL)
    queue = queue or JobQueue.from_settings(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup and shutdown events."""
        logger.info(f"Starting {settings.APP_NAME}...")
        try:
            store.init_db()
            logger.info("Database tables created")
        except PreviewError as e:
            # Tables may already exist on a read-only filesystem
            logger.warning(f"Could not create database tables: {e}")
        logger.info(f"Queue '{queue.name}' using Redis: {mask_url(settings.REDIS_URL)}")
        yield
        logger.info(f"Shutting down {settings.APP_NAME}...")
        queue.close()

    app = FastAPI(
        title=settings.APP_NAME,
        description="Asynchronous prompt-to-preview generation and deployment",
        version="0.3.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.state.store = store
    app.state.queue = queue
    app.state.preview_service = PreviewService(store, queue)
    app.state.status_projector = StatusProjector(
        store, queue, average_seconds_per_job=settings.AVERAGE_SECONDS_PER_JOB
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(PreviewError)
    async def preview_error_handler(request: Request, exc: PreviewError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "error": exc.message},
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        fields = ", ".join(".".join(str(p) for p in err.get("loc", ())) for err in exc.errors())
        return JSONResponse(
            status_code=400,
            content={"success": False, "error": f"Invalid request body: {fields}"},
        )

    # Include routers
    app.include_router(previews.router, prefix="/api", tags=["Previews"])
    app.include_router(queue_routes.router, prefix="/api/queue", tags=["Queue"])

    @app.get("/health", tags=["Health"])
    async def health_check(request: Request):
        """
        Liveness plus queue backend and database connectivity.
        """
        status = {
            "success": True,
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "services": {},
        }

        queue_status = request.app.state.queue.connection_status()
        status["queueStatus"] = queue_status
        if queue_status == "ready":
            status["services"]["redis"] = "ok"
        else:
            status["services"]["redis"] = queue_status
            status["status"] = "degraded"

        try:
            request.app.state.store.ping()
            status["services"]["database"] = "ok"
        except PreviewError as e:
            status["services"]["database"] = f"error: {e.message}"
            status["status"] = "degraded"

        return status

    @app.get("/", tags=["Root"], include_in_schema=False)
    async def root():
        """Root endpoint redirects to the health check."""
        return RedirectResponse(url="/health")

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=get_settings().PORT)
