"""UTM Tracker — FastAPI Application Entry Point.

Attributes WhatsApp conversations to ad clicks and mirrors engaged leads
to Google Sheets.
"""

import asyncio
import contextlib
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from utm_tracker.api.click_routes import router as click_router
from utm_tracker.api.sync_routes import router as sync_router
from utm_tracker.api.webhook_routes import router as webhook_router
from utm_tracker.config import settings
from utm_tracker.core.context import AppContext, build_context
from utm_tracker.core.logging import get_logger
from utm_tracker.core.secrets import load_runtime_secrets
from utm_tracker.database import engine, init_db, test_connection
from utm_tracker.scheduler.jobs import start_scheduler, stop_scheduler

logger = get_logger("main")


def _startup_context() -> AppContext:
    """Connect to the store and resolve secrets. Raises on unrecoverable failure."""
    if not test_connection(engine):
        raise RuntimeError("Database unreachable at startup")
    init_db(engine)
    secrets = load_runtime_secrets(settings)
    return build_context(settings, engine, secrets)


def create_app(context: Optional[AppContext] = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Tests pass a prebuilt context; in production it is built during startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup and shutdown lifecycle."""
        logger.info("🚀 UTM Tracker starting up...")
        ctx = context or _startup_context()
        app.state.context = ctx

        start_scheduler(ctx.settings, ctx.mirror)

        realtime_task: Optional[asyncio.Task] = None
        if ctx.settings.realtime_sync_enabled and ctx.mirror.sink is not None:
            realtime_task = asyncio.create_task(ctx.mirror.run_realtime_sync())
            logger.info("✅ Real-time sheets sync initialized")

        logger.info("✅ Async initialization completed")
        yield

        logger.info("⚠️ Shutting down, cleaning up listeners...")
        if realtime_task is not None:
            realtime_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await realtime_task
        stop_scheduler()
        sink = ctx.mirror.sink
        if sink is not None and hasattr(sink, "close"):
            await sink.close()
        logger.info("UTM Tracker shut down")

    app = FastAPI(
        title="UTM Tracker",
        description="Attribute WhatsApp conversations to ad clicks and mirror engaged leads to Google Sheets.",
        version="1.0.0",
        lifespan=lifespan,
    )

    # CORS: the landing page posts clicks cross-origin
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routers
    app.include_router(click_router)
    app.include_router(webhook_router)
    app.include_router(sync_router)

    @app.get("/health", tags=["System"])
    async def health_check():
        """Liveness: healthy as soon as the process is serving requests."""
        return {"status": "healthy", "service": "utm-tracker", "version": "1.0.0"}

    @app.get("/readiness", tags=["System"])
    async def readiness(request: Request):
        """Readiness: the click store must answer a trivial query."""
        try:
            request.app.state.context.store.ping()
        except Exception as e:
            logger.warning(f"Readiness check failed: {e}")
            return JSONResponse(status_code=503, content={"status": "not_ready"})
        return {"status": "ready"}

    return app


app = create_app()
