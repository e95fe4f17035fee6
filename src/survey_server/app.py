"""Application factory and CLI entry point.

``create_app()`` builds the FastAPI application with:
  - Lifespan handler that wires the survey components once and connects
    the WhatsApp channel
  - CORS middleware
  - Global exception handlers (SDK ValueError → 404/409/400)
  - The ``/webhook`` route and dashboard routes under ``/api/v1``
  - Stored images served under ``/uploads``
  - A ``/health`` endpoint for readiness probes

The ``cli()`` function is the ``survey-server`` console-script entry point.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from sqlalchemy import text

from survey_db.engine import dispose_engine, get_engine, get_session_factory
from survey_engine.channel import ChannelSession
from survey_engine.dispatcher import InboundDispatcher
from survey_engine.engine import SurveyEngine
from survey_engine.invoker import ExternalCheckInvoker
from survey_engine.locks import UserLocks
from survey_engine.media import LocalMediaStore
from survey_engine.messenger import Messenger

from survey_server.config import ServerSettings, load_settings
from survey_server.errors import (
    generic_error_handler,
    key_error_handler,
    value_error_handler,
)
from survey_server.routes import register_routes
from survey_server.transport import CloudApiTransport

logger = logging.getLogger(__name__)


# ------------------------------------------------------------------
# Periodic sweep
# ------------------------------------------------------------------

async def _sweep_forever(invoker: ExternalCheckInvoker, interval: int) -> None:
    while True:
        await asyncio.sleep(interval)
        try:
            await invoker.sweep()
        except Exception:
            logger.exception("Periodic sweep failed")


# ------------------------------------------------------------------
# Lifespan — runs once at startup/shutdown
# ------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Initialise shared resources at startup, tear down on shutdown.

    Startup:
      1. Build channel, messenger, invoker, engine and dispatcher
      2. Stash them on ``app.state`` for dependency injection
      3. Connect the channel (if ``CHANNEL_AUTOSTART``) and start the
         periodic sweep (if ``SWEEP_INTERVAL_SECONDS`` > 0)

    Shutdown:
      1. Stop the sweep, wait for in-flight external checks
      2. Disconnect the channel and dispose the DB connection pool
    """
    settings: ServerSettings = app.state.settings
    factory = get_session_factory()

    # --- Build components ---
    channel = ChannelSession(CloudApiTransport(settings))
    messenger = Messenger(channel, factory)
    locks = UserLocks()
    invoker = ExternalCheckInvoker(factory, messenger=messenger, locks=locks)
    engine = SurveyEngine(media_store=LocalMediaStore(settings.media_dir))
    dispatcher = InboundDispatcher(engine, messenger, invoker, factory, locks=locks)

    app.state.channel = channel
    app.state.messenger = messenger
    app.state.invoker = invoker
    app.state.engine = engine
    app.state.dispatcher = dispatcher

    if settings.channel_autostart:
        status = await channel.start()
        logger.info("Channel autostart: %s", status.state.value)

    sweep_task = None
    if settings.sweep_interval_seconds > 0:
        sweep_task = asyncio.create_task(
            _sweep_forever(invoker, settings.sweep_interval_seconds)
        )

    yield

    # --- Shutdown ---
    if sweep_task is not None:
        sweep_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sweep_task
    await invoker.drain()
    await channel.stop()
    await dispose_engine()
    logger.info("Database engine disposed")


# ------------------------------------------------------------------
# Factory
# ------------------------------------------------------------------

def create_app(settings: ServerSettings | None = None) -> FastAPI:
    """Build and return the configured FastAPI application."""
    if settings is None:
        settings = load_settings()

    # --- Configure logging ---
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    app = FastAPI(
        title="Survey Bot API Server",
        description="WhatsApp survey bot: webhook, dashboard and bot control",
        version="0.1.0",
        lifespan=lifespan,
    )

    # Store settings so the lifespan handler can read them
    app.state.settings = settings

    # --- CORS ---
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # --- Exception handlers ---
    app.add_exception_handler(ValueError, value_error_handler)
    app.add_exception_handler(KeyError, key_error_handler)
    app.add_exception_handler(Exception, generic_error_handler)

    # --- Health check (outside /api/v1 prefix) ---
    @app.get("/health")
    async def health() -> dict:
        """Readiness probe — verifies DB connectivity."""
        try:
            engine = get_engine()
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return {"status": "ok"}
        except Exception as exc:
            logger.error("Health check failed: %s", exc)
            return {"status": "error", "detail": str(exc)}

    # --- Routes & stored media ---
    register_routes(app)
    app.mount(
        "/uploads",
        StaticFiles(directory=settings.media_dir, check_dir=False),
        name="uploads",
    )

    return app


# ------------------------------------------------------------------
# Module-level ASGI export (for uvicorn survey_server.app:app)
# ------------------------------------------------------------------
app = create_app()


# ------------------------------------------------------------------
# CLI entry point
# ------------------------------------------------------------------

def cli() -> None:
    """Console-script entry point: ``survey-server``."""
    import uvicorn

    settings = load_settings()
    uvicorn.run(
        "survey_server.app:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        reload=False,
    )
