"""Sentinel Key FastAPI application factory + lifespan lifecycle.

This module implements:
  - create_app() — testable application factory
  - lifespan     — @asynccontextmanager startup/shutdown sequence
  - /health      — delegated to sentinel_key/health.py
  - /            — service discovery root
  - app = create_app() — module-level instance for uvicorn

Startup sequence:
  1. load_config()                → app.state.config (unless injected)
  2. SQLiteKeyStore.initialize()  → opened store
  3. build_container()            → app.state.container
  4. publish CACHE_FLUSH          → master secret rotation check
  5. run_cleanup_task()           → background purge of expired keys
  6. app.state.ready = True

Shutdown sequence (reverse):
  app.state.ready = False → cancel cleanup task → close container
"""

from __future__ import annotations

import asyncio
import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI
from fastapi.routing import APIRouter

from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from sentinel_key.auth.cleanup import run_cleanup_task
from sentinel_key.auth.limiter import limiter
from sentinel_key.auth.middleware import AccessDenied, RequestAuditMiddleware, access_denied_handler
from sentinel_key.auth.router import router as api_router
from sentinel_key.config import SentinelConfig, load_config
from sentinel_key.container import build_container
from sentinel_key.events import CACHE_FLUSH
from sentinel_key.health import router as health_router
from sentinel_key.principals import PrincipalDirectory
from sentinel_key.store.sqlite_store import SQLiteKeyStore
from sentinel_key.utils.logger import configure_logging, get_logger

# ─── Logging Setup ────────────────────────────────────────────────────────────
DEBUG = os.getenv("DEBUG", "false").lower() == "true"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO" if not DEBUG else "DEBUG")
JSON_LOGS = os.getenv("JSON_LOGS", "true").lower() == "true"

configure_logging(log_level=LOG_LEVEL, json_output=JSON_LOGS)
logger = get_logger(__name__)


# ─── Root Endpoint ────────────────────────────────────────────────────────────

root_router = APIRouter(tags=["root"])


@root_router.get("/")
async def root() -> dict[str, str]:
    """Root endpoint — service identity / discovery."""
    return {
        "service": "Sentinel Key",
        "health": "/health",
        "resource": "/api/sentinel",
        "keys": "/api/keys/me",
    }


# ─── Lifespan ─────────────────────────────────────────────────────────────────


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan — startup and shutdown sequence."""
    logger.info("Sentinel Key starting up...")

    # ── Step 1: Configuration ────────────────────────────────────────────────
    # load_config() raises SystemExit on invalid config, before ready=True.
    config: SentinelConfig = app.state.config or load_config()
    app.state.config = config
    logger.info(
        "Config loaded",
        path=config.path,
        auth_header=config.custom_auth_header,
        failure_limit=config.failure_limit,
        max_rate_limit=config.max_rate_limit,
    )

    # ── Step 2: Key store ────────────────────────────────────────────────────
    store = SQLiteKeyStore(config.store.path)
    await store.initialize()

    # ── Step 3: Components ───────────────────────────────────────────────────
    container = build_container(config, store, directory=app.state.directory)
    app.state.container = container
    if not container.vault.has_secret():
        logger.warning(
            "No master secret configured. Set SENTINEL_ENCRYPTION_KEY before issuing keys."
        )

    # ── Step 4: Master secret rotation check ─────────────────────────────────
    await container.bus.publish(CACHE_FLUSH)

    # ── Step 5: Expired key cleanup ──────────────────────────────────────────
    cleanup_task: Optional[asyncio.Task[None]] = None
    if config.cleanup.enabled:
        cleanup_task = asyncio.create_task(
            run_cleanup_task(
                container.lifecycle,
                interval_seconds=config.cleanup.interval_seconds,
                purge_after_seconds=config.cleanup.purge_after_seconds,
            )
        )
        logger.info("Expired key cleanup scheduled", interval_seconds=config.cleanup.interval_seconds)

    # ── Step 6: Ready ────────────────────────────────────────────────────────
    app.state.ready = True
    logger.info("Sentinel Key ready.")

    yield

    # ── Shutdown (reverse order) ─────────────────────────────────────────────
    logger.info("Sentinel Key shutting down...")
    app.state.ready = False

    if cleanup_task is not None and not cleanup_task.done():
        cleanup_task.cancel()
        try:
            await cleanup_task
        except asyncio.CancelledError:
            pass

    await container.close()
    logger.info("Sentinel Key shutdown complete")


# ─── Application Factory ──────────────────────────────────────────────────────


def create_app(
    config: Optional[SentinelConfig] = None,
    directory: Optional[PrincipalDirectory] = None,
) -> FastAPI:
    """Create and configure the Sentinel Key FastAPI application.

    Args:
        config:    Preloaded configuration; load_config() runs at startup
                   when omitted.
        directory: The host application's principal directory; an empty
                   in-memory directory is used when omitted.

    Returns:
        Configured FastAPI application with lifespan, routers, and middleware.
    """
    _debug = os.getenv("DEBUG", "false").lower() == "true"

    application = FastAPI(
        title="Sentinel Key",
        description="API key authentication with encrypted key storage, throttling and blocking",
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs" if _debug else None,
        redoc_url="/redoc" if _debug else None,
        openapi_url="/openapi.json" if _debug else None,
    )

    application.state.ready = False
    application.state.config = config
    application.state.directory = directory

    application.state.limiter = limiter
    application.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    application.add_exception_handler(AccessDenied, access_denied_handler)

    # The last-added middleware is outermost: the request id is bound before
    # slowapi runs.
    application.add_middleware(SlowAPIMiddleware)
    application.add_middleware(RequestAuditMiddleware)

    application.include_router(root_router)
    application.include_router(health_router)
    application.include_router(api_router, prefix="/api")

    return application


app = create_app()
