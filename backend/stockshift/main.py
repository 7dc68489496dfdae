"""FastAPI application — health, metrics, admin and webhook APIs."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    generate_latest,
    multiprocess,
)
from starlette.responses import PlainTextResponse, Response

from stockshift.config import settings
from stockshift.db import async_session_factory
from stockshift.logging_config import setup_logging
from stockshift.reconcile import SyncOrchestrator

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan — setup / teardown."""
    setup_logging("api")
    # One orchestrator per process so its lease table sees every notification.
    app.state.orchestrator = SyncOrchestrator(async_session_factory)
    logger.info("stockshift API starting")
    yield
    logger.info("stockshift API shutting down")


app = FastAPI(
    title="stockshift",
    version="0.1.0",
    description="Deprioritizes or hides sold-out products and restores them on restock",
    lifespan=lifespan,
)

# ── CORS ──
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.APP_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


from stockshift.api.shops import router as shops_router
from stockshift.api.webhooks import router as webhooks_router

app.include_router(shops_router)
app.include_router(webhooks_router)


# ── Health ──
@app.get("/health", tags=["ops"])
async def health() -> dict[str, str]:
    """Liveness probe."""
    return {"status": "ok", "service": "stockshift"}


# ── Prometheus Metrics ──
@app.get("/metrics", tags=["ops"])
async def metrics() -> Response:
    """Prometheus scrape endpoint."""
    try:
        registry = CollectorRegistry()
        multiprocess.MultiProcessCollector(registry)
        data = generate_latest(registry)
    except ValueError:
        # Not running in multiprocess mode
        data = generate_latest()
    return PlainTextResponse(content=data, media_type=CONTENT_TYPE_LATEST)
