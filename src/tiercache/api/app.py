"""FastAPI application exposing cache stats and a cache-aside demo."""

import logging
import random
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator

# Load environment variables from .env file
from dotenv import load_dotenv
load_dotenv()

from fastapi import FastAPI, Request

from tiercache import __version__
from tiercache.cache.factory import create_cache, shutdown_cache
from tiercache.cache.orchestrator import Orchestrator
from tiercache.config import Settings, get_settings

logger = logging.getLogger(__name__)

DEMO_TTL_SECONDS = 60


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Application lifespan events."""
        logger.info("Starting cache service...")
        app.state.cache = await create_cache(settings or get_settings())
        yield
        logger.info("Shutting down cache service...")
        await shutdown_cache(app.state.cache)

    app = FastAPI(
        title="tiercache",
        description="Two-tier cache with Redis failover",
        version=__version__,
        lifespan=lifespan,
    )

    def get_cache(request: Request) -> Orchestrator:
        return request.app.state.cache

    # Request timing middleware
    @app.middleware("http")
    async def add_timing_header(request: Request, call_next):
        start_time = time.perf_counter()
        response = await call_next(request)
        process_time = (time.perf_counter() - start_time) * 1000
        response.headers["X-Process-Time-Ms"] = f"{process_time:.2f}"
        return response

    @app.get("/")
    async def root():
        return {
            "service": "tiercache",
            "version": __version__,
            "status": "running",
            "endpoints": {
                "health": "/health",
                "stats": "/stats",
                "sweeper": "/sweeper",
                "demo": "/demo/{key}",
            },
        }

    @app.get("/health")
    async def health_check():
        return {
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    @app.get("/stats")
    async def stats(request: Request):
        return await get_cache(request).stats()

    @app.get("/sweeper")
    async def sweeper_status(request: Request):
        sweeper = get_cache(request).sweeper
        if sweeper is None:
            return {"enabled": False, "schedule": None, "next_run": None}
        return sweeper.status()

    @app.get("/demo/{key}")
    async def demo(key: str, request: Request):
        def generate() -> dict:
            return {
                "key": key,
                "value": f"Generated at {datetime.now(timezone.utc).isoformat()}",
                "random": random.random(),
            }

        value = await get_cache(request).get_or_fetch(key, generate, DEMO_TTL_SECONDS)
        return {"cached": value, "message": "Data fetched successfully"}

    return app

