"""
Main FastAPI application.

Aggregated industry search plus raw per-source access, over one shared
cache and one adapter set.
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from market_intel import __version__
from market_intel.api.v1 import cache, search, sources
from market_intel.core.cache import CacheManager
from market_intel.core.config import Settings, get_settings
from market_intel.services.orchestrator import AggregationOrchestrator
from market_intel.sources import build_adapters

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None, cache_manager: Optional[CacheManager] = None) -> FastAPI:
    """
    Build the application.

    Args:
        settings: Settings to run with (default: get_settings())
        cache_manager: Pre-built cache (default: built from settings)
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Application lifespan context manager.

        Builds the cache, the adapters and the orchestrator on startup and
        releases them on shutdown.
        """
        # Startup
        active = settings or get_settings()
        logging.getLogger().setLevel(active.log_level)
        logger.info("Starting Market Intelligence Aggregation Service")
        logger.info(f"Log level: {active.log_level}")
        logger.info(f"Search concurrency: {active.search_max_concurrency}")

        app.state.cache = cache_manager or CacheManager.from_settings(active)
        await app.state.cache.purge_expired()
        app.state.adapters = build_adapters(app.state.cache, active)
        app.state.orchestrator = AggregationOrchestrator(app.state.adapters, settings=active)

        available = [name for name, a in app.state.adapters.items() if a.is_available()]
        logger.info(f"Sources available: {', '.join(available) or 'none'}")

        yield

        # Shutdown
        logger.info("Shutting down")
        for adapter in app.state.adapters.values():
            await adapter.close()
        await app.state.cache.close()

    app = FastAPI(
        title="Market Intelligence Aggregation Service",
        description="Industry search consolidated across public statistics APIs",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(search.router, prefix="/api/v1")
    app.include_router(sources.router, prefix="/api/v1")
    app.include_router(cache.router, prefix="/api/v1")

    @app.get("/")
    def root():
        """Root endpoint with service info."""
        return {
            "service": "Market Intelligence Aggregation Service",
            "version": __version__,
            "sources": sorted(app.state.adapters),
            "docs": "/docs",
        }

    @app.get("/health")
    async def health_check():
        """
        Health check endpoint.

        Reports source availability and whether the durable cache answers.
        """
        status = await app.state.cache.status()
        adapters = app.state.adapters
        return {
            "status": "healthy",
            "service": "running",
            "sources_available": sum(1 for a in adapters.values() if a.is_available()),
            "sources_total": len(adapters),
            "durable_cache": "disabled" if app.state.cache.store is None
            else ("connected" if status.durable_size is not None else "degraded"),
        }

    return app


app = create_app()
