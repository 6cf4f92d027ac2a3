"""
FastAPI application entry point.

WHAT: Main application setup and wiring
WHY: Initialize the durable store, cache, session manager and routes
HOW: Create FastAPI app, register middleware, routers, handlers
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api.v1.router import api_router
from .core.cache import HybridCache
from .core.config import settings
from .core.session_manager import SessionManager
from .core.store import SqlStore
from .middleware.error_handler import register_exception_handlers
from .services.connection_hub import ConnectionHub
from .utils.exceptions import PersistenceError
from .utils.logger import get_logger, setup_logging

# Setup logging
setup_logging()
logger = get_logger(__name__)


async def build_cache() -> HybridCache:
    """
    Open the durable store and wrap it in the hybrid cache.

    WHAT: SqlStore for DATABASE_URL unless durability is disabled
    WHY: An unreachable store must not keep the service from starting
    HOW: Unusable path, schema creation failure or failed ping -> memory-only cache
    """
    if not settings.DURABLE_STORE_ENABLED:
        cache = HybridCache(None)
        await cache.start()
        return cache

    store = None
    try:
        store = SqlStore.from_url(settings.DATABASE_URL, echo=settings.DEBUG)
        await store.initialize()
    except (PersistenceError, OSError) as e:
        reason = str(e.cause) if isinstance(e, PersistenceError) else f"{type(e).__name__}: {e}"
        cache = HybridCache(store)
        cache.disable_durability(reason)
        return cache

    cache = HybridCache(store)
    await cache.start()
    return cache


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    WHAT: Startup and shutdown logic
    WHY: The store and live state share the process lifecycle
    HOW: Async context manager for FastAPI lifespan
    """
    # Startup
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
    cache = await build_cache()
    hub = ConnectionHub()
    app.state.connection_hub = hub
    app.state.session_manager = SessionManager(cache, hub)
    logger.info("Application startup complete")

    yield

    # Shutdown
    logger.info("Shutting down application")
    await cache.close()
    logger.info("Application shutdown complete")


# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_cors_origins_list(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register exception handlers
register_exception_handlers(app)

# Include API router
app.include_router(api_router)


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "running"
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "haggle.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG
    )
