"""
Status and health check endpoints.

WHAT: Health monitoring for the durable store, plus the public room catalog
WHY: Ops can tell memory-only mode apart from a fully durable service
HOW: FastAPI endpoints reading the session manager on app.state
"""

from fastapi import APIRouter, Depends

from ..dependencies import get_connection_hub, get_session_manager
from ....core.config import settings
from ....core.session_manager import SessionManager
from ....models.api_schemas import DurableStoreStatus, HealthResponse, ProductSummary, RoomSummary
from ....services.connection_hub import ConnectionHub
from ....utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health_check(
    manager: SessionManager = Depends(get_session_manager),
    hub: ConnectionHub = Depends(get_connection_hub)
):
    """
    Overall application health check.

    WHAT: Durable store availability and live connection count
    WHY: Memory-only operation keeps negotiations running but loses durability
    HOW: Ping the store when durability is enabled

    Returns:
        HealthResponse; "degraded" when running memory-only or the store stopped answering
    """
    cache = manager.cache
    backend = None
    error = cache.durability_error
    available = False

    if cache.durable:
        ping = await cache.store.ping()
        available = ping["available"]
        backend = ping["backend"]
        error = ping["error"]
        if not available:
            logger.error(f"Health check: durable store not answering ({error})")

    return HealthResponse(
        status="healthy" if available else "degraded",
        version=settings.APP_VERSION,
        app_name=settings.APP_NAME,
        durable_store=DurableStoreStatus(
            available=available,
            memory_only=not cache.durable,
            backend=backend,
            error=error,
        ),
        connections=hub.connection_count,
    )


@router.get("/rooms", response_model=list[RoomSummary])
async def list_rooms(manager: SessionManager = Depends(get_session_manager)):
    """Rooms offered by the catalog, with product names only."""
    return [
        RoomSummary(
            id=room.id,
            name=room.name,
            description=room.description,
            products=[ProductSummary(name=p.name) for p in room.products],
        )
        for room in manager.catalog.list_rooms()
    ]
