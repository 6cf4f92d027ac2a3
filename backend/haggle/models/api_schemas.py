"""
Pydantic API schemas for HTTP endpoints.

WHAT: Response models for status, catalog and moderator endpoints
WHY: Typed, documented responses in the OpenAPI schema
HOW: Pydantic v2 models
"""

from typing import Any, Literal, Optional

from pydantic import BaseModel, Field


class DurableStoreStatus(BaseModel):
    """Durable store availability as seen by the cache."""
    available: bool
    memory_only: bool
    backend: Optional[str] = None
    error: Optional[str] = None


class HealthResponse(BaseModel):
    status: Literal["healthy", "degraded"]
    version: str
    app_name: str
    durable_store: DurableStoreStatus
    connections: int = Field(ge=0)


class ProductSummary(BaseModel):
    name: str


class RoomSummary(BaseModel):
    """Public catalog entry (negotiation briefs are sent only to paired participants)."""
    id: str
    name: str
    description: str = ""
    products: list[ProductSummary] = Field(default_factory=list)


class ModeratorActionResponse(BaseModel):
    """Result of a moderator command sent over HTTP."""
    ok: bool = True
    data: dict[str, Any] = Field(default_factory=dict)
    warnings: list[str] = Field(default_factory=list)
