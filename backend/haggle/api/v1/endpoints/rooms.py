"""
Moderator endpoints.

WHAT: Round start/end, room reset and room overview over HTTP
WHY: Moderators drive rounds from a dashboard without holding a WebSocket
HOW: Build the same typed events the WebSocket carries; credential in X-Moderator-Key
"""

from typing import Any

from fastapi import APIRouter, Depends, Header

from ..dependencies import get_session_manager
from ....core.session_manager import SessionManager
from ....models.api_schemas import ModeratorActionResponse
from ....models.events import RoomReset, RoundEnd, RoundStart

router = APIRouter()


async def _run(manager: SessionManager, event) -> ModeratorActionResponse:
    result = await manager.handle(event)
    return ModeratorActionResponse(ok=result.ok, data=result.data, warnings=result.warnings)


@router.get("/rooms/overview")
async def get_all_rooms_overview(
    x_moderator_key: str = Header(default=""),
    manager: SessionManager = Depends(get_session_manager)
) -> list[dict[str, Any]]:
    """Live snapshot of every room the service currently holds."""
    return await manager.overview_all(x_moderator_key)


@router.post("/rooms/{room_id}/rounds/start", response_model=ModeratorActionResponse)
async def start_round(
    room_id: str,
    x_moderator_key: str = Header(default=""),
    manager: SessionManager = Depends(get_session_manager)
):
    """
    Start the next round.

    Advances the round counter, activates the room and pairs every
    waiting participant.
    """
    return await _run(manager, RoundStart(room_id=room_id, credential=x_moderator_key))


@router.post("/rooms/{room_id}/rounds/end", response_model=ModeratorActionResponse)
async def end_round(
    room_id: str,
    x_moderator_key: str = Header(default=""),
    manager: SessionManager = Depends(get_session_manager)
):
    """End the current round; unsettled sessions are abandoned and results broadcast."""
    return await _run(manager, RoundEnd(room_id=room_id, credential=x_moderator_key))


@router.post("/rooms/{room_id}/reset", response_model=ModeratorActionResponse)
async def reset_room(
    room_id: str,
    x_moderator_key: str = Header(default=""),
    manager: SessionManager = Depends(get_session_manager)
):
    return await _run(manager, RoomReset(room_id=room_id, credential=x_moderator_key))


@router.get("/rooms/{room_id}/overview")
async def get_room_overview(
    room_id: str,
    x_moderator_key: str = Header(default=""),
    manager: SessionManager = Depends(get_session_manager)
) -> dict[str, Any]:
    """Live snapshot of the room's current round for the moderator view."""
    return await manager.overview(room_id, x_moderator_key)
