"""
Real-time participant channel.

WHAT: WebSocket endpoint carrying typed negotiation events and notifications
WHY: Chat, confirmations and pairings need server push
HOW: Each inbound JSON frame is one event; replies are "result" or "error" frames

Identity: the first join_room binds the socket to a participant id (a new id
is assigned when the client sends none). Later participant events from this
socket always act as the bound participant; before that they are refused
with a NOT_JOINED error frame. Closing the last socket of a
participant produces a disconnect event.
"""

import json
import uuid
from typing import Any, Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from ..dependencies import state_of
from ....models.events import Disconnect, JoinRoom, Notification, parse_event
from ....utils.exceptions import BusinessException
from ....utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter()

PARTICIPANT_EVENTS = ("chat_message", "propose_confirmation", "disconnect")


def _error_frame(code: str, message: str, details: Any = None) -> dict[str, Any]:
    notification = Notification(type="error", payload={"code": code, "message": message, "details": details})
    return notification.model_dump(mode="json")


@router.websocket("/ws")
async def negotiation_socket(websocket: WebSocket):
    manager, hub = state_of(websocket)
    await websocket.accept()
    participant_id: Optional[str] = None

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                payload = json.loads(raw)
            except json.JSONDecodeError:
                await websocket.send_json(_error_frame("VALIDATION_ERROR", "Frame is not valid JSON"))
                continue

            if isinstance(payload, dict) and payload.get("type") in PARTICIPANT_EVENTS:
                if participant_id is None:
                    await websocket.send_json(_error_frame("NOT_JOINED", "Send join_room before participant events"))
                    continue
                payload = {**payload, "participant_id": participant_id}

            try:
                event = parse_event(payload)
                if isinstance(event, JoinRoom):
                    if event.participant_id is None:
                        event = event.model_copy(update={"participant_id": str(uuid.uuid4())})
                    if participant_id and participant_id != event.participant_id:
                        hub.unbind(participant_id, websocket)
                    participant_id = event.participant_id
                    hub.bind(participant_id, websocket)

                result = await manager.handle(event)
            except BusinessException as e:
                logger.warning(f"Rejected event from {participant_id or 'unbound socket'}: {e.code}")
                await websocket.send_json(_error_frame(e.code, e.message, e.details))
                continue

            await websocket.send_json({"type": "result", "event": event.type, **result.model_dump()})

    except WebSocketDisconnect:
        logger.info(f"WebSocket closed for {participant_id or 'unbound socket'}")
    finally:
        if participant_id and hub.unbind(participant_id, websocket):
            try:
                await manager.handle(Disconnect(participant_id=participant_id))
            except BusinessException as e:
                logger.warning(f"Disconnect of {participant_id} rejected: {e.code}")
