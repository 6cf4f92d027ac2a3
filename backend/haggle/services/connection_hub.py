"""
WebSocket connection hub.

WHAT: Maps participant ids to live WebSocket connections
WHY: The session manager addresses participants, never connections
HOW: Notifier implementation; one participant may hold several sockets (tabs)
"""

from fastapi import WebSocket
from starlette.websockets import WebSocketState

from ..models.events import Notification
from ..utils.logger import get_logger

logger = get_logger(__name__)


class ConnectionHub:
    """
    Notifier backed by WebSocket connections.

    Notifications for participants without a live socket are dropped;
    the participant sees current state again when reconnecting.
    """

    def __init__(self):
        self._connections: dict[str, list[WebSocket]] = {}

    def bind(self, participant_id: str, websocket: WebSocket):
        sockets = self._connections.setdefault(participant_id, [])
        if websocket not in sockets:
            sockets.append(websocket)
            logger.info(f"WebSocket bound to participant {participant_id} ({len(sockets)} open)")

    def unbind(self, participant_id: str, websocket: WebSocket) -> bool:
        """
        Forget one socket.

        Returns:
            True if the participant has no live socket left
        """
        sockets = self._connections.get(participant_id, [])
        if websocket in sockets:
            sockets.remove(websocket)
        if not sockets:
            self._connections.pop(participant_id, None)
            return True
        return False

    def is_connected(self, participant_id: str) -> bool:
        return bool(self._connections.get(participant_id))

    @property
    def connection_count(self) -> int:
        return sum(len(sockets) for sockets in self._connections.values())

    async def send(self, websocket: WebSocket, notification: Notification):
        await websocket.send_json(notification.model_dump(mode="json"))

    async def notify(self, participant_id: str, notification: Notification) -> None:
        sockets = list(self._connections.get(participant_id, []))
        if not sockets:
            logger.debug(f"No live connection for {participant_id}; dropped {notification.type}")
            return

        for websocket in sockets:
            if websocket.client_state is not WebSocketState.CONNECTED:
                self.unbind(participant_id, websocket)
                continue
            try:
                await self.send(websocket, notification)
            except RuntimeError as e:
                logger.warning(f"Send to {participant_id} failed: {e}")
                self.unbind(participant_id, websocket)
