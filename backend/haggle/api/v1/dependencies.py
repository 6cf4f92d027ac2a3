"""
Shared FastAPI dependencies.

WHAT: Access to the process-wide session manager and connection hub
WHY: Both are created in the app lifespan and live on app.state
HOW: Small getters usable with Depends() and from WebSocket routes
"""

from fastapi import Request
from starlette.requests import HTTPConnection

from ...core.session_manager import SessionManager
from ...services.connection_hub import ConnectionHub


def get_session_manager(request: Request) -> SessionManager:
    return request.app.state.session_manager


def get_connection_hub(request: Request) -> ConnectionHub:
    return request.app.state.connection_hub


def state_of(connection: HTTPConnection) -> tuple[SessionManager, ConnectionHub]:
    """Manager and hub for any connection type (HTTP or WebSocket)."""
    return connection.app.state.session_manager, connection.app.state.connection_hub
