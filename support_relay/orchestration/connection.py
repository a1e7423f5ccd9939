"""
Connection handles: the live channel to one client.
"""

import logging
import uuid
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, Optional

from fastapi import WebSocket
from starlette.websockets import WebSocketState

from support_relay.core.errors import ConnectionClosedError
from support_relay.core.schemas import Role

logger = logging.getLogger(__name__)


class ConnectionHandle(ABC):
    """
    Abstract live channel to one client.
    Identity is object identity; the session registry indexes handles by it.
    """

    @abstractmethod
    async def send(self, event: str, payload: Dict[str, Any]) -> None:
        """
        Send one event to the client.

        Raises:
            ConnectionClosedError: if the channel is already closed
        """

    @property
    @abstractmethod
    def is_open(self) -> bool:
        """Whether the channel can still be written to."""


class WebSocketConnection(ConnectionHandle):
    """ConnectionHandle over a FastAPI WebSocket. Frames are {"event", "data"}."""

    def __init__(self, websocket: WebSocket):
        self.websocket = websocket
        self._closed = False

    @property
    def is_open(self) -> bool:
        if self._closed:
            return False
        return self.websocket.application_state == WebSocketState.CONNECTED

    def mark_closed(self):
        self._closed = True

    async def send(self, event: str, payload: Dict[str, Any]) -> None:
        if not self.is_open:
            raise ConnectionClosedError(f"Cannot send '{event}': connection closed")
        try:
            await self.websocket.send_json({"event": event, "data": payload})
        except (RuntimeError, OSError) as e:
            self._closed = True
            raise ConnectionClosedError(f"Cannot send '{event}': {e}") from e


class ConnectionState(str, Enum):
    CONNECTED = "connected"
    AUTHENTICATED = "authenticated"
    DISCONNECTED = "disconnected"


class ClientConnection:
    """Per-connection state: the handle plus who logged in on it."""

    def __init__(self, handle: ConnectionHandle, connection_id: Optional[str] = None):
        self.handle = handle
        self.connection_id = connection_id or str(uuid.uuid4())
        self.state = ConnectionState.CONNECTED
        self.user_id: Optional[str] = None
        self.username: Optional[str] = None
        self.role: Optional[Role] = None

    @property
    def is_authenticated(self) -> bool:
        return self.state == ConnectionState.AUTHENTICATED

    def authenticate(self, user_id: str, username: str, role: Role):
        self.user_id = user_id
        self.username = username
        self.role = role
        self.state = ConnectionState.AUTHENTICATED

    def close(self):
        self.state = ConnectionState.DISCONNECTED

    def __repr__(self) -> str:
        return f"<ClientConnection {self.connection_id} state={self.state.value} user={self.user_id}>"
