"""
WebSocket Handler for the realtime relay.
Runs one receive loop per client and hands every event to the message router.
"""

import json
import logging
from typing import Any, Dict, Optional

from fastapi import WebSocket, WebSocketDisconnect

from support_relay.core.errors import ConnectionClosedError
from support_relay.core import schemas
from support_relay.orchestration.connection import ClientConnection, WebSocketConnection
from support_relay.orchestration.router import MessageRouter

logger = logging.getLogger(__name__)


class WebSocketHandler:
    """
    Handles WebSocket connections for the relay.
    Frames in both directions are {"event": <name>, "data": <payload>}.
    """

    def __init__(self, router: MessageRouter):
        """
        Initialize WebSocket handler.

        Args:
            router: MessageRouter shared by every connection
        """
        self.router = router

    async def handle_connection(self, websocket: WebSocket):
        """
        Handle a WebSocket connection lifecycle.

        Steps:
        1. Accept WebSocket connection
        2. Start message listener loop
        3. Remove the session on disconnect
        """
        await websocket.accept()
        handle = WebSocketConnection(websocket)
        connection = ClientConnection(handle)
        logger.info(f"🔗 Client connected: {connection.connection_id}")

        try:
            await self._message_listener(websocket, connection)
        except WebSocketDisconnect:
            pass
        except Exception as e:
            logger.error(f"WebSocket error for {connection.connection_id}: {e}", exc_info=True)
        finally:
            handle.mark_closed()
            self.router.handle_disconnect(connection)
            logger.info(f"❌ Client disconnected: {connection.connection_id}")

    async def _message_listener(self, websocket: WebSocket, connection: ClientConnection):
        """Listen for frames until the client goes away."""
        while True:
            try:
                frame = await websocket.receive_json()
            except WebSocketDisconnect:
                break
            except (json.JSONDecodeError, UnicodeDecodeError, KeyError) as e:
                await self._send(connection, schemas.ERROR, {
                    'success': False,
                    'error': f'Invalid JSON: {str(e)}'
                })
                continue

            if not await self.process_frame(frame, connection):
                break

    async def process_frame(self, frame: Any, connection: ClientConnection) -> bool:
        """
        Dispatch one decoded frame and send its response.

        Returns:
            False if the client can no longer be written to
        """
        event = frame.get('event') if isinstance(frame, dict) else None
        if not isinstance(event, str) or not event:
            return await self._send(connection, schemas.ERROR, {
                'success': False,
                'error': 'Malformed frame: expected {"event": <name>, "data": <object>}'
            })

        logger.debug(f"Processing event '{event}' on {connection.connection_id}")
        response_event, response = await self.router.dispatch(connection, event, frame.get('data'))
        return await self._send(connection, response_event, response.to_wire())

    async def _send(self, connection: ClientConnection, event: str, payload: Dict[str, Any]) -> bool:
        try:
            await connection.handle.send(event, payload)
            return True
        except ConnectionClosedError as e:
            logger.warning(f"Could not send '{event}' to {connection.connection_id}: {e}")
            return False


def build_frame(event: str, data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Build a client frame; handy for clients and tests."""
    return {'event': event, 'data': data or {}}
