"""Orchestration layer: connections, session registry and message routing."""

from .connection import ConnectionHandle, WebSocketConnection, ClientConnection, ConnectionState
from .session_registry import SessionRegistry, Session
from .router import MessageRouter, DeliveryOutcome
from .websocket_handler import WebSocketHandler

__all__ = [
    'ConnectionHandle',
    'WebSocketConnection',
    'ClientConnection',
    'ConnectionState',
    'SessionRegistry',
    'Session',
    'MessageRouter',
    'DeliveryOutcome',
    'WebSocketHandler'
]
