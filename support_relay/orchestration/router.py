"""
Message router: request handlers for the relay protocol.

Every handler returns a response model and never raises. Failures are
rendered as success=False plus an error message so the client always gets
a definitive answer for each request.
"""

import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

from support_relay.core.errors import (
    ConnectionClosedError,
    PersistenceFailure,
    ProtocolFailure,
    RelayError,
    ValidationFailure,
)
from support_relay.core.schemas import (
    ChatMessage,
    CustomersResponse,
    ErrorResponse,
    LoginResponse,
    MessageResponse,
    MessagesResponse,
    Role,
    WireModel,
    now_millis,
    to_customer_summary,
    to_login_response,
    to_notification,
)
from support_relay.core import schemas
from support_relay.data_access.base import AuthProvider, MessageStore, UserDirectory
from support_relay.orchestration.connection import ClientConnection
from support_relay.orchestration.session_registry import SessionRegistry

logger = logging.getLogger(__name__)

INTERNAL_ERROR = "Internal server error"


class DeliveryOutcome(str, Enum):
    DELIVERED = "delivered"
    OFFLINE = "offline"
    FAILED = "failed"


def _optional_str(payload: Dict[str, Any], key: str) -> Optional[str]:
    value = payload.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationFailure(f"Field '{key}' must be a string")
    value = value.strip()
    return value or None


def _required_str(payload: Dict[str, Any], key: str) -> str:
    value = _optional_str(payload, key)
    if value is None:
        raise ValidationFailure(f"Field '{key}' is required")
    return value


class MessageRouter:
    """
    Routes protocol events to handlers.

    Holds no per-connection state; everything shared lives in the session
    registry, which is passed in by whoever owns its lifecycle.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        auth_provider: AuthProvider,
        message_store: MessageStore,
        user_directory: UserDirectory,
        support_desk_id: str = "manager",
    ):
        self.registry = registry
        self.auth_provider = auth_provider
        self.message_store = message_store
        self.user_directory = user_directory
        self.support_desk_id = support_desk_id

        # inbound event -> (handler, response event, response model)
        self.event_handlers: Dict[str, Tuple[Callable[..., Awaitable[WireModel]], str, type]] = {
            schemas.LOGIN: (self.handle_login, schemas.LOGIN_RESPONSE, LoginResponse),
            schemas.SEND_MESSAGE: (self.handle_send_message, schemas.MESSAGE_RESPONSE, MessageResponse),
            schemas.GET_MESSAGES: (self.handle_get_messages, schemas.MESSAGES_RESPONSE, MessagesResponse),
            schemas.GET_CUSTOMERS: (self.handle_get_customers, schemas.CUSTOMERS_RESPONSE, CustomersResponse),
        }

    async def dispatch(self, connection: ClientConnection, event: str, payload: Any) -> Tuple[str, WireModel]:
        """
        Route one inbound event.

        Returns:
            (response event name, response model)
        """
        entry = self.event_handlers.get(event)
        if entry is None:
            logger.warning(f"Unknown event '{event}' on {connection.connection_id}")
            return schemas.ERROR, ErrorResponse(error=f"Unknown event: {event}")

        handler, response_event, response_model = entry
        if payload is None:
            payload = {}
        if not isinstance(payload, dict):
            return response_event, response_model(success=False, error=f"Malformed payload for '{event}'")

        return response_event, await handler(connection, payload)

    def _failure(self, response_model: type, action: str, error: Exception) -> WireModel:
        if isinstance(error, RelayError):
            logger.warning(f"{action} failed ({error.code}): {error.message}")
            return response_model(success=False, error=error.message)
        logger.error(f"{action} failed: {error}", exc_info=True)
        return response_model(success=False, error=INTERNAL_ERROR)

    def _require_login(self, connection: ClientConnection, action: str):
        if not connection.is_authenticated:
            raise ProtocolFailure(f"Login required before {action}")

    async def handle_login(self, connection: ClientConnection, payload: Dict[str, Any]) -> LoginResponse:
        try:
            username = _required_str(payload, "username")
            role = _required_str(payload, "role")
            logger.info(f"📥 Login request: {username} as {role}")

            result = await self.auth_provider.authenticate(username, role)

            # Re-login on the same connection under another identity
            if connection.is_authenticated and connection.user_id != result.user_id:
                self.registry.unregister(connection.handle)

            self.registry.register(result.user_id, connection.handle, result.role)
            connection.authenticate(result.user_id, result.username, result.role)

            logger.info(f"📤 Login successful for {result.username} ({result.user_id})")
            return to_login_response(result)

        except Exception as e:
            return self._failure(LoginResponse, "Login", e)

    async def handle_send_message(self, connection: ClientConnection, payload: Dict[str, Any]) -> MessageResponse:
        try:
            self._require_login(connection, "sending messages")
            message = self._normalize_message(connection, payload)

            # Persist first; nothing is pushed for an unpersisted message
            try:
                message_id = await self.message_store.append(message)
            except PersistenceFailure:
                raise
            except Exception as e:
                raise PersistenceFailure(f"Failed to store message: {e}") from e
            message = message.with_id(message_id)

            await self.deliver(message)

            return MessageResponse(success=True, message="Message sent successfully")

        except Exception as e:
            return self._failure(MessageResponse, "Send message", e)

    def _normalize_message(self, connection: ClientConnection, payload: Dict[str, Any]) -> ChatMessage:
        content = payload.get("content")
        if not isinstance(content, str) or not content.strip():
            raise ValidationFailure("Field 'content' is required")

        raw_role = payload.get("role")
        role = Role.CUSTOMER if raw_role is None else Role.parse(raw_role)

        return ChatMessage(
            sender_id=_optional_str(payload, "senderId") or connection.user_id,
            sender_name=_optional_str(payload, "senderName") or connection.username or connection.user_id,
            recipient_id=_optional_str(payload, "recipientId") or self.support_desk_id,
            content=content,
            role=role,
            timestamp=now_millis(),
        )

    async def deliver(self, message: ChatMessage) -> DeliveryOutcome:
        """Best-effort push of a persisted message to the recipient's live session."""
        handle = self.registry.lookup(message.recipient_id)
        if handle is None:
            logger.info(f"⚠️ Recipient {message.recipient_id} is not online, message {message.id} kept for later")
            return DeliveryOutcome.OFFLINE

        try:
            await handle.send(schemas.NEW_MESSAGE, to_notification(message).to_wire())
        except ConnectionClosedError as e:
            logger.warning(f"Delivery of message {message.id} to {message.recipient_id} failed: {e}")
            return DeliveryOutcome.FAILED
        except Exception as e:
            logger.warning(f"Delivery of message {message.id} to {message.recipient_id} failed: {e}", exc_info=True)
            return DeliveryOutcome.FAILED

        logger.info(f"📤 Message {message.id} delivered to {message.recipient_id}")
        return DeliveryOutcome.DELIVERED

    async def handle_get_messages(self, connection: ClientConnection, payload: Dict[str, Any]) -> MessagesResponse:
        try:
            self._require_login(connection, "reading messages")
            user_id = _required_str(payload, "userId")

            try:
                messages = await self.message_store.query_by_user(user_id)
            except PersistenceFailure:
                raise
            except Exception as e:
                raise PersistenceFailure(f"Failed to read messages: {e}") from e

            ordered = sorted(messages, key=lambda m: (m.timestamp, m.id or 0))
            logger.info(f"📤 Sending {len(ordered)} messages for {user_id}")
            return MessagesResponse(success=True, messages=[to_notification(m) for m in ordered])

        except Exception as e:
            return self._failure(MessagesResponse, "Get messages", e)

    async def handle_get_customers(self, connection: ClientConnection, payload: Dict[str, Any]) -> CustomersResponse:
        try:
            self._require_login(connection, "listing customers")

            records = await self.user_directory.list_by_role(Role.CUSTOMER)
            customers = [
                to_customer_summary(record, self.registry.is_online(record.id))
                for record in records
                if record.role is Role.CUSTOMER
            ]
            logger.info(f"📤 Sending {len(customers)} customers")
            return CustomersResponse(success=True, customers=customers)

        except Exception as e:
            return self._failure(CustomersResponse, "Get customers", e)

    def handle_disconnect(self, connection: ClientConnection) -> Optional[str]:
        """Drop the connection's session, if it still owns one."""
        user_id = self.registry.unregister(connection.handle)
        connection.close()
        if user_id is not None:
            logger.info(f"{user_id} went offline")
        return user_id
