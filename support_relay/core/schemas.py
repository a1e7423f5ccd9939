"""
Wire and domain models for the relay protocol.
Field names are snake_case in Python and camelCase on the wire.
"""

import time
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from support_relay.core.errors import ValidationFailure


# Event names
LOGIN = "login"
SEND_MESSAGE = "send_message"
GET_MESSAGES = "get_messages"
GET_CUSTOMERS = "get_customers"

LOGIN_RESPONSE = "login_response"
MESSAGE_RESPONSE = "message_response"
MESSAGES_RESPONSE = "messages_response"
CUSTOMERS_RESPONSE = "customers_response"
NEW_MESSAGE = "new_message"
ERROR = "error"


class Role(str, Enum):
    """User class. Closed set, parsed with Role.parse()."""
    CUSTOMER = "CUSTOMER"
    MANAGER = "MANAGER"

    @classmethod
    def parse(cls, value) -> "Role":
        """Parse a role tag, raising ValidationFailure for anything unknown."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().upper())
            except ValueError:
                pass
        raise ValidationFailure(f"Unknown role: {value!r}")


def now_millis() -> int:
    return int(time.time() * 1000)


class WireModel(BaseModel):
    """Base for every model that crosses the connection boundary."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


class ChatMessage(WireModel):
    """A chat message. Immutable; id is assigned by the message store."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: Optional[int] = None
    sender_id: str
    sender_name: str
    recipient_id: str
    content: str
    role: Role = Role.CUSTOMER
    timestamp: int = Field(default_factory=now_millis)

    def with_id(self, message_id: int) -> "ChatMessage":
        return self.model_copy(update={"id": message_id})


class UserRecord(WireModel):
    """User directory entry."""
    id: str
    username: str
    role: Role


class AuthResult(WireModel):
    """Identity issued by the auth provider."""
    token: str
    user_id: str
    username: str
    role: Role


class MessageNotification(WireModel):
    """Payload of new_message pushes and of message history items."""
    id: Optional[int] = None
    sender_id: str
    sender_name: str
    content: str
    timestamp: int
    is_from_customer: bool


class CustomerSummary(WireModel):
    """Directory record annotated with live presence."""
    id: str
    username: str
    role: Role
    is_online: bool


# Responses

class LoginResponse(WireModel):
    success: bool
    token: Optional[str] = None
    role: Optional[Role] = None
    user_id: Optional[str] = None
    username: Optional[str] = None
    error: Optional[str] = None


class MessageResponse(WireModel):
    success: bool
    message: Optional[str] = None
    error: Optional[str] = None


class MessagesResponse(WireModel):
    success: bool
    messages: List[MessageNotification] = Field(default_factory=list)
    error: Optional[str] = None


class CustomersResponse(WireModel):
    success: bool
    customers: List[CustomerSummary] = Field(default_factory=list)
    error: Optional[str] = None


class ErrorResponse(WireModel):
    success: bool = False
    error: Optional[str] = None


# Response mapping helpers

def to_notification(message: ChatMessage) -> MessageNotification:
    return MessageNotification(
        id=message.id,
        sender_id=message.sender_id,
        sender_name=message.sender_name,
        content=message.content,
        timestamp=message.timestamp,
        is_from_customer=message.role is Role.CUSTOMER,
    )


def to_login_response(result: AuthResult) -> LoginResponse:
    return LoginResponse(
        success=True,
        token=result.token,
        role=result.role,
        user_id=result.user_id,
        username=result.username,
    )


def to_customer_summary(record: UserRecord, is_online: bool) -> CustomerSummary:
    return CustomerSummary(
        id=record.id,
        username=record.username,
        role=record.role,
        is_online=is_online,
    )
