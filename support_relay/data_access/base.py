"""
Collaborator interfaces consumed by the message router.
All concrete stores and providers must implement these.
"""

from abc import ABC, abstractmethod
from typing import List, Optional
import logging

from support_relay.core.schemas import AuthResult, ChatMessage, Role, UserRecord

logger = logging.getLogger(__name__)


class MessageStore(ABC):
    """
    Durable message storage.
    Implementations assign ids that are unique and monotonic within the store.
    """

    async def connect(self) -> None:
        """Open the underlying storage, if any."""

    async def disconnect(self) -> None:
        """Release the underlying storage, if any."""

    async def health_check(self) -> bool:
        return True

    @abstractmethod
    async def append(self, message: ChatMessage) -> int:
        """
        Persist a message.

        Args:
            message: Message without an id

        Returns:
            The store-assigned message id

        Raises:
            PersistenceFailure: if the store is unavailable or rejects the write
        """

    @abstractmethod
    async def query_by_user(self, user_id: str) -> List[ChatMessage]:
        """
        Get every message where user_id is sender or recipient.

        Returns:
            Messages ordered by timestamp, then id

        Raises:
            PersistenceFailure: if the store cannot be read
        """


class UserDirectory(ABC):
    """Registry of known users."""

    @abstractmethod
    async def list_by_role(self, role: Role) -> List[UserRecord]:
        """Get all users with the given role."""

    @abstractmethod
    async def get_by_username(self, username: str) -> Optional[UserRecord]:
        """Get a user by username, or None."""

    @abstractmethod
    async def get_or_create(self, username: str, role: Role) -> UserRecord:
        """Get a user by username, creating the record if it does not exist."""


class AuthProvider(ABC):
    """Credential check and identity issuance."""

    @abstractmethod
    async def authenticate(self, username: str, role: str) -> AuthResult:
        """
        Authenticate a login request.

        Raises:
            AuthFailure: bad credentials, unknown user or unknown role
        """
