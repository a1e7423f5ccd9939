"""
In-process message store.
"""

import asyncio
import logging
from typing import List

from support_relay.data_access.base import MessageStore
from support_relay.core.schemas import ChatMessage

logger = logging.getLogger(__name__)


class InMemoryMessageStore(MessageStore):
    """Keeps messages in a list. Appends are serialized, ids start at 1."""

    def __init__(self):
        self._messages: List[ChatMessage] = []
        self._next_id = 1
        self._lock = asyncio.Lock()

    async def append(self, message: ChatMessage) -> int:
        async with self._lock:
            message_id = self._next_id
            self._next_id += 1
            self._messages.append(message.with_id(message_id))
        logger.debug(f"Stored message {message_id} from {message.sender_id} to {message.recipient_id}")
        return message_id

    async def query_by_user(self, user_id: str) -> List[ChatMessage]:
        async with self._lock:
            matches = [
                m for m in self._messages
                if m.sender_id == user_id or m.recipient_id == user_id
            ]
        return sorted(matches, key=lambda m: (m.timestamp, m.id))

    def __len__(self) -> int:
        return len(self._messages)
