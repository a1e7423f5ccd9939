"""
Redis-backed message store.

Layout:
    {prefix}:seq            INCR counter, source of message ids
    {prefix}:msg:{id}       JSON body of one message
    {prefix}:user:{uid}     sorted set of message ids, scored by timestamp
"""

import json
import logging
from typing import Any, Dict, List, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from support_relay.core.errors import PersistenceFailure
from support_relay.data_access.base import MessageStore
from support_relay.core.schemas import ChatMessage

logger = logging.getLogger(__name__)


class RedisMessageStore(MessageStore):
    """
    Stores messages in Redis.
    Ids come from an atomic INCR, so they are unique and monotonic across
    every relay process sharing the same Redis. A failed write leaves a gap
    in the id sequence but no partial message.
    """

    def __init__(self, redis_config: Dict[str, Any], client: Optional[Any] = None):
        """
        Initialize the store.

        Args:
            redis_config: Redis connection configuration
            client: Pre-built redis client (used by tests)
        """
        self.redis_config = redis_config
        self.prefix = redis_config.get('key_prefix', 'relay')
        self.redis_client = client

    async def connect(self):
        """Connect to Redis."""
        if self.redis_client is None:
            self.redis_client = redis.Redis(
                host=self.redis_config.get('host', 'localhost'),
                port=self.redis_config.get('port', 6379),
                db=self.redis_config.get('db', 0),
                password=self.redis_config.get('password'),
                decode_responses=True
            )

        try:
            await self.redis_client.ping()
            logger.info("Connected to Redis for message storage")
        except (RedisError, OSError) as e:
            # Appends will fail with PersistenceFailure until Redis is back.
            logger.error(f"Failed to connect to Redis: {e}")

    async def disconnect(self):
        """Disconnect from Redis."""
        if self.redis_client is not None:
            await self.redis_client.aclose()
            self.redis_client = None
            logger.info("Disconnected from Redis")

    async def health_check(self) -> bool:
        if self.redis_client is None:
            return False
        try:
            return bool(await self.redis_client.ping())
        except (RedisError, OSError):
            return False

    def _seq_key(self) -> str:
        return f"{self.prefix}:seq"

    def _message_key(self, message_id) -> str:
        return f"{self.prefix}:msg:{message_id}"

    def _user_key(self, user_id: str) -> str:
        return f"{self.prefix}:user:{user_id}"

    async def append(self, message: ChatMessage) -> int:
        if self.redis_client is None:
            raise PersistenceFailure("Message store is not connected")

        try:
            message_id = int(await self.redis_client.incr(self._seq_key()))
            stored = message.with_id(message_id)

            # Body and both index entries land together or not at all
            async with self.redis_client.pipeline(transaction=True) as pipe:
                pipe.set(self._message_key(message_id), stored.model_dump_json())
                for user_id in {stored.sender_id, stored.recipient_id}:
                    pipe.zadd(self._user_key(user_id), {str(message_id): stored.timestamp})
                await pipe.execute()
        except (RedisError, OSError) as e:
            logger.error(f"Failed to store message from {message.sender_id}: {e}")
            raise PersistenceFailure(f"Failed to store message: {e}") from e

        logger.debug(f"Stored message {message_id} in Redis")
        return message_id

    async def query_by_user(self, user_id: str) -> List[ChatMessage]:
        if self.redis_client is None:
            raise PersistenceFailure("Message store is not connected")

        try:
            ids = await self.redis_client.zrange(self._user_key(user_id), 0, -1)
            if not ids:
                return []
            raw_messages = await self.redis_client.mget(
                [self._message_key(message_id) for message_id in ids]
            )
        except (RedisError, OSError) as e:
            logger.error(f"Failed to read messages for {user_id}: {e}")
            raise PersistenceFailure(f"Failed to read messages: {e}") from e

        messages = [
            ChatMessage.model_validate(json.loads(raw))
            for raw in raw_messages
            if raw is not None
        ]
        return sorted(messages, key=lambda m: (m.timestamp, m.id))
