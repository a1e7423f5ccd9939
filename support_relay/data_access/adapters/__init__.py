"""Default collaborator implementations."""

from .memory_store import InMemoryMessageStore
from .redis_store import RedisMessageStore
from .user_directory import InMemoryUserDirectory
from .token_auth import TokenAuthProvider

__all__ = [
    'InMemoryMessageStore',
    'RedisMessageStore',
    'InMemoryUserDirectory',
    'TokenAuthProvider'
]
