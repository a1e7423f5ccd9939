"""Mock objects for testing"""

from .mock_connections import RecordingConnection
from .mock_adapters import FailingMessageStore, UnorderedMessageStore, FakeRedis, FakePipeline

__all__ = [
    'RecordingConnection',
    'FailingMessageStore',
    'UnorderedMessageStore',
    'FakeRedis',
    'FakePipeline'
]
