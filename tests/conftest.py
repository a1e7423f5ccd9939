"""
Pytest configuration and fixtures for relay tests
"""
import pytest

from support_relay.core.config import AppSettings, ConfigLoader
from support_relay.data_access.adapters import (
    InMemoryMessageStore,
    InMemoryUserDirectory,
    TokenAuthProvider,
)
from support_relay.orchestration import ClientConnection, MessageRouter, SessionRegistry
from tests.mocks import RecordingConnection


TEST_SECRET = "test-secret-key"


@pytest.fixture
def registry():
    """Fresh session registry"""
    return SessionRegistry()


@pytest.fixture
def message_store():
    """In-memory message store"""
    return InMemoryMessageStore()


@pytest.fixture
def user_directory():
    """Directory seeded with one manager and one known customer"""
    return InMemoryUserDirectory([
        {"username": "support", "role": "MANAGER"},
        {"username": "carol", "role": "CUSTOMER", "id": "customer-carol"},
    ])


@pytest.fixture
def auth_provider(user_directory):
    """JWT auth provider over the test directory"""
    return TokenAuthProvider(
        user_directory=user_directory,
        secret_key=TEST_SECRET,
        support_desk_id="manager",
    )


@pytest.fixture
def router(registry, auth_provider, message_store, user_directory):
    """Message router wired to in-memory collaborators"""
    return MessageRouter(
        registry=registry,
        auth_provider=auth_provider,
        message_store=message_store,
        user_directory=user_directory,
        support_desk_id="manager",
    )


@pytest.fixture
def make_connection():
    """Factory for client connections over recording handles"""
    def _make(name: str = "client") -> ClientConnection:
        return ClientConnection(RecordingConnection(name))
    return _make


@pytest.fixture
def login(router):
    """Log a connection in and return the login response"""
    async def _login(connection: ClientConnection, username: str, role: str = "CUSTOMER"):
        response = await router.handle_login(connection, {"username": username, "role": role})
        assert response.success, response.error
        return response
    return _login


@pytest.fixture
def config_dir(tmp_path):
    """Config directory with a minimal test configuration"""
    (tmp_path / "config.yaml").write_text(
        "server:\n"
        "  port: 9999\n"
        "relay:\n"
        "  support_desk_id: manager\n"
        "  websocket_path: /ws\n"
        "storage:\n"
        "  backend: memory\n"
        "directory:\n"
        "  users:\n"
        "    - username: support\n"
        "      role: MANAGER\n"
    )
    return tmp_path


@pytest.fixture
def test_config(config_dir):
    """Config loader reading the test configuration"""
    settings = AppSettings(environment="test", secret_key=TEST_SECRET)
    return ConfigLoader(config_dir=str(config_dir), settings=settings)
