"""Integration tests for complete WebSocket relay flow"""
from typing import Any, Dict

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketState

from support_relay.main import create_app
from support_relay.orchestration import ClientConnection, WebSocketConnection, WebSocketHandler
from support_relay.orchestration.websocket_handler import build_frame


def request(ws, event: str, data: Dict[str, Any] = None) -> Dict[str, Any]:
    """Send one frame and return the next frame received"""
    ws.send_json(build_frame(event, data))
    return ws.receive_json()


def login(ws, username: str, role: str = "CUSTOMER") -> Dict[str, Any]:
    frame = request(ws, "login", {"username": username, "role": role})
    assert frame["event"] == "login_response"
    assert frame["data"]["success"], frame["data"]["error"]
    return frame["data"]


@pytest.fixture
def client(test_config):
    """Test client running the full application lifespan"""
    with TestClient(create_app(test_config)) as test_client:
        yield test_client


class MockWebSocket:
    """Mock WebSocket connection for testing"""

    def __init__(self):
        self.messages_sent = []
        self.application_state = WebSocketState.CONNECTED

    async def send_json(self, data: Dict[str, Any]):
        """Mock send JSON"""
        self.messages_sent.append(data)


class TestRelayFlow:
    """End-to-end flows over real WebSocket sessions"""

    def test_offline_message_is_available_to_manager_later(self, client):
        """Customer writes while no manager is online; manager reads it after logging in"""
        with client.websocket_connect("/ws") as alice_ws:
            alice = login(alice_ws, "alice")
            assert alice["role"] == "CUSTOMER"
            assert alice["token"]

            ack = request(alice_ws, "send_message", {
                "senderId": alice["userId"],
                "senderName": "alice",
                "content": "hi",
            })
            assert ack == {
                "event": "message_response",
                "data": {"success": True, "message": "Message sent successfully", "error": None},
            }

            with client.websocket_connect("/ws") as bob_ws:
                bob = login(bob_ws, "bob", "MANAGER")
                assert bob["userId"] == "manager"

                # Next frame is the response, so nothing was pushed at login
                history = request(bob_ws, "get_messages", {"userId": "manager"})

            assert history["event"] == "messages_response"
            messages = history["data"]["messages"]
            assert len(messages) == 1
            assert messages[0]["senderId"] == alice["userId"]
            assert messages[0]["content"] == "hi"
            assert messages[0]["isFromCustomer"] is True

    def test_live_conversation(self, client):
        with client.websocket_connect("/ws") as bob_ws, client.websocket_connect("/ws") as alice_ws:
            login(bob_ws, "bob", "MANAGER")
            alice = login(alice_ws, "alice")

            ack = request(alice_ws, "send_message", {"content": "my order is late"})
            assert ack["data"]["success"]

            push = bob_ws.receive_json()
            assert push["event"] == "new_message"
            assert push["data"]["content"] == "my order is late"
            assert push["data"]["senderName"] == "alice"
            assert push["data"]["id"] == 1

            reply_ack = request(bob_ws, "send_message", {
                "senderId": "manager",
                "senderName": "bob",
                "recipientId": alice["userId"],
                "content": "looking into it",
                "role": "MANAGER",
            })
            assert reply_ack["data"]["success"]

            reply = alice_ws.receive_json()
            assert reply["event"] == "new_message"
            assert reply["data"]["isFromCustomer"] is False

            history = request(alice_ws, "get_messages", {"userId": alice["userId"]})
            assert [m["content"] for m in history["data"]["messages"]] == ["my order is late", "looking into it"]
            assert [m["id"] for m in history["data"]["messages"]] == [1, 2]

    def test_latest_manager_login_receives_pushes(self, client):
        """A second manager login supersedes the first; closing the first keeps the second"""
        with client.websocket_connect("/ws") as second_ws:
            with client.websocket_connect("/ws") as first_ws:
                login(first_ws, "bob", "MANAGER")
                login(second_ws, "support", "MANAGER")

            with client.websocket_connect("/ws") as alice_ws:
                login(alice_ws, "alice")
                request(alice_ws, "send_message", {"content": "anyone there?"})

            push = second_ws.receive_json()
            assert push["event"] == "new_message"
            assert push["data"]["content"] == "anyone there?"

    def test_customer_presence(self, client):
        with client.websocket_connect("/ws") as bob_ws, client.websocket_connect("/ws") as alice_ws:
            login(bob_ws, "bob", "MANAGER")
            alice = login(alice_ws, "alice")

            frame = request(bob_ws, "get_customers")

            assert frame["event"] == "customers_response"
            customers = frame["data"]["customers"]
            assert customers == [
                {"id": alice["userId"], "username": "alice", "role": "CUSTOMER", "isOnline": True}
            ]

    def test_registration_closed_by_config_reload(self, client, config_dir, test_config):
        with client.websocket_connect("/ws") as ws:
            login(ws, "alice")

            (config_dir / "config.yaml").write_text(
                "directory:\n"
                "  users:\n"
                "    - username: support\n"
                "      role: MANAGER\n"
                "auth:\n"
                "  allow_registration: false\n"
            )
            test_config.reload_config()

            rejected = request(ws, "login", {"username": "frank", "role": "CUSTOMER"})
            assert rejected["data"]["success"] is False
            assert rejected["data"]["error"] == "Unknown user: frank"

            # Users registered before the reload keep working
            assert login(ws, "alice")["username"] == "alice"

    def test_registry_tracks_sessions(self, client):
        with client.websocket_connect("/ws") as alice_ws:
            login(alice_ws, "alice")
            assert client.get("/health").json()["online_sessions"] == 1


class TestHttpEndpoints:

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["environment"] == "test"
        assert body["message_store"] == "healthy"
        assert body["online_sessions"] == 0

    def test_info(self, client):
        body = client.get("/api/v1/info").json()

        assert body["websocket_path"] == "/ws"
        assert "send_message" in body["events"]["inbound"]
        assert "new_message" in body["events"]["outbound"]

    def test_not_found(self, client):
        response = client.get("/nowhere")

        assert response.status_code == 404
        assert response.json() == {"error": "Resource not found"}


class TestFrameProcessing:
    """WebSocketHandler.process_frame against a mock socket"""

    @pytest.mark.asyncio
    async def test_login_frame(self, router):
        mock_ws = MockWebSocket()
        connection = ClientConnection(WebSocketConnection(mock_ws))
        handler = WebSocketHandler(router)

        assert await handler.process_frame(build_frame("login", {"username": "alice", "role": "CUSTOMER"}), connection)

        assert len(mock_ws.messages_sent) == 1
        frame = mock_ws.messages_sent[0]
        assert frame["event"] == "login_response"
        assert frame["data"]["success"]
        assert connection.is_authenticated

    @pytest.mark.asyncio
    async def test_closed_socket_stops_listener(self, router):
        mock_ws = MockWebSocket()
        mock_ws.application_state = WebSocketState.DISCONNECTED
        connection = ClientConnection(WebSocketConnection(mock_ws))
        handler = WebSocketHandler(router)

        assert not await handler.process_frame(build_frame("get_customers"), connection)
        assert mock_ws.messages_sent == []
