"""Integration tests for the FastAPI application and the WebSocket gateway."""
import json

import pytest
from fastapi.testclient import TestClient

from conversationbot.app import create_app
from conversationbot.config import Settings, ConfigurationError
from conversationbot.gateway.base import GatewayError
from conversationbot.gateway.telegram import TelegramGateway
from conversationbot.gateway.websocket import WebSocketGateway
from conversationbot.models.schemas import Reply


@pytest.fixture
def app_settings(storage_path):
    return Settings(
        GATEWAY="websocket",
        STORAGE_FILE=storage_path,
        WS_HEARTBEAT_INTERVAL=3600
    )


def say(websocket, text):
    websocket.send_json({"type": "user_message", "data": {"text": text}})
    message = websocket.receive_json()
    assert message["type"] == "bot_message"
    return message["data"]


def test_health(app_settings):
    with TestClient(create_app(app_settings)) as client:
        response = client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["gateway"] == "websocket"
    assert body["sessions"] == 0


def test_conversation_over_websocket(app_settings, storage_path):
    with TestClient(create_app(app_settings)) as client:
        with client.websocket_connect("/ws/alice") as websocket:
            established = websocket.receive_json()
            assert established["type"] == "connection_established"
            assert established["data"]["actor_id"] == "alice"

            greeting = say(websocket, "/start")
            assert greeting["text"].startswith("Hi! My name is Doctor Botter.")
            assert greeting["keyboard"][0] == ["Age", "Favourite colour"]

            assert say(websocket, "Age")["text"] == "Your age? Yes, I would love to hear about that!"
            assert "age - 30" in say(websocket, "30")["text"]

            done = say(websocket, "Done")
            assert done["remove_keyboard"] is True

        response = client.get("/api/sessions/alice")
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["state"] == "CHOOSING"
        assert data["session"]["facts"] == {"age": "30"}

        listing = client.get("/api/sessions").json()["data"]["sessions"]
        assert [entry["actor_id"] for entry in listing] == ["alice"]

    with open(storage_path) as f:
        assert json.load(f)["alice"]["facts"] == {"age": "30"}


def test_sessions_survive_restart(app_settings):
    with TestClient(create_app(app_settings)) as client:
        with client.websocket_connect("/ws/bob") as websocket:
            websocket.receive_json()
            say(websocket, "Something else...")
            say(websocket, "Favourite food")

    with TestClient(create_app(app_settings)) as client:
        with client.websocket_connect("/ws/bob") as websocket:
            websocket.receive_json()
            reply = say(websocket, "Pizza")
            assert "favourite food - pizza" in reply["text"]


def test_heartbeat_and_unknown_message_types(app_settings):
    with TestClient(create_app(app_settings)) as client:
        with client.websocket_connect("/ws/carol") as websocket:
            websocket.receive_json()

            websocket.send_json({"type": "heartbeat"})
            assert websocket.receive_json()["type"] == "heartbeat_ack"

            websocket.send_json({"type": "telepathy", "data": {}})
            warning = websocket.receive_json()
            assert warning["type"] == "warning"
            assert "telepathy" in warning["data"]["message"]


def test_health_reports_websocket_connections(app_settings):
    with TestClient(create_app(app_settings)) as client:
        assert client.get("/health").json()["connections"] == 0

        with client.websocket_connect("/ws/dave") as websocket:
            websocket.receive_json()
            assert client.get("/health").json()["connections"] == 1


@pytest.mark.asyncio
async def test_websocket_send_without_connection_raises():
    async with WebSocketGateway() as gateway:
        with pytest.raises(GatewayError):
            await gateway.send("nobody", Reply(text="hello?"))


@pytest.mark.asyncio
async def test_telegram_gateway_as_context_manager():
    async with TelegramGateway(token="abc") as gateway:
        assert gateway.session is not None

    assert gateway.session is None


def test_unknown_session_is_404(app_settings):
    with TestClient(create_app(app_settings)) as client:
        response = client.get("/api/sessions/nobody")

    assert response.status_code == 404


def test_missing_token_refuses_to_start(storage_path):
    app = create_app(Settings(GATEWAY="telegram", TELEGRAM_TOKEN="", STORAGE_FILE=storage_path))

    with pytest.raises(ConfigurationError):
        with TestClient(app):
            pass
