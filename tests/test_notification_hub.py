"""
Commission Tracker - Notification Hub Tests

Hub fan-out rules and the /ws/notifications endpoint.
"""

import uuid
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from app.database import get_async_session
from app.models.user import User, UserRole
from app.routers.websocket import channel_list
from app.services.notification_hub import (
    NotificationHub,
    RecordEventType,
    build_record_event,
    get_notification_hub,
)
from app.utils.security import create_access_token
from main import app


def _socket() -> AsyncMock:
    return AsyncMock()


def _events(socket, name="record-event"):
    return [
        call.args[0]
        for call in socket.send_json.await_args_list
        if call.args[0]["event"] == name
    ]


class TestBuildRecordEvent:

    def test_event_shape(self):
        event = build_record_event(RecordEventType.CREATED, {"id": "abc", "advisor_id": 1})

        assert event["id"].startswith("record-created-")
        assert event["type"] == "record-created"
        assert event["record"] == {"id": "abc", "advisor_id": 1}
        assert event["description"] == "New record registered"
        assert "T" in event["timestamp"]

    def test_custom_description(self):
        event = build_record_event("record-updated", {}, "Payment settled")

        assert event["type"] == "record-updated"
        assert event["description"] == "Payment settled"


class TestNotificationHub:

    @pytest.mark.asyncio
    async def test_connect_sends_welcome(self):
        hub = NotificationHub()
        socket = _socket()

        connection_id = await hub.connect(socket, user_id=uuid.uuid4(), role="admin")

        socket.accept.assert_awaited_once()
        welcome = _events(socket, "connected")[0]
        assert welcome["data"]["connection_id"] == connection_id
        assert welcome["data"]["channels"] == ["records", "system"]
        assert hub.get_connection_count() == 1

    @pytest.mark.asyncio
    async def test_already_accepted_socket(self):
        hub = NotificationHub()
        socket = _socket()

        await hub.connect(socket, user_id=uuid.uuid4(), role="admin", accepted=True)

        socket.accept.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_record_events_scoped_by_advisor(self):
        hub = NotificationHub()
        own, other, admin, accounting = _socket(), _socket(), _socket(), _socket()
        await hub.connect(own, user_id=uuid.uuid4(), role="advisor", advisor_id=1)
        await hub.connect(other, user_id=uuid.uuid4(), role="advisor", advisor_id=2)
        await hub.connect(admin, user_id=uuid.uuid4(), role="admin")
        await hub.connect(accounting, user_id=uuid.uuid4(), role="accounting")

        event_id = await hub.publish_record_event(RecordEventType.UPDATED, {"id": "r1", "advisor_id": 1})

        assert isinstance(event_id, str)
        assert event_id.startswith("record-updated-")
        for socket in (own, admin, accounting):
            messages = _events(socket)
            assert len(messages) == 1
            assert messages[0]["data"]["id"] == event_id
            assert messages[0]["data"]["record"] == {"id": "r1", "advisor_id": 1}
        assert _events(other) == []

    @pytest.mark.asyncio
    async def test_unsubscribed_connection_skipped(self):
        hub = NotificationHub()
        socket = _socket()
        connection_id = await hub.connect(socket, user_id=uuid.uuid4(), role="admin")

        await hub.unsubscribe(connection_id, ["records"])
        await hub.publish_record_event(RecordEventType.CREATED, {"id": "r1", "advisor_id": 1})

        assert _events(socket) == []
        assert hub.get_stats()["channels"] == {"system": 1}

    @pytest.mark.asyncio
    async def test_failed_send_drops_connection(self):
        hub = NotificationHub()
        socket = _socket()
        await hub.connect(socket, user_id=uuid.uuid4(), role="admin")
        socket.send_json.side_effect = RuntimeError("socket closed")

        await hub.publish_record_event(RecordEventType.DELETED, {"id": "r1"})

        assert hub.get_connection_count() == 0
        assert hub.get_stats()["unique_users"] == 0

    @pytest.mark.asyncio
    async def test_send_to_user_and_heartbeat(self):
        hub = NotificationHub()
        user_id = uuid.uuid4()
        socket = _socket()
        connection_id = await hub.connect(socket, user_id=user_id, role="advisor", advisor_id=3)

        assert await hub.send_to_user(user_id, "system", {"message": "hola"}) == 1
        await hub.heartbeat(connection_id)

        assert _events(socket, "pong")

        await hub.disconnect(connection_id)
        assert await hub.send_to_user(user_id, "system", {}) == 0


class TestChannelList:

    def test_accepts_list_of_names(self):
        assert channel_list(["records", "system"]) == ["records", "system"]
        assert channel_list(None) == []

    @pytest.mark.parametrize("value", ["records", {"records": True}, ["records", 1]])
    def test_rejects_other_shapes(self, value):
        assert channel_list(value) is None


class FakeSession:
    """Stands in for the database session; only ``get`` is used by the socket endpoint."""

    def __init__(self, user):
        self.user = user

    async def get(self, model, key):
        if self.user is not None and key == self.user.id:
            return self.user
        return None


class TestNotificationsWebSocket:

    @pytest.fixture
    def advisor(self):
        return User(
            id=uuid.uuid4(),
            username="ana.rojas@example.com",
            hashed_password="x",
            role=UserRole.ADVISOR,
            advisor_id=1,
            is_active=True,
        )

    @pytest.fixture
    def ws_client(self, advisor):
        hub = NotificationHub()

        async def override_session():
            yield FakeSession(advisor)

        app.dependency_overrides[get_async_session] = override_session
        app.dependency_overrides[get_notification_hub] = lambda: hub
        yield TestClient(app), hub
        app.dependency_overrides.clear()

    def test_query_token(self, ws_client, advisor):
        client, hub = ws_client
        token = create_access_token(data={"sub": str(advisor.id)})

        with client.websocket_connect(f"/ws/notifications?token={token}") as websocket:
            connected = websocket.receive_json()
            assert connected["event"] == "connected"
            assert sorted(connected["data"]["channels"]) == ["records", "system"]

            websocket.send_json({"type": "ping"})
            assert websocket.receive_json()["event"] == "pong"

            websocket.send_json({"type": "dance"})
            error = websocket.receive_json()
            assert error["event"] == "error"
            assert "dance" in error["data"]["message"]

    def test_auth_message(self, ws_client, advisor):
        client, hub = ws_client
        token = create_access_token(data={"sub": str(advisor.id)})

        with client.websocket_connect("/ws/notifications") as websocket:
            websocket.send_json({"type": "auth", "token": token})
            assert websocket.receive_json()["event"] == "connected"

            websocket.send_json({"type": "unsubscribe", "channels": ["system"]})
            message = websocket.receive_json()
            assert message["event"] == "unsubscribed"
            assert message["data"]["channels"] == ["system"]

    def test_channels_must_be_a_list(self, ws_client, advisor):
        client, hub = ws_client
        token = create_access_token(data={"sub": str(advisor.id)})

        with client.websocket_connect(f"/ws/notifications?token={token}") as websocket:
            websocket.receive_json()

            websocket.send_json({"type": "subscribe", "channels": "records"})
            error = websocket.receive_json()
            assert error["event"] == "error"
            assert "list" in error["data"]["message"]

            websocket.send_json({"type": "ping"})
            assert websocket.receive_json()["event"] == "pong"
            assert set(hub.get_stats()["channels"]) == {"records", "system"}

    def test_invalid_token_rejected(self, ws_client):
        client, hub = ws_client

        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect("/ws/notifications?token=garbage") as websocket:
                websocket.receive_json()

        assert exc_info.value.code == 1008

    def test_unknown_user_rejected(self, ws_client):
        client, hub = ws_client
        token = create_access_token(data={"sub": str(uuid.uuid4())})

        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect(f"/ws/notifications?token={token}") as websocket:
                websocket.receive_json()

        assert exc_info.value.code == 1008
