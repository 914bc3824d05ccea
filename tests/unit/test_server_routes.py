# pylint: disable=missing-module-docstring,missing-function-docstring

from typing import Any

import pytest
from fastapi.testclient import TestClient

import server.routes as routes_mod
from context.conversation_log import Broadcast, ConversationLog
from orchestrator.enums.state import AgentState
from server.app import create_app
from services.notifications import Notification, NotificationFeed
from test_agent_session import make_config


class FakeSession:
    """Stands in for AgentSession; records control calls."""

    def __init__(self) -> None:
        self.session_id = "session-1"
        self.log = ConversationLog()
        self.states: Broadcast[AgentState] = Broadcast("agent_state", replay=1)
        self.states.publish(AgentState.INACTIVE)
        self.notifications = NotificationFeed()
        self.agent: Any = None
        self.is_active = False
        self.typed: list[str] = []
        self.closed = False

    @property
    def state(self) -> AgentState:
        return self.states.latest or AgentState.INACTIVE

    async def start(self) -> bool:
        if self.is_active:
            return False
        self.is_active = True
        self.states.publish(AgentState.LISTENING)
        return True

    async def stop(self) -> bool:
        if not self.is_active:
            return False
        self.is_active = False
        self.states.publish(AgentState.INACTIVE)
        return True

    def pause(self) -> bool:
        return self.is_active

    def resume(self) -> bool:
        return False

    def submit_text(self, text: str) -> bool:
        if not self.is_active:
            return False
        self.typed.append(text)
        return True

    def push_notification(self, notification: Notification) -> None:
        self.notifications.push(notification)

    async def close(self) -> None:
        self.closed = True


def _client(session: FakeSession) -> TestClient:
    return TestClient(create_app(config=make_config(), session=session))  # type: ignore[arg-type]


def test_health_and_state() -> None:
    session = FakeSession()
    with _client(session) as client:
        assert client.get("/health").json() == {"status": "ok"}
        body = client.get("/state").json()

    assert body == {
        "session_id": "session-1",
        "state": "INACTIVE",
        "active": False,
        "paused": False,
    }
    assert session.closed


def test_start_stop_round_trip() -> None:
    session = FakeSession()
    with _client(session) as client:
        started = client.post("/agent/start").json()
        started_again = client.post("/agent/start").json()
        stopped = client.post("/agent/stop").json()

    assert started["ok"] is True and started["state"] == "LISTENING"
    assert started_again["ok"] is False
    assert stopped["ok"] is True and stopped["state"] == "INACTIVE"


def test_typed_input_requires_active_agent() -> None:
    session = FakeSession()
    with _client(session) as client:
        rejected = client.post("/input", json={"text": "hello"}).json()
        client.post("/agent/start")
        accepted = client.post("/input", json={"text": "hello"}).json()
        invalid = client.post("/input", json={})

    assert rejected == {"accepted": False}
    assert accepted == {"accepted": True}
    assert invalid.status_code == 422
    assert session.typed == ["hello"]


def test_notifications_are_pushed_into_the_feed() -> None:
    session = FakeSession()
    with _client(session) as client:
        response = client.post(
            "/notifications",
            json={"app": "WhatsApp", "sender": "Mom", "text": "call me"},
        )

    assert response.json() == {"accepted": True}
    [item] = session.notifications.recent(5)
    assert (item.app, item.sender, item.text) == ("WhatsApp", "Mom", "call me")


def test_log_snapshot_and_live_feed_replay() -> None:
    session = FakeSession()
    session.log.emit("YOU", "hello")

    with _client(session) as client:
        snapshot = client.get("/log").json()
        with client.websocket_connect("/ws/log") as ws:
            first = ws.receive_json()
            second = ws.receive_json()

    assert [e["text"] for e in snapshot] == ["hello"]
    by_type = {m["type"]: m for m in (first, second)}
    assert by_type["log"]["sender"] == "YOU"
    assert by_type["log"]["text"] == "hello"
    assert by_type["state"]["state"] == "INACTIVE"


def test_client_disconnect_ends_the_feed_cleanly(monkeypatch: pytest.MonkeyPatch) -> None:
    emitted: list[dict[str, Any]] = []
    monkeypatch.setattr(routes_mod, "log_event", emitted.append)
    session = FakeSession()

    with _client(session) as client:
        with client.websocket_connect("/ws/log") as ws:
            assert ws.receive_json() == {"type": "state", "state": "INACTIVE"}
            client.post("/agent/start")
            assert ws.receive_json() == {"type": "state", "state": "LISTENING"}

        # A second client after the first left still gets the replay.
        with client.websocket_connect("/ws/log") as ws:
            assert ws.receive_json() == {"type": "state", "state": "LISTENING"}

        assert session.log.subscriber_count == 0
        assert session.states.subscriber_count == 0

    assert not [e for e in emitted if e["event_type"] == "ws_log_feed_error"]
