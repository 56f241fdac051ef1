"""Tests for the in-process WebSocket topic registry."""

from uuid import uuid4

import pytest
from starlette.websockets import WebSocketState

from timetrack.services.realtime import BroadcastManager


def _socket(mocker, state: WebSocketState = WebSocketState.CONNECTED):
    ws = mocker.AsyncMock()
    ws.application_state = state
    ws.client_state = state
    return ws


@pytest.fixture
def manager() -> BroadcastManager:
    return BroadcastManager()


@pytest.mark.unit
class TestBroadcastManager:
    async def test_push_without_subscribers_leaves_no_state(self, manager) -> None:
        for _ in range(50):
            await manager.publish_to_user(uuid4(), "notification", {"message": "hi"})

        assert manager._topics == {}
        assert manager._locks == {}

    async def test_last_disconnect_forgets_topic(self, manager, mocker) -> None:
        topic = manager.user_topic(uuid4())
        first, second = _socket(mocker), _socket(mocker)
        await manager.connect(topic, first)
        await manager.connect(topic, second)

        await manager.disconnect(topic, first)
        assert manager.subscriber_count(topic) == 1

        await manager.disconnect(topic, second)
        assert topic not in manager._topics
        assert topic not in manager._locks

    async def test_broadcast_reaches_subscribers_except_excluded(self, manager, mocker) -> None:
        topic = manager.conversation_topic(uuid4())
        sender, receiver = _socket(mocker), _socket(mocker)
        await manager.connect(topic, sender)
        await manager.connect(topic, receiver)

        await manager.broadcast(topic, {"type": "chat.message"}, exclude=sender)

        receiver.send_json.assert_awaited_once_with({"type": "chat.message"})
        sender.send_json.assert_not_awaited()

    async def test_dead_sockets_are_dropped_and_topic_pruned(self, manager, mocker) -> None:
        topic = manager.user_topic(uuid4())
        gone = _socket(mocker, WebSocketState.DISCONNECTED)
        broken = _socket(mocker)
        broken.send_json.side_effect = RuntimeError("socket closed")
        await manager.connect(topic, gone)
        await manager.connect(topic, broken)

        await manager.broadcast(topic, {"type": "notification"})

        gone.send_json.assert_not_awaited()
        assert manager.subscriber_count(topic) == 0
        assert topic not in manager._topics
