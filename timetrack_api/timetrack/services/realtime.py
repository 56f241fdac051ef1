from __future__ import annotations

import asyncio

import logging
from typing import Any, Dict, Optional, Set
from uuid import UUID

from starlette.websockets import WebSocket, WebSocketState

from timetrack.schemas.realtime import WsEnvelope

logger = logging.getLogger(__name__)


class BroadcastManager:
    """
    Simple in-process pub-sub manager for WebSocket topics.

    Topics:
      - notifications:{user_id}   personal notifications and chat pushes
      - chat:{conversation_id}    chat room fan-out
    """

    def __init__(self) -> None:
        self._topics: Dict[str, Set[WebSocket]] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def _topic_lock(self, topic: str) -> asyncio.Lock:
        if topic not in self._locks:
            self._locks[topic] = asyncio.Lock()
        return self._locks[topic]

    # PUBLIC_INTERFACE
    def user_topic(self, user_id: UUID | str) -> str:
        """Return the personal topic name for a user."""
        return f"notifications:{user_id}"

    # PUBLIC_INTERFACE
    def conversation_topic(self, conversation_id: UUID | str) -> str:
        """Return the topic name for a chat conversation."""
        return f"chat:{conversation_id}"

    # PUBLIC_INTERFACE
    def subscriber_count(self, topic: str) -> int:
        """Number of live sockets on a topic."""
        return len(self._topics.get(topic, ()))

    def _prune(self, topic: str) -> None:
        """Forget a topic and its lock once nobody is subscribed."""
        if not self._topics.get(topic):
            self._topics.pop(topic, None)
            self._locks.pop(topic, None)

    # PUBLIC_INTERFACE
    async def connect(self, topic: str, websocket: WebSocket) -> None:
        """Add an accepted websocket to topic subscribers."""
        async with self._topic_lock(topic):
            subscribers = self._topics.setdefault(topic, set())
            subscribers.add(websocket)
            logger.info("WebSocket connected to topic=%s; subscribers=%d", topic, len(subscribers))

    # PUBLIC_INTERFACE
    async def disconnect(self, topic: str, websocket: WebSocket) -> None:
        """Remove websocket from topic subscribers."""
        if topic not in self._topics:
            return
        async with self._topic_lock(topic):
            subscribers = self._topics.get(topic, set())
            subscribers.discard(websocket)
            logger.info("WebSocket disconnected from topic=%s; subscribers=%d", topic, len(subscribers))
            self._prune(topic)

    # PUBLIC_INTERFACE
    async def broadcast(self, topic: str, message: dict, exclude: Optional[WebSocket] = None) -> None:
        """Broadcast a dict message to all subscribers in the topic."""
        if not self._topics.get(topic):
            return
        async with self._topic_lock(topic):
            subscribers = self._topics.get(topic, set())
            to_drop: list[WebSocket] = []
            for ws in list(subscribers):
                if exclude is not None and ws is exclude:
                    continue
                try:
                    if ws.application_state == WebSocketState.DISCONNECTED or ws.client_state == WebSocketState.DISCONNECTED:
                        to_drop.append(ws)
                        continue
                    await ws.send_json(message)
                except Exception:
                    logger.exception("Failed to send message to websocket; scheduling drop")
                    to_drop.append(ws)
            for ws in to_drop:
                subscribers.discard(ws)
            self._prune(topic)

    # PUBLIC_INTERFACE
    async def publish_to_user(self, user_id: UUID | str, event_type: str, payload: Dict[str, Any]) -> None:
        """Push an event onto a user's personal topic."""
        env = WsEnvelope(type=event_type, payload=payload)
        await self.broadcast(self.user_topic(user_id), env.model_dump(mode="json"))

    # PUBLIC_INTERFACE
    async def publish_chat_message(
        self, conversation_id: UUID | str, payload: Dict[str, Any], sender_id: UUID | str
    ) -> None:
        """Fan a chat message out to the conversation room."""
        env = WsEnvelope(
            type="chat.message",
            payload=payload,
            user_id=UUID(str(sender_id)),
            channel=str(conversation_id),
        )
        await self.broadcast(self.conversation_topic(conversation_id), env.model_dump(mode="json"))


# Singleton instance
broadcast_manager = BroadcastManager()
