from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from timetrack.core.errors import BadRequestError, ForbiddenError, NotFoundError
from timetrack.db.models.chat import Conversation, Message
from timetrack.db.models.users import User
from timetrack.repositories.chat import ChatRepository
from timetrack.services.base import BaseService
from timetrack.services.realtime import broadcast_manager
from timetrack.services.teams import TeamService

logger = logging.getLogger(__name__)

MAX_BODY = 5000


def conversation_title(conversation: Conversation, user_id: UUID) -> str:
    """Group title, or the name of the other participant in a one-on-one chat."""
    if conversation.is_group and conversation.title:
        return conversation.title
    others = [p.name for p in conversation.participants if p.id != user_id]
    return ", ".join(others) if others else "You"


def message_payload(message: Message, user_id: UUID) -> Dict[str, Any]:
    return {
        "id": message.id,
        "conversation_id": message.conversation_id,
        "user_id": message.user_id,
        "user_name": message.user.name if message.user else None,
        "body": message.body,
        "read_at": message.read_at,
        "created_at": message.created_at,
        "is_mine": message.user_id == user_id,
    }


class ChatService(BaseService):
    """One-on-one conversations between team members."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)
        self.repo = ChatRepository(session)
        self.teams = TeamService(session)

    async def _participant_conversation(self, user: User, conversation_id: UUID) -> Conversation:
        conversation = await self.repo.get_conversation(conversation_id)
        if conversation is None or not await self.repo.is_participant(conversation_id, user.id):
            raise NotFoundError("Conversation not found.")
        return conversation

    async def _summary(self, conversation: Conversation, user: User) -> Dict[str, Any]:
        last = await self.repo.last_message(conversation.id)
        return {
            "id": conversation.id,
            "title": conversation_title(conversation, user.id),
            "is_group": conversation.is_group,
            "participants": conversation.participants,
            "last_message": message_payload(last, user.id) if last else None,
            "updated_at": conversation.updated_at,
        }

    # PUBLIC_INTERFACE
    async def conversations(self, user: User) -> List[Dict[str, Any]]:
        """The user's conversations, most recently active first."""
        items = await self.repo.user_conversations(user.id)
        return [await self._summary(c, user) for c in items]

    # PUBLIC_INTERFACE
    async def messages(self, user: User, conversation_id: UUID) -> List[Dict[str, Any]]:
        """Messages in creation order; other participants' unread messages are marked read."""
        conversation = await self._participant_conversation(user, conversation_id)
        async with self.transaction():
            await self.repo.mark_read(conversation.id, user.id, datetime.now(timezone.utc))
        items = await self.repo.messages(conversation.id)
        for message in items:
            await self.repo.refresh(message)
        return [message_payload(m, user.id) for m in items]

    # PUBLIC_INTERFACE
    async def start(self, user: User, target_id: UUID) -> Dict[str, Any]:
        """Open the one-on-one conversation with target_id, reusing an existing one."""
        if target_id != user.id:
            allowed = {u.id for u in await self.teams.team_users(user)}
            if target_id not in allowed:
                raise ForbiddenError("You can only chat with members of your team.")
        conversation = await self.repo.find_direct(user.id, target_id)
        if conversation is None:
            async with self.transaction():
                conversation = await self.repo.create_conversation([user.id, target_id])
            await self.repo.refresh(conversation)
            logger.info("Conversation %s started by %s", conversation.id, user.id)
        return await self._summary(conversation, user)

    # PUBLIC_INTERFACE
    async def send(self, user: User, conversation_id: UUID, body: str) -> Dict[str, Any]:
        """Store a message, touch the conversation and push it to the room and the other participants."""
        body = (body or "").strip()
        if not body:
            raise BadRequestError("Message body is required.")
        if len(body) > MAX_BODY:
            raise BadRequestError(f"Message body must be at most {MAX_BODY} characters.")
        conversation = await self._participant_conversation(user, conversation_id)
        now = datetime.now(timezone.utc)
        message = Message(id=uuid.uuid4(), conversation_id=conversation.id, user_id=user.id, user=user, body=body)
        async with self.transaction():
            await self.repo.add(message)
            await self.repo.touch(conversation, now)
        await self.repo.refresh(message)

        payload = message_payload(message, user.id)
        wire = {**payload, "id": str(message.id), "conversation_id": str(conversation.id), "user_id": str(user.id)}
        wire["created_at"] = message.created_at.isoformat() if message.created_at else now.isoformat()
        wire.pop("read_at", None)
        wire.pop("is_mine", None)
        try:
            await broadcast_manager.publish_chat_message(conversation.id, wire, user.id)
            for participant in conversation.participants:
                if participant.id != user.id:
                    await broadcast_manager.publish_to_user(participant.id, "chat.message", wire)
        except Exception:
            logger.exception("Failed to push chat message %s", message.id)
        return payload

    # PUBLIC_INTERFACE
    async def team_users(self, user: User) -> List[User]:
        return await self.teams.team_users(user)
