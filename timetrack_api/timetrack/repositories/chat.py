from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy import func, select, update

from timetrack.db.models.chat import Conversation, ConversationParticipant, Message
from .base import BaseRepository


class ChatRepository(BaseRepository):
    """Repository for conversations, participants and messages."""

    async def get_conversation(self, conversation_id: UUID) -> Optional[Conversation]:
        stmt = select(Conversation).where(Conversation.id == conversation_id)
        return await self.scalar_one_or_none(stmt)

    async def is_participant(self, conversation_id: UUID, user_id: UUID) -> bool:
        stmt = select(ConversationParticipant.id).where(
            ConversationParticipant.conversation_id == conversation_id,
            ConversationParticipant.user_id == user_id,
        )
        return (await self.scalar_one_or_none(stmt)) is not None

    async def user_conversations(self, user_id: UUID) -> List[Conversation]:
        joined = select(ConversationParticipant.conversation_id).where(ConversationParticipant.user_id == user_id)
        stmt = select(Conversation).where(Conversation.id.in_(joined)).order_by(Conversation.updated_at.desc())
        result = await self.scalars(stmt)
        return list(result)

    async def find_direct(self, user_a: UUID, user_b: UUID) -> Optional[Conversation]:
        """One-on-one conversation whose participants are exactly the two users."""
        pair = {user_a, user_b}
        stmt = (
            select(ConversationParticipant.conversation_id)
            .join(Conversation, Conversation.id == ConversationParticipant.conversation_id)
            .where(Conversation.is_group.is_(False))
            .group_by(ConversationParticipant.conversation_id)
            .having(
                func.count(ConversationParticipant.user_id) == len(pair),
                func.count(ConversationParticipant.user_id).filter(
                    ConversationParticipant.user_id.in_(list(pair))
                ) == len(pair),
            )
            .limit(1)
        )
        conversation_id = await self.scalar_one_or_none(stmt)
        if conversation_id is None:
            return None
        return await self.get_conversation(conversation_id)

    async def create_conversation(self, participant_ids: List[UUID], is_group: bool = False, title: Optional[str] = None) -> Conversation:
        conversation = Conversation(is_group=is_group, title=title)
        await self.add(conversation)
        await self.flush()
        await self.add_all(
            ConversationParticipant(conversation_id=conversation.id, user_id=uid)
            for uid in dict.fromkeys(participant_ids)
        )
        await self.flush()
        return conversation

    async def messages(self, conversation_id: UUID) -> List[Message]:
        stmt = select(Message).where(Message.conversation_id == conversation_id).order_by(Message.created_at.asc())
        result = await self.scalars(stmt)
        return list(result)

    async def last_message(self, conversation_id: UUID) -> Optional[Message]:
        stmt = (
            select(Message)
            .where(Message.conversation_id == conversation_id)
            .order_by(Message.created_at.desc())
            .limit(1)
        )
        return await self.scalar_one_or_none(stmt)

    async def mark_read(self, conversation_id: UUID, reader_id: UUID, at: datetime) -> None:
        stmt = (
            update(Message)
            .where(
                Message.conversation_id == conversation_id,
                Message.user_id != reader_id,
                Message.read_at.is_(None),
            )
            .values(read_at=at)
            .execution_options(synchronize_session=False)
        )
        await self.execute(stmt)

    async def touch(self, conversation: Conversation, at: datetime) -> None:
        conversation.updated_at = at
        await self.flush()
