from __future__ import annotations

import uuid
from datetime import datetime
from typing import List, Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from timetrack.db.base import Base, TenantMixin, TimestampMixin, UUIDPkMixin
from timetrack.db.models.users import User


class Conversation(UUIDPkMixin, TenantMixin, TimestampMixin, Base):
    """Chat thread; one-on-one unless is_group is set."""
    __tablename__ = "conversations"

    is_group: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    title: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    participants: Mapped[List[User]] = relationship(
        User,
        secondary="conversation_participants",
        primaryjoin="Conversation.id==ConversationParticipant.conversation_id",
        secondaryjoin="User.id==ConversationParticipant.user_id",
        lazy="selectin",
    )


class ConversationParticipant(UUIDPkMixin, TenantMixin, TimestampMixin, Base):
    """Association of conversations to users."""
    __tablename__ = "conversation_participants"
    __table_args__ = (
        UniqueConstraint("tenant_id", "conversation_id", "user_id", name="uq_conversation_participants_tenant_conversation_user"),
    )

    conversation_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)


class Message(UUIDPkMixin, TenantMixin, TimestampMixin, Base):
    """Chat message; read_at is set when another participant fetches it."""
    __tablename__ = "messages"

    conversation_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    read_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    user: Mapped[User] = relationship(User, lazy="selectin")
