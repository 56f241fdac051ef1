from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class ChatUserRead(BaseModel):
    id: UUID
    name: str
    email: str

    class Config:
        from_attributes = True


class MessageRead(BaseModel):
    """Chat message as seen by the caller."""
    id: UUID
    conversation_id: UUID
    user_id: UUID
    user_name: Optional[str] = None
    body: str
    read_at: Optional[datetime] = None
    created_at: datetime
    is_mine: bool = Field(False, description="Sent by the caller")


class ConversationRead(BaseModel):
    """Conversation summary for the chat sidebar."""
    id: UUID
    title: str
    is_group: bool = False
    participants: List[ChatUserRead] = Field(default_factory=list)
    last_message: Optional[MessageRead] = None
    updated_at: datetime


class ConversationStart(BaseModel):
    user_id: UUID = Field(..., description="User to chat with")


class MessageCreate(BaseModel):
    body: str = Field(..., min_length=1, max_length=5000)
