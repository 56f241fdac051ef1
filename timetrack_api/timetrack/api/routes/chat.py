from __future__ import annotations

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from timetrack.core.deps import get_current_active_user, get_tenant_session
from timetrack.db.models.users import User
from timetrack.schemas.chat import ChatUserRead, ConversationRead, ConversationStart, MessageCreate, MessageRead
from timetrack.services.chat import ChatService

router = APIRouter(prefix="/chat", tags=["Chat"])


# PUBLIC_INTERFACE
@router.get("/conversations", response_model=List[ConversationRead], summary="List conversations")
async def list_conversations(
    user: User = Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> List[ConversationRead]:
    items = await ChatService(session).conversations(user)
    return [ConversationRead.model_validate(c, from_attributes=True) for c in items]


# PUBLIC_INTERFACE
@router.post(
    "/conversations",
    response_model=ConversationRead,
    summary="Start conversation",
    description="Open the one-on-one conversation with a team user, reusing an existing one.",
)
async def start_conversation(
    payload: ConversationStart,
    user: User = Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> ConversationRead:
    conversation = await ChatService(session).start(user, payload.user_id)
    return ConversationRead.model_validate(conversation, from_attributes=True)


# PUBLIC_INTERFACE
@router.get(
    "/conversations/{conversation_id}/messages",
    response_model=List[MessageRead],
    summary="Conversation messages",
    description="Messages in creation order. Fetching marks the other participants' messages as read.",
)
async def list_messages(
    conversation_id: UUID,
    user: User = Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> List[MessageRead]:
    messages = await ChatService(session).messages(user, conversation_id)
    return [MessageRead(**m) for m in messages]


# PUBLIC_INTERFACE
@router.post(
    "/conversations/{conversation_id}/messages",
    response_model=MessageRead,
    status_code=201,
    summary="Send message",
)
async def send_message(
    conversation_id: UUID,
    payload: MessageCreate,
    user: User = Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> MessageRead:
    message = await ChatService(session).send(user, conversation_id, payload.body)
    return MessageRead(**message)


# PUBLIC_INTERFACE
@router.get("/users", response_model=List[ChatUserRead], summary="Users the caller can chat with")
async def chat_users(
    user: User = Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> List[ChatUserRead]:
    users = await ChatService(session).team_users(user)
    return [ChatUserRead.model_validate(u) for u in users]
