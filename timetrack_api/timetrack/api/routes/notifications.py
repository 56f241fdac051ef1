from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from timetrack.core.deps import get_current_active_user, get_tenant_session
from timetrack.db.models.users import User
from timetrack.schemas.common import MessageResponse
from timetrack.schemas.notifications import NotificationPage, NotificationRead
from timetrack.services.notifications import NotificationService

router = APIRouter(prefix="/notifications", tags=["Notifications"])


# PUBLIC_INTERFACE
@router.get("", response_model=NotificationPage, summary="List notifications")
async def list_notifications(
    page: int = Query(1, ge=1),
    user: User = Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> NotificationPage:
    """Ten notifications per page, newest first, with the unread count."""
    return NotificationPage.model_validate(await NotificationService(session).list_page(user, page), from_attributes=True)


# PUBLIC_INTERFACE
@router.post("/read-all", response_model=MessageResponse, summary="Mark all notifications read")
async def mark_all_read(
    user: User = Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> MessageResponse:
    await NotificationService(session).mark_all_read(user)
    return MessageResponse(message="All notifications marked as read.")


# PUBLIC_INTERFACE
@router.post("/{notification_id}/read", response_model=NotificationRead, summary="Mark notification read")
async def mark_read(
    notification_id: UUID,
    user: User = Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> NotificationRead:
    notification = await NotificationService(session).mark_read(user, notification_id)
    return NotificationRead.model_validate(notification)
