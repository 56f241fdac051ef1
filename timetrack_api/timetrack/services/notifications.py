from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Tuple
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from timetrack.core.errors import ForbiddenError, NotFoundError
from timetrack.db.models.notifications import Notification
from timetrack.db.models.users import User
from timetrack.repositories.notifications import NotificationRepository
from timetrack.services.base import BaseService
from timetrack.services.realtime import broadcast_manager

logger = logging.getLogger(__name__)

PAGE_SIZE = 10


class NotificationService(BaseService):
    """
    Stores notifications and pushes them to the recipient's WebSocket topic.

    `notify` only stages the row; callers commit their own transaction and then
    call `dispatch()` so nothing is pushed for work that was rolled back.
    """

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)
        self.repo = NotificationRepository(session)
        self._outbox: List[Tuple[UUID, Dict[str, Any]]] = []

    # PUBLIC_INTERFACE
    async def notify(self, user_id: UUID, type: str, data: Dict[str, Any]) -> Notification:
        """Stage a notification for user_id and queue its WebSocket push."""
        notification = Notification(id=uuid.uuid4(), user_id=user_id, type=type, data=data)
        await self.repo.add(notification)
        self._outbox.append(
            (
                user_id,
                {
                    "id": str(notification.id),
                    "type": type,
                    "data": data,
                    "created_at": datetime.now(timezone.utc).isoformat(),
                },
            )
        )
        return notification

    # PUBLIC_INTERFACE
    async def dispatch(self) -> None:
        """Push queued notifications. Failures are logged, never raised."""
        outbox, self._outbox = self._outbox, []
        for user_id, payload in outbox:
            try:
                await broadcast_manager.publish_to_user(user_id, "notification", payload)
            except Exception:
                logger.exception("Failed to push notification type=%s to user=%s", payload.get("type"), user_id)

    # PUBLIC_INTERFACE
    async def list_page(self, user: User, page: int = 1) -> Dict[str, Any]:
        """Return one page of the user's notifications with the unread count."""
        page = max(1, page)
        items = await self.repo.list_for_user(user.id, limit=PAGE_SIZE, offset=(page - 1) * PAGE_SIZE)
        total = await self.repo.count_for_user(user.id)
        unread = await self.repo.count_for_user(user.id, unread_only=True)
        return {
            "items": items,
            "page": page,
            "per_page": PAGE_SIZE,
            "total": total,
            "unread_count": unread,
        }

    # PUBLIC_INTERFACE
    async def mark_read(self, user: User, notification_id: UUID) -> Notification:
        """Mark one notification read; it must belong to the caller."""
        notification = await self.repo.get(notification_id)
        if notification is None:
            raise NotFoundError("Notification not found.")
        if notification.user_id != user.id:
            raise ForbiddenError("You are not authorized to update this notification.")
        async with self.transaction():
            if notification.read_at is None:
                notification.read_at = datetime.now(timezone.utc)
        return notification

    # PUBLIC_INTERFACE
    async def mark_all_read(self, user: User) -> None:
        """Mark every unread notification of the caller as read."""
        async with self.transaction():
            await self.repo.mark_all_read(user.id, datetime.now(timezone.utc))
