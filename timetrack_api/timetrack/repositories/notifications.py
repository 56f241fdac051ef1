from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy import func, select, update

from timetrack.db.models.notifications import Notification
from .base import BaseRepository


class NotificationRepository(BaseRepository):
    """Repository for stored in-app notifications."""

    async def get(self, notification_id: UUID) -> Optional[Notification]:
        stmt = select(Notification).where(Notification.id == notification_id)
        return await self.scalar_one_or_none(stmt)

    async def list_for_user(self, user_id: UUID, *, limit: int, offset: int) -> List[Notification]:
        stmt = (
            select(Notification)
            .where(Notification.user_id == user_id)
            .order_by(Notification.created_at.desc())
            .offset(offset)
            .limit(limit)
        )
        result = await self.scalars(stmt)
        return list(result)

    async def count_for_user(self, user_id: UUID, unread_only: bool = False) -> int:
        stmt = select(func.count(Notification.id)).where(Notification.user_id == user_id)
        if unread_only:
            stmt = stmt.where(Notification.read_at.is_(None))
        result = await self.execute(stmt)
        return int(result.scalar_one())

    async def mark_all_read(self, user_id: UUID, at: datetime) -> None:
        stmt = (
            update(Notification)
            .where(Notification.user_id == user_id, Notification.read_at.is_(None))
            .values(read_at=at)
            .execution_options(synchronize_session=False)
        )
        await self.execute(stmt)
