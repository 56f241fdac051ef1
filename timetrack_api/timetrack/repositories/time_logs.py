from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Sequence
from uuid import UUID

from sqlalchemy import select, update

from timetrack.db.models.time_logs import TimeLog, TimeLogTag
from .base import BaseRepository


class TimeLogRepository(BaseRepository):
    """Repository for time logs."""

    async def get(self, time_log_id: UUID) -> Optional[TimeLog]:
        stmt = select(TimeLog).where(TimeLog.id == time_log_id)
        return await self.scalar_one_or_none(stmt)

    async def get_many(self, ids: Sequence[UUID]) -> List[TimeLog]:
        if not ids:
            return []
        stmt = select(TimeLog).where(TimeLog.id.in_(list(ids))).order_by(TimeLog.start_timestamp)
        result = await self.scalars(stmt)
        return list(result)

    async def list_time_logs(
        self,
        *,
        user_ids: Optional[Sequence[UUID]] = None,
        project_id: Optional[UUID] = None,
        status: Optional[str] = None,
        is_paid: Optional[bool] = None,
        tag_id: Optional[UUID] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[TimeLog]:
        stmt = select(TimeLog)
        if user_ids is not None:
            stmt = stmt.where(TimeLog.user_id.in_(list(user_ids)))
        if project_id:
            stmt = stmt.where(TimeLog.project_id == project_id)
        if status:
            stmt = stmt.where(TimeLog.status == status)
        if is_paid is not None:
            stmt = stmt.where(TimeLog.is_paid.is_(is_paid))
        if tag_id:
            tagged = select(TimeLogTag.time_log_id).where(TimeLogTag.tag_id == tag_id)
            stmt = stmt.where(TimeLog.id.in_(tagged))
        if start_date:
            stmt = stmt.where(TimeLog.start_timestamp >= start_date)
        if end_date:
            stmt = stmt.where(TimeLog.start_timestamp <= end_date)
        stmt = stmt.order_by(TimeLog.start_timestamp.desc()).offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await self.scalars(stmt)
        return list(result)

    async def pending_for_projects(self, project_ids: Sequence[UUID], exclude_user_id: UUID) -> List[TimeLog]:
        if not project_ids:
            return []
        stmt = (
            select(TimeLog)
            .where(
                TimeLog.project_id.in_(list(project_ids)),
                TimeLog.status == "pending",
                TimeLog.user_id != exclude_user_id,
            )
            .order_by(TimeLog.start_timestamp.desc())
        )
        result = await self.scalars(stmt)
        return list(result)

    async def unpaid_uninvoiced(self, project_ids: Sequence[UUID]) -> List[TimeLog]:
        """Approved, unpaid, billable logs not yet on an invoice."""
        if not project_ids:
            return []
        stmt = (
            select(TimeLog)
            .where(
                TimeLog.project_id.in_(list(project_ids)),
                TimeLog.invoice_id.is_(None),
                TimeLog.is_paid.is_(False),
                TimeLog.non_billable.is_(False),
                TimeLog.status == "approved",
            )
            .order_by(TimeLog.start_timestamp)
        )
        result = await self.scalars(stmt)
        return list(result)

    async def link_invoice(self, ids: Sequence[UUID], invoice_id: UUID, project_ids: Sequence[UUID]) -> None:
        """Point logs at an invoice; only logs on the given projects are touched."""
        if not ids or not project_ids:
            return
        stmt = (
            update(TimeLog)
            .where(TimeLog.id.in_(list(ids)), TimeLog.project_id.in_(list(project_ids)))
            .values(invoice_id=invoice_id)
            .execution_options(synchronize_session="fetch")
        )
        await self.execute(stmt)

    async def unlink_invoice(self, invoice_id: UUID) -> None:
        stmt = (
            update(TimeLog)
            .where(TimeLog.invoice_id == invoice_id)
            .values(invoice_id=None)
            .execution_options(synchronize_session="fetch")
        )
        await self.execute(stmt)
