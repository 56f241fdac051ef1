from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from sqlalchemy import or_, select

from timetrack.db.models.clients import Client
from timetrack.db.models.invoices import Invoice
from .base import BaseRepository


class InvoiceRepository(BaseRepository):
    """Repository for invoices and their items."""

    async def get_owned(self, invoice_id: UUID, user_id: UUID) -> Optional[Invoice]:
        stmt = select(Invoice).where(Invoice.id == invoice_id, Invoice.user_id == user_id)
        return await self.scalar_one_or_none(stmt)

    async def get_by_number(self, invoice_number: str) -> Optional[Invoice]:
        stmt = select(Invoice).where(Invoice.invoice_number == invoice_number)
        return await self.scalar_one_or_none(stmt)

    async def list_invoices(
        self,
        *,
        user_id: UUID,
        status: Optional[str] = None,
        client_id: Optional[UUID] = None,
        search: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[Invoice]:
        stmt = select(Invoice).where(Invoice.user_id == user_id)
        if status:
            stmt = stmt.where(Invoice.status == status)
        if client_id:
            stmt = stmt.where(Invoice.client_id == client_id)
        if search:
            like = f"%{search}%"
            stmt = stmt.join(Client, Client.id == Invoice.client_id).where(
                or_(Invoice.invoice_number.ilike(like), Client.name.ilike(like))
            )
        stmt = stmt.order_by(Invoice.created_at.desc()).offset(offset).limit(limit)
        result = await self.scalars(stmt)
        return list(result)
