from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from sqlalchemy import or_, select

from timetrack.db.models.clients import Client
from timetrack.db.models.projects import Project
from .base import BaseRepository


class ClientRepository(BaseRepository):
    """Repository for clients owned by a user."""

    async def list_clients(
        self, *, user_id: UUID, search: Optional[str] = None, limit: int = 100, offset: int = 0
    ) -> List[Client]:
        stmt = select(Client).where(Client.user_id == user_id)
        if search:
            like = f"%{search}%"
            stmt = stmt.where(or_(Client.name.ilike(like), Client.email.ilike(like), Client.contact_person.ilike(like)))
        stmt = stmt.order_by(Client.name).offset(offset).limit(limit)
        result = await self.scalars(stmt)
        return list(result)

    async def get_owned(self, client_id: UUID, user_id: UUID) -> Optional[Client]:
        stmt = select(Client).where(Client.id == client_id, Client.user_id == user_id)
        return await self.scalar_one_or_none(stmt)

    async def projects(self, client_id: UUID) -> List[Project]:
        stmt = select(Project).where(Project.client_id == client_id).order_by(Project.name)
        result = await self.scalars(stmt)
        return list(result)
