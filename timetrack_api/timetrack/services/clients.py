from __future__ import annotations

import logging
from typing import List, Optional
from uuid import UUID

import pandas as pd
from sqlalchemy.ext.asyncio import AsyncSession

from timetrack.core.errors import NotFoundError
from timetrack.db.models.clients import Client
from timetrack.db.models.projects import Project
from timetrack.db.models.users import User
from timetrack.repositories.clients import ClientRepository
from timetrack.schemas.clients import ClientBase
from timetrack.services.base import BaseService

logger = logging.getLogger(__name__)

EXPORT_COLUMNS = ["ID", "Name", "Email", "Contact Person", "Phone", "Address", "Notes", "Created At"]


class ClientService(BaseService):
    """Clients are private to the user that created them."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)
        self.repo = ClientRepository(session)

    # PUBLIC_INTERFACE
    async def get(self, user: User, client_id: UUID) -> Client:
        client = await self.repo.get_owned(client_id, user.id)
        if client is None:
            raise NotFoundError("Client not found.")
        return client

    # PUBLIC_INTERFACE
    async def list_clients(self, user: User, search: Optional[str] = None, limit: int = 100, offset: int = 0) -> List[Client]:
        return await self.repo.list_clients(user_id=user.id, search=search, limit=limit, offset=offset)

    # PUBLIC_INTERFACE
    async def create(self, user: User, payload: ClientBase) -> Client:
        data = payload.model_dump()
        data["currency"] = (data.get("currency") or "USD").upper()
        client = Client(user_id=user.id, **data)
        async with self.transaction():
            await self.repo.add(client)
            await self.repo.flush()
        await self.repo.refresh(client)
        logger.info("Client %s created", client.id)
        return client

    # PUBLIC_INTERFACE
    async def update(self, user: User, client_id: UUID, payload: ClientBase) -> Client:
        client = await self.get(user, client_id)
        async with self.transaction():
            for field, value in payload.model_dump().items():
                setattr(client, field, value)
            client.currency = (client.currency or "USD").upper()
        await self.repo.refresh(client)
        return client

    # PUBLIC_INTERFACE
    async def delete(self, user: User, client_id: UUID) -> None:
        client = await self.get(user, client_id)
        async with self.transaction():
            await self.repo.delete(client)
        logger.info("Client %s deleted", client_id)

    # PUBLIC_INTERFACE
    async def projects(self, user: User, client_id: UUID) -> List[Project]:
        client = await self.get(user, client_id)
        return await self.repo.projects(client.id)

    # PUBLIC_INTERFACE
    async def export_frame(self, user: User) -> pd.DataFrame:
        clients = await self.repo.list_clients(user_id=user.id, limit=100000)
        rows = [
            [
                str(c.id),
                c.name,
                c.email or "",
                c.contact_person or "",
                c.phone or "",
                c.address or "",
                c.notes or "",
                c.created_at.strftime("%Y-%m-%d %H:%M:%S") if c.created_at else "",
            ]
            for c in clients
        ]
        return pd.DataFrame(rows, columns=EXPORT_COLUMNS)
