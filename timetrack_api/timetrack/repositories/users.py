from __future__ import annotations

from typing import List, Optional, Sequence
from uuid import UUID

from sqlalchemy import func, select

from timetrack.db.models.users import Credential, User
from .base import BaseRepository


class UserRepository(BaseRepository):
    """Repository for users within a tenant."""

    async def get_user_by_email(self, email: str) -> Optional[User]:
        stmt = select(User).where(func.lower(User.email) == email.lower())
        return await self.scalar_one_or_none(stmt)

    async def get_user_by_id(self, user_id: UUID) -> Optional[User]:
        stmt = select(User).where(User.id == user_id)
        return await self.scalar_one_or_none(stmt)

    async def list_by_ids(self, user_ids: Sequence[UUID]) -> List[User]:
        if not user_ids:
            return []
        stmt = select(User).where(User.id.in_(list(user_ids))).order_by(User.name)
        result = await self.scalars(stmt)
        return list(result)

    async def count_users(self) -> int:
        stmt = select(func.count(User.id))
        result = await self.execute(stmt)
        return int(result.scalar_one())

    async def create_user(
        self,
        *,
        email: str,
        name: str,
        hashed_password: str,
        currency: str = "USD",
        is_active: bool = True,
    ) -> User:
        user = User(
            email=email,
            name=name,
            hashed_password=hashed_password,
            currency=currency,
            is_active=is_active,
        )
        await self.add(user)
        await self.flush()
        return user


class CredentialRepository(BaseRepository):
    """Repository for per-user external credentials."""

    async def get(self, user_id: UUID, source: str) -> Optional[Credential]:
        stmt = select(Credential).where(Credential.user_id == user_id, Credential.source == source)
        return await self.scalar_one_or_none(stmt)

    async def upsert(self, user_id: UUID, source: str, keys: dict) -> Credential:
        credential = await self.get(user_id, source)
        if credential is None:
            credential = Credential(user_id=user_id, source=source, keys=keys)
            await self.add(credential)
        else:
            credential.keys = keys
        await self.flush()
        return credential
