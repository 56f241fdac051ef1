from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from timetrack.core.errors import ConflictError, ForbiddenError, UnauthorizedError
from timetrack.core.security import get_password_hash, verify_password
from timetrack.db.models.users import User
from timetrack.repositories.users import UserRepository
from timetrack.schemas.auth import ProfileUpdate, RegisterRequest
from timetrack.services.base import BaseService

logger = logging.getLogger(__name__)


class UserService(BaseService):
    """Registration, password login and self-service profile updates."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)
        self.repo = UserRepository(session)

    # PUBLIC_INTERFACE
    async def register(self, payload: RegisterRequest) -> User:
        if await self.repo.get_user_by_email(payload.email) is not None:
            raise ConflictError("A user with this email already exists.")
        async with self.transaction():
            user = await self.repo.create_user(
                email=payload.email,
                name=payload.name,
                hashed_password=get_password_hash(payload.password),
                currency=payload.currency.upper(),
            )
        await self.repo.refresh(user)
        logger.info("Registered user %s", user.id)
        return user

    # PUBLIC_INTERFACE
    async def authenticate(self, email: str, password: str) -> User:
        user = await self.repo.get_user_by_email(email)
        if user is None or not verify_password(password, user.hashed_password):
            raise UnauthorizedError("Invalid credentials")
        if not user.is_active:
            raise ForbiddenError("User is inactive")
        return user

    # PUBLIC_INTERFACE
    async def get_active(self, user_id) -> Optional[User]:
        user = await self.repo.get_user_by_id(user_id)
        if user is None or not user.is_active:
            return None
        return user

    # PUBLIC_INTERFACE
    async def update_profile(self, user: User, payload: ProfileUpdate) -> User:
        """Apply the fields present in payload. An empty github_token clears the stored token."""
        data = payload.model_dump(exclude_unset=True)
        email = data.get("email")
        if email and email.lower() != user.email.lower():
            existing = await self.repo.get_user_by_email(email)
            if existing is not None and existing.id != user.id:
                raise ConflictError("This email is already taken.")
        async with self.transaction():
            if email:
                user.email = email
            if data.get("name"):
                user.name = data["name"]
            if data.get("password"):
                user.hashed_password = get_password_hash(data["password"])
            if data.get("hourly_rate") is not None:
                user.hourly_rate = data["hourly_rate"]
            if data.get("currency"):
                user.currency = data["currency"].upper()
            if "github_token" in data:
                user.github_token = data["github_token"] or None
        await self.repo.refresh(user)
        return user
