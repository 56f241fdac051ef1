from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncSession


class BaseService:
    """
    Base class for services. Holds a session for use across multiple repositories.

    Services should keep business logic and orchestration, delegating data access
    to repositories. Each write operation runs inside `transaction()`, which commits
    on success and rolls back on any exception.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        """Commit the unit of work on exit, rolling back if the body raises."""
        try:
            yield
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
