from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Union
from uuid import UUID

from sqlalchemy import event, text
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import Session, SessionTransaction

from .config import get_settings


TENANT_INFO_KEY = "tenant_id"
SET_TENANT_SQL = text("SELECT set_config('app.tenant_id', :tenant_id, true);")

_ENGINE: AsyncEngine | None = None
_SESSION_MAKER: async_sessionmaker[AsyncSession] | None = None


class TenantSession(Session):
    """Sync session class behind every AsyncSession; carries the tenant in `info`."""


@event.listens_for(TenantSession, "after_begin")
def apply_tenant_on_begin(session: Session, transaction: SessionTransaction, connection: Connection) -> None:
    """
    Re-apply app.tenant_id whenever the session begins a transaction.

    The GUC is transaction-local, so a commit never leaks it onto a pooled
    connection and statements after a commit still run under the tenant.
    """
    tenant_id = session.info.get(TENANT_INFO_KEY)
    if tenant_id:
        connection.execute(SET_TENANT_SQL, {"tenant_id": tenant_id})


def _ensure_engine_initialized() -> None:
    """Lazily create the AsyncEngine and session maker on first use."""
    global _ENGINE, _SESSION_MAKER
    if _ENGINE is None:
        settings = get_settings()
        _ENGINE = create_async_engine(
            settings.async_database_url,
            echo=settings.SQL_ECHO,
            pool_pre_ping=True,
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
        )
    if _SESSION_MAKER is None:
        _SESSION_MAKER = async_sessionmaker(
            bind=_ENGINE,
            expire_on_commit=False,
            autoflush=False,
            sync_session_class=TenantSession,
        )


# PUBLIC_INTERFACE
def get_engine() -> AsyncEngine:
    """Return the global AsyncEngine instance."""
    _ensure_engine_initialized()
    assert _ENGINE is not None
    return _ENGINE


# PUBLIC_INTERFACE
def get_session_maker() -> async_sessionmaker[AsyncSession]:
    """Return the global session factory (used outside of request scope, e.g. WebSockets)."""
    _ensure_engine_initialized()
    assert _SESSION_MAKER is not None
    return _SESSION_MAKER


# PUBLIC_INTERFACE
async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield an AsyncSession suitable for FastAPI dependency injection."""
    async with get_session_maker()() as session:
        yield session


# PUBLIC_INTERFACE
async def set_current_tenant(session: AsyncSession, tenant_id: Union[str, UUID]) -> None:
    """
    Set the current tenant for the DB session using a custom GUC.

    This enables Row-Level Security (RLS) policies that reference:
      current_setting('app.tenant_id', true)

    The tenant is remembered on the session and applied to the current
    transaction; every later transaction picks it up in `apply_tenant_on_begin`.

    Parameters:
      session: AsyncSession - an active async DB session/connection
      tenant_id: str | UUID - the tenant identifier to set
    """
    session.info[TENANT_INFO_KEY] = str(tenant_id)
    await session.execute(SET_TENANT_SQL, {"tenant_id": str(tenant_id)})


# PUBLIC_INTERFACE
@asynccontextmanager
async def tenant_context(
    session: AsyncSession, tenant_id: Union[str, UUID]
) -> AsyncGenerator[AsyncSession, None]:
    """
    Async context manager that sets and resets the tenant context on the session.

    Usage:
        async with tenant_context(session, tenant_id):
            ...

    Afterwards the session forgets the tenant; an open transaction has its GUC
    cleared to an empty string, which matches no tenant policy.
    """
    await set_current_tenant(session, tenant_id)
    try:
        yield session
    finally:
        session.info.pop(TENANT_INFO_KEY, None)
        if session.in_transaction():
            await session.execute(text("SELECT set_config('app.tenant_id', '', true);"))
