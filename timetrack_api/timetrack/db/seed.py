"""
Database seeding utilities for a demo workspace.

Seeds:
- Base tenant (slug from DEFAULT_TENANT_SLUG)
- Demo leader and member users (password: "demo-password")
- A team edge between them and one client owned by the leader

Usage:
  python -m timetrack.db.run_migrations upgrade head
  python -m timetrack.db.seed
"""

from __future__ import annotations

import asyncio
import logging
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import select, text
from sqlalchemy.ext.asyncio import AsyncSession

from timetrack.core.security import get_password_hash
from timetrack.core.settings import get_app_settings
from timetrack.db.models.clients import Client
from timetrack.db.models.teams import Team
from timetrack.db.models.users import User
from timetrack.db.session import get_async_session, set_current_tenant, tenant_context
from timetrack.repositories.users import UserRepository

logger = logging.getLogger(__name__)

DEMO_PASSWORD = "demo-password"
DEMO_USERS = [
    ("lead@example.com", "Demo Leader", Decimal("80.00")),
    ("member@example.com", "Demo Member", Decimal("45.00")),
]


# PUBLIC_INTERFACE
async def seed_all() -> None:
    """
    Seed the database with a demo tenant and its users.

    Safe to run repeatedly; existing rows are looked up by natural key.
    """
    slug = get_app_settings().DEFAULT_TENANT_SLUG
    async for session in get_async_session():
        tenant_id = await _ensure_base_tenant(session, name=slug.title(), slug=slug)
        async with tenant_context(session, tenant_id):
            users = await _seed_users(session)
            await _seed_team(session, leader=users[0], member=users[1])
            await _seed_client(session, owner=users[0])
        await session.commit()
        logger.info("Seeded tenant %s (%s)", slug, tenant_id)


async def _ensure_base_tenant(session: AsyncSession, name: str, slug: str) -> UUID:
    """
    Ensure a tenant row exists. RLS on tenants requires setting app.tenant_id
    to the same id being inserted (WITH CHECK id = current_setting()).
    """
    res = await session.execute(text("SELECT id FROM tenants WHERE slug = :slug"), {"slug": slug})
    row = res.first()
    if row:
        return row[0]

    tenant_id = uuid4()
    await set_current_tenant(session, tenant_id)
    await session.execute(
        text("INSERT INTO tenants (id, name, slug) VALUES (:id, :name, :slug) ON CONFLICT (slug) DO NOTHING"),
        {"id": str(tenant_id), "name": name, "slug": slug},
    )
    res = await session.execute(text("SELECT id FROM tenants WHERE slug = :slug"), {"slug": slug})
    row = res.first()
    if not row:
        raise RuntimeError("Failed to create or load base tenant")
    return row[0]


async def _seed_users(session: AsyncSession) -> list[User]:
    repo = UserRepository(session)
    users: list[User] = []
    for email, name, rate in DEMO_USERS:
        user = await repo.get_user_by_email(email)
        if user is None:
            user = await repo.create_user(
                email=email,
                name=name,
                hashed_password=get_password_hash(DEMO_PASSWORD),
            )
            user.hourly_rate = rate
        users.append(user)
    await session.flush()
    return users


async def _seed_team(session: AsyncSession, leader: User, member: User) -> None:
    stmt = select(Team).where(Team.leader_id == leader.id, Team.member_id == member.id)
    if (await session.execute(stmt)).scalar_one_or_none() is not None:
        return
    session.add(Team(leader_id=leader.id, member_id=member.id, hourly_rate=member.hourly_rate, currency=member.currency))
    await session.flush()


async def _seed_client(session: AsyncSession, owner: User) -> None:
    stmt = select(Client).where(Client.user_id == owner.id, Client.name == "Example Client")
    if (await session.execute(stmt)).scalar_one_or_none() is not None:
        return
    session.add(
        Client(
            user_id=owner.id,
            name="Example Client",
            email="billing@example.com",
            contact_person="Jane Doe",
            hourly_rate=Decimal("100.00"),
            currency=owner.currency,
        )
    )
    await session.flush()


# PUBLIC_INTERFACE
def main() -> None:
    """Entrypoint to run the asynchronous seeding."""
    asyncio.run(seed_all())


if __name__ == "__main__":
    main()
