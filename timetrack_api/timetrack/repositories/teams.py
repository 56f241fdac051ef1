from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import or_, select

from timetrack.db.models.teams import Team
from timetrack.db.models.users import User
from .base import BaseRepository


class TeamRepository(BaseRepository):
    """Repository for leader -> member team entries."""

    async def get(self, team_id: UUID) -> Optional[Team]:
        stmt = select(Team).where(Team.id == team_id)
        return await self.scalar_one_or_none(stmt)

    async def entry(self, leader_id: UUID, member_id: UUID) -> Optional[Team]:
        stmt = select(Team).where(Team.leader_id == leader_id, Team.member_id == member_id)
        return await self.scalar_one_or_none(stmt)

    async def entries_for_pairs(self, pairs: Iterable[Tuple[UUID, UUID]]) -> Dict[Tuple[UUID, UUID], Team]:
        """Load team entries for (leader_id, member_id) pairs in one query."""
        pairs = set(pairs)
        if not pairs:
            return {}
        leaders = {leader for leader, _ in pairs}
        stmt = select(Team).where(Team.leader_id.in_(leaders))
        result = await self.scalars(stmt)
        return {
            (t.leader_id, t.member_id): t
            for t in result
            if (t.leader_id, t.member_id) in pairs
        }

    async def list_members(self, leader_id: UUID, search: Optional[str] = None) -> List[Team]:
        stmt = select(Team).join(User, User.id == Team.member_id).where(Team.leader_id == leader_id)
        if search:
            like = f"%{search}%"
            stmt = stmt.where(or_(User.name.ilike(like), User.email.ilike(like)))
        stmt = stmt.order_by(User.name)
        result = await self.scalars(stmt)
        return list(result)

    async def member_ids(self, leader_id: UUID) -> List[UUID]:
        stmt = select(Team.member_id).where(Team.leader_id == leader_id)
        result = await self.scalars(stmt)
        return list(result)

    async def leader_ids(self, member_id: UUID) -> List[UUID]:
        stmt = select(Team.leader_id).where(Team.member_id == member_id)
        result = await self.scalars(stmt)
        return list(result)

    async def create(
        self,
        *,
        leader_id: UUID,
        member_id: UUID,
        hourly_rate,
        currency: str,
        non_monetary: bool,
    ) -> Team:
        team = Team(
            leader_id=leader_id,
            member_id=member_id,
            hourly_rate=hourly_rate,
            currency=currency,
            non_monetary=non_monetary,
        )
        await self.add(team)
        await self.flush()
        return team
