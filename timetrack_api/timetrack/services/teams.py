from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

import pandas as pd
from sqlalchemy.ext.asyncio import AsyncSession

from timetrack.core.errors import BadRequestError, ConflictError, ForbiddenError, NotFoundError
from timetrack.core.security import get_password_hash
from timetrack.db.models.teams import Team
from timetrack.db.models.users import User
from timetrack.repositories.teams import TeamRepository
from timetrack.repositories.time_logs import TimeLogRepository
from timetrack.repositories.users import UserRepository
from timetrack.schemas.teams import TeamMemberCreate, TeamMemberUpdate
from timetrack.services.base import BaseService
from timetrack.services.notifications import NotificationService
from timetrack.services.time_logs import compute_stats, rate_resolver

logger = logging.getLogger(__name__)

EXPORT_COLUMNS = [
    "ID",
    "Name",
    "Email",
    "Hourly Rate",
    "Currency",
    "Total Hours",
    "Unpaid Hours",
    "Unpaid Amount",
    "Weekly Average",
]


def _format_amounts(amounts: Dict[str, float]) -> str:
    return ", ".join(f"{amount:.2f} {currency}" for currency, amount in sorted(amounts.items()))


class TeamService(BaseService):
    """Manage a team leader's members and their billing terms."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)
        self.repo = TeamRepository(session)
        self.users = UserRepository(session)
        self.time_logs = TimeLogRepository(session)
        self.notifications = NotificationService(session)

    def _leader_payload(self, leader: User, member: User) -> Dict[str, Any]:
        return {
            "leader_id": str(leader.id),
            "leader_name": leader.name,
            "member_id": str(member.id),
            "member_name": member.name,
        }

    async def _entry(self, leader: User, member_id: UUID) -> Team:
        entry = await self.repo.entry(leader.id, member_id)
        if entry is None:
            raise ForbiddenError("You are not authorized to manage this team member.")
        return entry

    # PUBLIC_INTERFACE
    async def add_member(self, leader: User, payload: TeamMemberCreate) -> Team:
        """
        Add a member by e-mail, creating the user when they do not exist yet.

        Non-monetary members always carry a rate of 0.
        """
        member = await self.users.get_user_by_email(payload.email)
        if member is not None and member.id == leader.id:
            raise BadRequestError("You cannot add yourself to your team.")
        if member is not None and await self.repo.entry(leader.id, member.id) is not None:
            raise ConflictError("This user is already a member of your team.")

        currency = payload.currency.upper()
        async with self.transaction():
            created = member is None
            if created:
                member = await self.users.create_user(
                    email=str(payload.email),
                    name=payload.name,
                    hashed_password=get_password_hash(payload.password),
                    currency=currency,
                )
            entry = await self.repo.create(
                leader_id=leader.id,
                member_id=member.id,
                hourly_rate=Decimal("0") if payload.non_monetary else payload.hourly_rate,
                currency=currency,
                non_monetary=payload.non_monetary,
            )
            entry.member = member
            await self.notifications.notify(
                member.id,
                "team_member_created" if created else "team_member_added",
                self._leader_payload(leader, member),
            )
        await self.notifications.dispatch()
        logger.info("Member %s added to team of %s (new_user=%s)", member.id, leader.id, created)
        return entry

    # PUBLIC_INTERFACE
    async def update_member(self, leader: User, member_id: UUID, payload: TeamMemberUpdate) -> Team:
        """Update a member's profile and billing terms. Only the member's leader may do this."""
        entry = await self._entry(leader, member_id)
        member = entry.member
        if payload.email.lower() != member.email.lower():
            other = await self.users.get_user_by_email(payload.email)
            if other is not None and other.id != member.id:
                raise ConflictError("The email has already been taken.")

        async with self.transaction():
            member.name = payload.name
            member.email = str(payload.email)
            entry.non_monetary = payload.non_monetary
            entry.hourly_rate = Decimal("0") if payload.non_monetary else payload.hourly_rate
            entry.currency = payload.currency.upper()
            if payload.password:
                member.hashed_password = get_password_hash(payload.password)
                await self.notifications.notify(member.id, "password_changed", self._leader_payload(leader, member))
        await self.notifications.dispatch()
        return entry

    # PUBLIC_INTERFACE
    async def remove_member(self, leader: User, member_id: UUID) -> None:
        entry = await self.repo.entry(leader.id, member_id)
        if entry is None:
            raise NotFoundError("Team member not found.")
        async with self.transaction():
            await self.repo.delete(entry)
        logger.info("Member %s removed from team of %s", member_id, leader.id)

    # PUBLIC_INTERFACE
    async def list_members(self, leader: User, search: Optional[str] = None) -> List[Dict[str, Any]]:
        """
        Members of the leader's team with approved-time stats.

        Stats cover each member's approved logs across all projects, priced at the
        member's rate on each project.
        """
        entries = await self.repo.list_members(leader.id, search)
        member_ids = [entry.member_id for entry in entries]
        logs = await self.time_logs.list_time_logs(user_ids=member_ids) if member_ids else []
        rate_for = await rate_resolver(self.repo, logs)

        by_member: Dict[UUID, list] = {member_id: [] for member_id in member_ids}
        for log in logs:
            by_member.setdefault(log.user_id, []).append(log)

        members = []
        for entry in entries:
            stats = compute_stats(by_member.get(entry.member_id, []), rate_for)
            members.append(
                {
                    "id": entry.member_id,
                    "team_id": entry.id,
                    "name": entry.member.name,
                    "email": entry.member.email,
                    "hourly_rate": entry.hourly_rate,
                    "currency": entry.currency,
                    "non_monetary": entry.non_monetary,
                    "total_hours": stats["total_duration"],
                    "unpaid_hours": stats["unpaid_hours"],
                    "weekly_average": stats["weekly_average"],
                    "unpaid_amount": stats["unpaid_amount_by_currency"],
                }
            )
        return members

    # PUBLIC_INTERFACE
    async def export_frame(self, leader: User, search: Optional[str] = None) -> pd.DataFrame:
        members = await self.list_members(leader, search)
        rows = [
            [
                str(m["id"]),
                m["name"],
                m["email"],
                float(m["hourly_rate"]),
                m["currency"],
                m["total_hours"],
                m["unpaid_hours"],
                _format_amounts(m["unpaid_amount"]),
                m["weekly_average"],
            ]
            for m in members
        ]
        return pd.DataFrame(rows, columns=EXPORT_COLUMNS)

    # PUBLIC_INTERFACE
    async def team_users(self, user: User) -> List[User]:
        """Everyone the user works with: the user's own members plus the leaders the user works for."""
        ids = set(await self.repo.member_ids(user.id)) | set(await self.repo.leader_ids(user.id))
        ids.discard(user.id)
        return await self.users.list_by_ids(sorted(ids, key=str))
