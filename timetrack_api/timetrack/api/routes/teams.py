from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from timetrack.core.deps import get_current_active_user, get_tenant_session
from timetrack.db.models.teams import Team
from timetrack.db.models.users import User
from timetrack.schemas.teams import TeamMemberCreate, TeamMemberRead, TeamMemberUpdate, TeamUserRead
from timetrack.services.exports import dated_filename, export_dataframe
from timetrack.services.teams import TeamService

router = APIRouter(prefix="/teams", tags=["Teams"])


def _member_to_read(entry: Team) -> TeamMemberRead:
    return TeamMemberRead(
        id=entry.member_id,
        team_id=entry.id,
        name=entry.member.name,
        email=entry.member.email,
        hourly_rate=entry.hourly_rate,
        currency=entry.currency,
        non_monetary=entry.non_monetary,
    )


# PUBLIC_INTERFACE
@router.get(
    "/members",
    response_model=List[TeamMemberRead],
    summary="List team members",
    description="Members of the caller's team with approved-time stats.",
)
async def list_members(
    search: Optional[str] = Query(None, description="Filter by name or email"),
    user: User = Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> List[TeamMemberRead]:
    members = await TeamService(session).list_members(user, search)
    return [TeamMemberRead(**m) for m in members]


# PUBLIC_INTERFACE
@router.get("/members/export", summary="Export team members", response_class=StreamingResponse)
async def export_members(
    export_format: str = Query("csv", alias="format", pattern="^(csv|xlsx|pdf)$"),
    search: Optional[str] = Query(None),
    user: User = Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> StreamingResponse:
    df = await TeamService(session).export_frame(user, search)
    return export_dataframe(df, dated_filename("team_members"), export_format)


# PUBLIC_INTERFACE
@router.post(
    "/members",
    response_model=TeamMemberRead,
    status_code=201,
    summary="Add team member",
    description="Add a user by email, creating the account when it does not exist.",
)
async def add_member(
    payload: TeamMemberCreate,
    user: User = Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> TeamMemberRead:
    entry = await TeamService(session).add_member(user, payload)
    return _member_to_read(entry)


# PUBLIC_INTERFACE
@router.put("/members/{member_id}", response_model=TeamMemberRead, summary="Update team member")
async def update_member(
    member_id: UUID,
    payload: TeamMemberUpdate,
    user: User = Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> TeamMemberRead:
    entry = await TeamService(session).update_member(user, member_id, payload)
    return _member_to_read(entry)


# PUBLIC_INTERFACE
@router.delete("/members/{member_id}", status_code=204, summary="Remove team member")
async def remove_member(
    member_id: UUID,
    user: User = Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> Response:
    await TeamService(session).remove_member(user, member_id)
    return Response(status_code=204)


# PUBLIC_INTERFACE
@router.get(
    "/users",
    response_model=List[TeamUserRead],
    summary="Team users",
    description="Everyone the caller works with: own members plus the leaders the caller works for.",
)
async def team_users(
    user: User = Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> List[TeamUserRead]:
    users = await TeamService(session).team_users(user)
    return [TeamUserRead.model_validate(u) for u in users]
