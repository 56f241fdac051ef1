from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from timetrack.core.deps import get_current_active_user, get_tenant_session
from timetrack.db.models.users import User
from timetrack.schemas.dashboard import DashboardRead
from timetrack.services.dashboard import DashboardService

router = APIRouter(prefix="/dashboard", tags=["Dashboard"])


# PUBLIC_INTERFACE
@router.get(
    "",
    response_model=DashboardRead,
    summary="Dashboard summary",
    description=(
        "Caller's approved-time stats, the 7-day trend, the five most recent approved "
        "logs and counts of projects, tasks and pending approvals."
    ),
)
async def dashboard(
    user: User = Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> DashboardRead:
    return DashboardRead.model_validate(await DashboardService(session).summary(user), from_attributes=True)
