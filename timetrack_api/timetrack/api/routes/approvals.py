from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from timetrack.core.deps import get_current_active_user, get_tenant_session
from timetrack.db.models.users import User
from timetrack.schemas.approvals import ApprovalDecision, BulkApprovalRequest, BulkApprovalResult
from timetrack.schemas.time_logs import TimeLogRead
from timetrack.services.approvals import ApprovalService

router = APIRouter(prefix="/approvals", tags=["Approvals"])


# PUBLIC_INTERFACE
@router.get(
    "",
    response_model=List[TimeLogRead],
    summary="Pending approvals",
    description="Pending logs of other users on projects the caller leads or approves.",
)
async def pending_approvals(
    user: User = Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> List[TimeLogRead]:
    logs = await ApprovalService(session).pending(user)
    return [TimeLogRead.model_validate(x) for x in logs]


# PUBLIC_INTERFACE
@router.post("/approve-many", response_model=BulkApprovalResult, summary="Approve several time logs")
async def approve_many(
    payload: BulkApprovalRequest,
    user: User = Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> BulkApprovalResult:
    result = await ApprovalService(session).approve_many(user, payload.time_log_ids, payload.comment)
    return BulkApprovalResult(**result)


# PUBLIC_INTERFACE
@router.post("/{time_log_id}/approve", response_model=TimeLogRead, summary="Approve time log")
async def approve(
    time_log_id: UUID,
    payload: Optional[ApprovalDecision] = None,
    user: User = Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> TimeLogRead:
    log = await ApprovalService(session).approve(user, time_log_id, payload.comment if payload else None)
    return TimeLogRead.model_validate(log)


# PUBLIC_INTERFACE
@router.post("/{time_log_id}/reject", response_model=TimeLogRead, summary="Reject time log")
async def reject(
    time_log_id: UUID,
    payload: Optional[ApprovalDecision] = None,
    user: User = Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> TimeLogRead:
    log = await ApprovalService(session).reject(user, time_log_id, payload.comment if payload else None)
    return TimeLogRead.model_validate(log)
