from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, File, Query, Response, UploadFile
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from timetrack.core.deps import get_current_active_user, get_tenant_session
from timetrack.db.models.users import User
from timetrack.schemas.time_logs import (
    DailyTrendPoint,
    ImportResult,
    MarkPaidRequest,
    MarkPaidResult,
    TimeLogCreate,
    TimeLogList,
    TimeLogRead,
    TimeLogStats,
    TimeLogUpdate,
)
from timetrack.services.exports import dated_filename, export_dataframe
from timetrack.services.time_logs import TimeLogService

router = APIRouter(prefix="/time-logs", tags=["Time Logs"])


class _Filters:
    """Query filters shared by listing, stats and export."""

    def __init__(
        self,
        project_id: Optional[UUID] = Query(None),
        status: Optional[str] = Query(None, pattern="^(pending|approved|rejected)$"),
        is_paid: Optional[bool] = Query(None),
        tag_id: Optional[UUID] = Query(None),
        start_date: Optional[datetime] = Query(None, description="Logs starting at or after"),
        end_date: Optional[datetime] = Query(None, description="Logs starting at or before"),
    ) -> None:
        self.values = {
            "project_id": project_id,
            "status": status,
            "is_paid": is_paid,
            "tag_id": tag_id,
            "start_date": start_date,
            "end_date": end_date,
        }


# PUBLIC_INTERFACE
@router.get(
    "",
    response_model=TimeLogList,
    summary="List time logs",
    description=(
        "The caller's logs (or a team member's, for leaders) with stats computed "
        "over the whole filtered set."
    ),
)
async def list_time_logs(
    filters: _Filters = Depends(),
    member_id: Optional[UUID] = Query(None, description="Team member whose logs to list"),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    user: User = Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> TimeLogList:
    logs, stats = await TimeLogService(session).list_logs(
        user, member_id=member_id, limit=limit, offset=offset, **filters.values
    )
    return TimeLogList(items=[TimeLogRead.model_validate(x) for x in logs], stats=TimeLogStats(**stats))


# PUBLIC_INTERFACE
@router.get("/stats", response_model=TimeLogStats, summary="Time log stats")
async def time_log_stats(
    filters: _Filters = Depends(),
    member_id: Optional[UUID] = Query(None),
    user: User = Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> TimeLogStats:
    _, stats = await TimeLogService(session).list_logs(user, member_id=member_id, **filters.values)
    return TimeLogStats(**stats)


# PUBLIC_INTERFACE
@router.get(
    "/trend",
    response_model=List[DailyTrendPoint],
    summary="Daily trend",
    description="Approved hours per day for the caller and the caller's team.",
)
async def daily_trend(
    days: int = Query(7, ge=1, le=366),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    user: User = Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> List[DailyTrendPoint]:
    trend = await TimeLogService(session).daily_trend(user, days=days, start_date=start_date, end_date=end_date)
    return [DailyTrendPoint(**point) for point in trend]


# PUBLIC_INTERFACE
@router.get("/export", summary="Export time logs", response_class=StreamingResponse)
async def export_time_logs(
    filters: _Filters = Depends(),
    export_format: str = Query("csv", alias="format", pattern="^(csv|xlsx|pdf)$"),
    user: User = Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> StreamingResponse:
    df = await TimeLogService(session).export_frame(user, **filters.values)
    return export_dataframe(df, dated_filename("time_logs"), export_format)


# PUBLIC_INTERFACE
@router.get(
    "/template",
    summary="Import template",
    description="Excel template with the caller's projects offered in a dropdown.",
    response_class=StreamingResponse,
)
async def import_template(
    user: User = Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> StreamingResponse:
    return await TimeLogService(session).template(user)


# PUBLIC_INTERFACE
@router.post(
    "/import",
    response_model=ImportResult,
    summary="Import time logs",
    description="Upload a .xlsx or .csv sheet. Any invalid row rejects the whole file with 422.",
)
async def import_time_logs(
    file: UploadFile = File(...),
    user: User = Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> ImportResult:
    content = await file.read()
    result = await TimeLogService(session).import_file(user, content, file.filename or "")
    return ImportResult(**result)


# PUBLIC_INTERFACE
@router.post(
    "/mark-paid",
    response_model=MarkPaidResult,
    summary="Mark time logs paid",
    description="Marks the caller's own or led-project logs as paid; others are skipped.",
)
async def mark_paid(
    payload: MarkPaidRequest,
    user: User = Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> MarkPaidResult:
    result = await TimeLogService(session).mark_paid(user, payload.time_log_ids)
    return MarkPaidResult(**result)


# PUBLIC_INTERFACE
@router.post("", response_model=TimeLogRead, status_code=201, summary="Create time log")
async def create_time_log(
    payload: TimeLogCreate,
    user: User = Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> TimeLogRead:
    log = await TimeLogService(session).create(user, payload)
    return TimeLogRead.model_validate(log)


# PUBLIC_INTERFACE
@router.get("/{time_log_id}", response_model=TimeLogRead, summary="Get time log")
async def get_time_log(
    time_log_id: UUID,
    user: User = Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> TimeLogRead:
    log = await TimeLogService(session).get(user, time_log_id)
    return TimeLogRead.model_validate(log)


# PUBLIC_INTERFACE
@router.put("/{time_log_id}", response_model=TimeLogRead, summary="Update time log")
async def update_time_log(
    time_log_id: UUID,
    payload: TimeLogUpdate,
    user: User = Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> TimeLogRead:
    log = await TimeLogService(session).update(user, time_log_id, payload)
    return TimeLogRead.model_validate(log)


# PUBLIC_INTERFACE
@router.delete("/{time_log_id}", status_code=204, summary="Delete time log")
async def delete_time_log(
    time_log_id: UUID,
    user: User = Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> Response:
    await TimeLogService(session).delete(user, time_log_id)
    return Response(status_code=204)
