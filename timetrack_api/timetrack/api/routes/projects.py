from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from timetrack.core.deps import get_current_active_user, get_tenant_session
from timetrack.db.models.users import User
from timetrack.schemas.projects import ProjectCreate, ProjectNoteRead, ProjectNoteWrite, ProjectRead, ProjectUpdate
from timetrack.schemas.tasks import TaskRead
from timetrack.schemas.time_logs import TimeLogList, TimeLogRead, TimeLogStats
from timetrack.services.exports import dated_filename, export_dataframe
from timetrack.services.projects import ProjectService
from timetrack.services.tasks import TaskService
from timetrack.services.time_logs import TimeLogService

router = APIRouter(prefix="/projects", tags=["Projects"])


# PUBLIC_INTERFACE
@router.get(
    "",
    response_model=List[ProjectRead],
    summary="List projects",
    description="Projects the caller owns plus projects the caller is a member of.",
)
async def list_projects(
    search: Optional[str] = Query(None, description="Filter by name"),
    user: User = Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> List[ProjectRead]:
    projects = await ProjectService(session).list_projects(user, search)
    return [ProjectRead.model_validate(p) for p in projects]


# PUBLIC_INTERFACE
@router.get("/export", summary="Export projects", response_class=StreamingResponse)
async def export_projects(
    export_format: str = Query("csv", alias="format", pattern="^(csv|xlsx|pdf)$"),
    user: User = Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> StreamingResponse:
    df = await ProjectService(session).export_frame(user)
    return export_dataframe(df, dated_filename("projects"), export_format)


# PUBLIC_INTERFACE
@router.post("", response_model=ProjectRead, status_code=201, summary="Create project")
async def create_project(
    payload: ProjectCreate,
    user: User = Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> ProjectRead:
    project = await ProjectService(session).create(user, payload)
    return ProjectRead.model_validate(project)


# PUBLIC_INTERFACE
@router.get("/{project_id}", response_model=ProjectRead, summary="Get project")
async def get_project(
    project_id: UUID,
    user: User = Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> ProjectRead:
    project = await ProjectService(session).get(user, project_id)
    return ProjectRead.model_validate(project)


# PUBLIC_INTERFACE
@router.put("/{project_id}", response_model=ProjectRead, summary="Update project")
async def update_project(
    project_id: UUID,
    payload: ProjectUpdate,
    user: User = Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> ProjectRead:
    project = await ProjectService(session).update(user, project_id, payload)
    return ProjectRead.model_validate(project)


# PUBLIC_INTERFACE
@router.delete("/{project_id}", status_code=204, summary="Delete project")
async def delete_project(
    project_id: UUID,
    user: User = Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> Response:
    await ProjectService(session).delete(user, project_id)
    return Response(status_code=204)


# PUBLIC_INTERFACE
@router.get("/{project_id}/tasks", response_model=List[TaskRead], summary="Project tasks")
async def project_tasks(
    project_id: UUID,
    user: User = Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> List[TaskRead]:
    tasks = await TaskService(session).project_tasks(user, project_id)
    return [TaskRead.model_validate(t) for t in tasks]


# PUBLIC_INTERFACE
@router.get(
    "/{project_id}/time-logs",
    response_model=TimeLogList,
    summary="Project time logs",
    description="Owner and approvers see every log on the project; members see their own.",
)
async def project_time_logs(
    project_id: UUID,
    status: Optional[str] = Query(None, pattern="^(pending|approved|rejected)$"),
    is_paid: Optional[bool] = Query(None),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    user: User = Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> TimeLogList:
    logs, stats = await TimeLogService(session).project_logs(
        user, project_id, status=status, is_paid=is_paid, start_date=start_date, end_date=end_date
    )
    return TimeLogList(items=[TimeLogRead.model_validate(x) for x in logs], stats=TimeLogStats(**stats))


# Notes

# PUBLIC_INTERFACE
@router.get("/{project_id}/notes", response_model=List[ProjectNoteRead], summary="List project notes")
async def list_notes(
    project_id: UUID,
    user: User = Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> List[ProjectNoteRead]:
    notes = await ProjectService(session).list_notes(user, project_id)
    return [ProjectNoteRead.model_validate(n) for n in notes]


# PUBLIC_INTERFACE
@router.post("/{project_id}/notes", response_model=ProjectNoteRead, status_code=201, summary="Add project note")
async def create_note(
    project_id: UUID,
    payload: ProjectNoteWrite,
    user: User = Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> ProjectNoteRead:
    note = await ProjectService(session).create_note(user, project_id, payload)
    return ProjectNoteRead.model_validate(note)


# PUBLIC_INTERFACE
@router.put("/{project_id}/notes/{note_id}", response_model=ProjectNoteRead, summary="Edit project note")
async def update_note(
    project_id: UUID,
    note_id: UUID,
    payload: ProjectNoteWrite,
    user: User = Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> ProjectNoteRead:
    note = await ProjectService(session).update_note(user, project_id, note_id, payload)
    return ProjectNoteRead.model_validate(note)


# PUBLIC_INTERFACE
@router.delete("/{project_id}/notes/{note_id}", status_code=204, summary="Delete project note")
async def delete_note(
    project_id: UUID,
    note_id: UUID,
    user: User = Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> Response:
    await ProjectService(session).delete_note(user, project_id, note_id)
    return Response(status_code=204)
