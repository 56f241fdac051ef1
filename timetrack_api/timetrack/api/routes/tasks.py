from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from timetrack.core.deps import get_current_active_user, get_tenant_session
from timetrack.db.models.users import User
from timetrack.schemas.tasks import (
    TagCreate,
    TagRead,
    TaskCommentRead,
    TaskCommentWrite,
    TaskCreate,
    TaskRead,
    TaskStatusUpdate,
    TaskUpdate,
)
from timetrack.services.exports import dated_filename, export_dataframe
from timetrack.services.tasks import TagService, TaskService

router = APIRouter(prefix="/tasks", tags=["Tasks"])
tags_router = APIRouter(prefix="/tags", tags=["Tags"])


# PUBLIC_INTERFACE
@router.get(
    "",
    response_model=List[TaskRead],
    summary="List tasks",
    description="Tasks of projects the caller owns plus tasks assigned to the caller.",
)
async def list_tasks(
    status: Optional[str] = Query(None, pattern="^(pending|in_progress|completed)$"),
    search: Optional[str] = Query(None, description="Filter by title"),
    user: User = Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> List[TaskRead]:
    tasks = await TaskService(session).user_tasks(user, status=status, search=search)
    return [TaskRead.model_validate(t) for t in tasks]


# PUBLIC_INTERFACE
@router.get("/export", summary="Export tasks", response_class=StreamingResponse)
async def export_tasks(
    export_format: str = Query("csv", alias="format", pattern="^(csv|xlsx|pdf)$"),
    user: User = Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> StreamingResponse:
    df = await TaskService(session).export_frame(user)
    return export_dataframe(df, dated_filename("tasks"), export_format)


# PUBLIC_INTERFACE
@router.post("", response_model=TaskRead, status_code=201, summary="Create task")
async def create_task(
    payload: TaskCreate,
    user: User = Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> TaskRead:
    task = await TaskService(session).create(user, payload)
    return TaskRead.model_validate(task)


# PUBLIC_INTERFACE
@router.get("/{task_id}", response_model=TaskRead, summary="Get task")
async def get_task(
    task_id: UUID,
    user: User = Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> TaskRead:
    task = await TaskService(session).get(user, task_id)
    return TaskRead.model_validate(task)


# PUBLIC_INTERFACE
@router.put("/{task_id}", response_model=TaskRead, summary="Update task")
async def update_task(
    task_id: UUID,
    payload: TaskUpdate,
    user: User = Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> TaskRead:
    task = await TaskService(session).update(user, task_id, payload)
    return TaskRead.model_validate(task)


# PUBLIC_INTERFACE
@router.patch(
    "/{task_id}/status",
    response_model=TaskRead,
    summary="Change task status",
    description="Allowed to the project owner and the task's assignees.",
)
async def update_task_status(
    task_id: UUID,
    payload: TaskStatusUpdate,
    user: User = Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> TaskRead:
    task = await TaskService(session).update_status(user, task_id, payload)
    return TaskRead.model_validate(task)


# PUBLIC_INTERFACE
@router.delete("/{task_id}", status_code=204, summary="Delete task")
async def delete_task(
    task_id: UUID,
    user: User = Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> Response:
    await TaskService(session).delete(user, task_id)
    return Response(status_code=204)


# Comments

# PUBLIC_INTERFACE
@router.get("/{task_id}/comments", response_model=List[TaskCommentRead], summary="List task comments")
async def list_comments(
    task_id: UUID,
    user: User = Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> List[TaskCommentRead]:
    comments = await TaskService(session).list_comments(user, task_id)
    return [TaskCommentRead.model_validate(c) for c in comments]


# PUBLIC_INTERFACE
@router.post(
    "/{task_id}/comments",
    response_model=TaskCommentRead,
    status_code=201,
    summary="Comment on task",
    description="Notifies the project owner, the assignees and any @mentioned participants.",
)
async def add_comment(
    task_id: UUID,
    payload: TaskCommentWrite,
    user: User = Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> TaskCommentRead:
    comment = await TaskService(session).add_comment(user, task_id, payload)
    return TaskCommentRead.model_validate(comment)


# PUBLIC_INTERFACE
@router.put("/{task_id}/comments/{comment_id}", response_model=TaskCommentRead, summary="Edit comment")
async def update_comment(
    task_id: UUID,
    comment_id: UUID,
    payload: TaskCommentWrite,
    user: User = Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> TaskCommentRead:
    comment = await TaskService(session).update_comment(user, task_id, comment_id, payload)
    return TaskCommentRead.model_validate(comment)


# PUBLIC_INTERFACE
@router.delete("/{task_id}/comments/{comment_id}", status_code=204, summary="Delete comment")
async def delete_comment(
    task_id: UUID,
    comment_id: UUID,
    user: User = Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> Response:
    await TaskService(session).delete_comment(user, task_id, comment_id)
    return Response(status_code=204)


# Tags

# PUBLIC_INTERFACE
@tags_router.get("", response_model=List[TagRead], summary="List or autocomplete tags")
async def list_tags(
    search: Optional[str] = Query(None, description="Name prefix or fragment"),
    limit: int = Query(100, ge=1, le=1000),
    user: User = Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> List[TagRead]:
    tags = await TagService(session).list_tags(user, search=search, limit=limit)
    return [TagRead.model_validate(t) for t in tags]


# PUBLIC_INTERFACE
@tags_router.post("", response_model=TagRead, status_code=201, summary="Create tag")
async def create_tag(
    payload: TagCreate,
    user: User = Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> TagRead:
    tag = await TagService(session).create(user, payload)
    return TagRead.model_validate(tag)


# PUBLIC_INTERFACE
@tags_router.delete("/{tag_id}", status_code=204, summary="Delete tag")
async def delete_tag(
    tag_id: UUID,
    user: User = Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> Response:
    await TagService(session).delete(user, tag_id)
    return Response(status_code=204)
