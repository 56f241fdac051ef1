from __future__ import annotations

from typing import Any, Dict, List
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from timetrack.core.deps import get_current_active_user, get_tenant_session
from timetrack.db.models.users import User
from timetrack.schemas.common import MessageResponse
from timetrack.schemas.integrations import (
    GitHubImportResult,
    GitHubRepositoryImport,
    JiraCredentialsWrite,
    JiraImportResult,
    JiraProjectImport,
    JiraProjectList,
    JiraSyncResult,
    SyncCounts,
)
from timetrack.services.github import GitHubService
from timetrack.services.jira import JiraService

github_router = APIRouter(prefix="/integrations/github", tags=["GitHub"])
jira_router = APIRouter(prefix="/integrations/jira", tags=["Jira"])


# PUBLIC_INTERFACE
@github_router.get(
    "/repositories",
    response_model=List[Dict[str, Any]],
    summary="List GitHub repositories",
    description="Personal or organization repositories of the caller's token, each flagged with is_imported.",
)
async def list_repositories(
    kind: str = Query("personal", pattern="^(personal|organization)$"),
    user: User = Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> List[Dict[str, Any]]:
    return await GitHubService(session).list_repositories(user, kind=kind)


# PUBLIC_INTERFACE
@github_router.post(
    "/import",
    response_model=GitHubImportResult,
    status_code=201,
    summary="Import GitHub repository",
    description="Create a project from the repository and import its issues as tasks.",
)
async def import_repository(
    payload: GitHubRepositoryImport,
    user: User = Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> GitHubImportResult:
    project, counts = await GitHubService(session).import_repository(user, payload.model_dump())
    return GitHubImportResult(
        project_id=project.id,
        message="Repository imported successfully.",
        counts=SyncCounts(**counts),
    )


# PUBLIC_INTERFACE
@github_router.post("/projects/{project_id}/sync", response_model=SyncCounts, summary="Sync GitHub issues")
async def sync_github_project(
    project_id: UUID,
    user: User = Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> SyncCounts:
    counts = await GitHubService(session).sync_project(user, project_id)
    return SyncCounts(**counts)


# PUBLIC_INTERFACE
@jira_router.post(
    "/credentials",
    response_model=MessageResponse,
    summary="Save Jira credentials",
    description="Credentials are checked against the Jira API before they are stored.",
)
async def save_credentials(
    payload: JiraCredentialsWrite,
    user: User = Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> MessageResponse:
    await JiraService(session).save_credentials(user, payload.domain, str(payload.email), payload.token)
    return MessageResponse(message="Jira credentials validated and saved successfully.")


# PUBLIC_INTERFACE
@jira_router.get("/projects", response_model=JiraProjectList, summary="List Jira projects")
async def list_jira_projects(
    user: User = Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> JiraProjectList:
    return JiraProjectList(**await JiraService(session).list_projects(user))


# PUBLIC_INTERFACE
@jira_router.post("/import", response_model=JiraImportResult, status_code=201, summary="Import Jira project")
async def import_jira_project(
    payload: JiraProjectImport,
    user: User = Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> JiraImportResult:
    project = await JiraService(session).import_project(user, payload.key, payload.name, payload.description)
    return JiraImportResult(project_id=project.id, message="Jira project and its issues successfully imported")


# PUBLIC_INTERFACE
@jira_router.post("/projects/{project_id}/sync", response_model=JiraSyncResult, summary="Sync Jira issues")
async def sync_jira_project(
    project_id: UUID,
    user: User = Depends(get_current_active_user),
    session: AsyncSession = Depends(get_tenant_session),
) -> JiraSyncResult:
    stats = await JiraService(session).sync_project(user, project_id)
    return JiraSyncResult(message="Jira project and issues successfully synced", **stats)
