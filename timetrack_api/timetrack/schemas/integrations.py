from __future__ import annotations

from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class GitHubRepositoryImport(BaseModel):
    """Repository payload as returned by the GitHub API; extra keys are ignored."""
    model_config = ConfigDict(extra="allow")

    id: int = Field(..., description="GitHub repository id")
    full_name: str = Field(..., pattern=r"^[^/\s]+/[^/\s]+$", description="owner/name")
    description: Optional[str] = Field(None)
    html_url: Optional[str] = Field(None)


class SyncCounts(BaseModel):
    new_count: int
    updated_count: int
    failed_count: int = 0


class GitHubImportResult(BaseModel):
    project_id: UUID
    message: str
    counts: SyncCounts


class JiraCredentialsWrite(BaseModel):
    domain: str = Field(..., min_length=1, max_length=255, pattern=r"^[A-Za-z0-9-]+$", description="<domain>.atlassian.net")
    email: EmailStr = Field(...)
    token: str = Field(..., min_length=1, description="Jira API token")


class JiraProjectImport(BaseModel):
    key: str = Field(..., min_length=1, max_length=50)
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=5000)


class JiraProjectList(BaseModel):
    projects: List[Dict[str, Any]]
    imported_project_keys: List[str]


class JiraSyncResult(BaseModel):
    message: str
    new_tasks: int
    updated_tasks: int
    failed_tasks: int = 0


class JiraImportResult(BaseModel):
    project_id: UUID
    message: str
