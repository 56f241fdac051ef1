from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class ProjectBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255, description="Project name")
    description: Optional[str] = Field(None, max_length=5000)
    client_id: Optional[UUID] = Field(None, description="Client billed for this project")
    team_members: List[UUID] = Field(default_factory=list, description="Team members assigned to the project")
    approvers: List[UUID] = Field(default_factory=list, description="Members allowed to approve time logs")


class ProjectCreate(ProjectBase):
    """Create project payload."""


class ProjectUpdate(ProjectBase):
    """Update project payload (members and approvers are replaced)."""


class ProjectUserRead(BaseModel):
    id: UUID
    name: str
    email: str

    class Config:
        from_attributes = True


class ProjectMemberRead(BaseModel):
    member_id: UUID
    is_approver: bool
    member: ProjectUserRead

    class Config:
        from_attributes = True


class ProjectClientRead(BaseModel):
    id: UUID
    name: str

    class Config:
        from_attributes = True


class ProjectRead(BaseModel):
    """Project read model."""
    id: UUID = Field(..., description="Project ID")
    user_id: UUID = Field(..., description="Owner (team leader)")
    owner: Optional[ProjectUserRead] = None
    client_id: Optional[UUID] = None
    client: Optional[ProjectClientRead] = None
    name: str
    description: Optional[str] = None
    paid_amount: Decimal
    repo_id: Optional[str] = None
    source: Optional[str] = None
    members: List[ProjectMemberRead] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ProjectNoteWrite(BaseModel):
    body: str = Field(..., min_length=1, max_length=5000)


class ProjectNoteRead(BaseModel):
    id: UUID
    project_id: UUID
    user_id: UUID
    user: Optional[ProjectUserRead] = None
    body: str
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
