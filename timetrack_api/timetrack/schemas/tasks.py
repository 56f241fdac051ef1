from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

TaskStatus = Literal["pending", "in_progress", "completed"]
TaskPriority = Literal["low", "medium", "high"]


def clean_tag_names(value: List[str]) -> List[str]:
    names = [v.strip() for v in value if v and v.strip()]
    for name in names:
        if len(name) > 50:
            raise ValueError("tag names must be at most 50 characters")
    return list(dict.fromkeys(names))


class TaskBase(BaseModel):
    project_id: UUID = Field(..., description="Project the task belongs to")
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=10000)
    status: TaskStatus = Field("pending")
    priority: TaskPriority = Field("medium")
    due_date: Optional[date] = Field(None)
    assignees: List[UUID] = Field(default_factory=list, description="Assigned user ids")
    tags: List[str] = Field(default_factory=list, description="Tag names; missing tags are created")

    @field_validator("tags")
    @classmethod
    def _strip_tags(cls, value: List[str]) -> List[str]:
        return clean_tag_names(value)


class TaskCreate(TaskBase):
    """Create task payload."""


class TaskUpdate(TaskBase):
    """Update task payload (assignees and tags are replaced)."""
    close_github_issue: bool = Field(False, description="Close the linked GitHub issue when completing")


class TaskStatusUpdate(BaseModel):
    status: TaskStatus = Field(...)
    close_github_issue: bool = Field(False, description="Close the linked GitHub issue when completing")


class TaskUserRead(BaseModel):
    id: UUID
    name: str
    email: str

    class Config:
        from_attributes = True


class TagRead(BaseModel):
    id: UUID
    name: str
    color: str

    class Config:
        from_attributes = True


class TagCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=50)
    color: Optional[str] = Field(None, pattern=r"^#[0-9A-Fa-f]{6}$", description="#RRGGBB; random when omitted")


class TaskMetaRead(BaseModel):
    source: str
    source_id: str
    source_number: Optional[str] = None
    source_url: Optional[str] = None
    source_state: Optional[str] = None
    extra_data: Dict[str, Any] = Field(default_factory=dict)

    class Config:
        from_attributes = True


class TaskRead(BaseModel):
    """Task read model."""
    id: UUID
    project_id: UUID
    title: str
    description: Optional[str] = None
    status: str
    priority: str
    due_date: Optional[date] = None
    is_imported: bool
    created_by: Optional[UUID] = None
    assignees: List[TaskUserRead] = Field(default_factory=list)
    tags: List[TagRead] = Field(default_factory=list)
    meta: Optional[TaskMetaRead] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class TaskCommentWrite(BaseModel):
    body: str = Field(..., min_length=1, max_length=5000)


class TaskCommentRead(BaseModel):
    id: UUID
    task_id: UUID
    user_id: UUID
    user: Optional[TaskUserRead] = None
    body: str
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
