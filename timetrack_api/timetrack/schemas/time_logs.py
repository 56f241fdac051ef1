from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from timetrack.schemas.tasks import clean_tag_names


class TimeLogTagRead(BaseModel):
    id: UUID
    name: str
    color: str

    class Config:
        from_attributes = True


class TimeLogWrite(BaseModel):
    """Fields shared by create and update."""
    project_id: UUID = Field(..., description="Project the time is logged against")
    task_id: Optional[UUID] = Field(None, description="Optional task within the project")
    start_timestamp: datetime = Field(..., description="Start of the interval")
    end_timestamp: Optional[datetime] = Field(None, description="End of the interval; omit for a running timer")
    note: Optional[str] = Field(None, max_length=5000)
    non_billable: bool = Field(False)
    tags: List[str] = Field(default_factory=list, description="Tag names; missing tags are created")
    mark_task_complete: bool = Field(False, description="Complete the linked task when the log is complete")
    close_github_issue: bool = Field(False, description="Close the linked GitHub issue when the log is complete")

    @field_validator("tags")
    @classmethod
    def _strip_tags(cls, value: List[str]) -> List[str]:
        return clean_tag_names(value)


class TimeLogCreate(TimeLogWrite):
    """Create time log payload."""


class TimeLogUpdate(TimeLogWrite):
    """Update time log payload."""


class TimeLogRead(BaseModel):
    """Time log read model."""
    id: UUID
    user_id: UUID
    project_id: UUID
    task_id: Optional[UUID] = None
    invoice_id: Optional[UUID] = None
    start_timestamp: datetime
    end_timestamp: Optional[datetime] = None
    duration: Optional[Decimal] = None
    note: Optional[str] = None
    is_paid: bool
    non_billable: bool
    hourly_rate: Optional[Decimal] = None
    currency: str
    status: str
    approved_by: Optional[UUID] = None
    approved_at: Optional[datetime] = None
    comment: Optional[str] = None
    tags: List[TimeLogTagRead] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class TimeLogStats(BaseModel):
    """Aggregates over approved logs."""
    total_duration: float = 0
    unpaid_hours: float = 0
    paid_hours: float = 0
    unbillable_hours: float = 0
    weekly_average: float = 0
    unpaid_amount_by_currency: Dict[str, float] = Field(default_factory=dict)
    paid_amount_by_currency: Dict[str, float] = Field(default_factory=dict)


class TimeLogList(BaseModel):
    """Time logs plus stats computed over the whole filtered set."""
    items: List[TimeLogRead]
    stats: TimeLogStats


class MarkPaidRequest(BaseModel):
    time_log_ids: List[UUID] = Field(..., min_length=1)


class MarkPaidResult(BaseModel):
    paid_count: int
    skipped_count: int
    message: str


class UnpaidProjectGroup(BaseModel):
    """Unpaid, uninvoiced time of one project for a client."""
    project_id: UUID
    project_name: str
    total_hours: float
    hourly_rate: float
    currency: str
    time_logs: List[TimeLogRead]


class DailyTrendPoint(BaseModel):
    date: date
    user_hours: float
    team_hours: float


class ImportResult(BaseModel):
    imported_count: int
    message: str
