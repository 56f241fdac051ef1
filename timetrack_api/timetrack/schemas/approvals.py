from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class ApprovalDecision(BaseModel):
    comment: Optional[str] = Field(None, max_length=1000, description="Shown to the log owner")


class BulkApprovalRequest(BaseModel):
    time_log_ids: List[UUID] = Field(..., min_length=1)
    comment: Optional[str] = Field(None, max_length=1000)


class BulkApprovalResult(BaseModel):
    approved_count: int
    skipped_count: int
    message: str
