from __future__ import annotations

from typing import List

from pydantic import BaseModel

from timetrack.schemas.time_logs import DailyTrendPoint, TimeLogRead, TimeLogStats


class DashboardRead(BaseModel):
    """Landing page summary for the caller."""
    stats: TimeLogStats
    daily_trend: List[DailyTrendPoint]
    recent_logs: List[TimeLogRead]
    project_count: int
    task_count: int
    pending_approval_count: int
