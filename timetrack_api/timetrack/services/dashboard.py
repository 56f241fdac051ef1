from __future__ import annotations

from typing import Any, Dict

from sqlalchemy.ext.asyncio import AsyncSession

from timetrack.db.models.users import User
from timetrack.services.approvals import ApprovalService
from timetrack.services.projects import ProjectService
from timetrack.services.tasks import TaskService
from timetrack.services.time_logs import TimeLogService

RECENT_LIMIT = 5
TREND_DAYS = 7


class DashboardService:
    """Aggregates the landing-page figures from the other services."""

    def __init__(self, session: AsyncSession) -> None:
        self.time_logs = TimeLogService(session)
        self.projects = ProjectService(session)
        self.tasks = TaskService(session)
        self.approvals = ApprovalService(session)

    # PUBLIC_INTERFACE
    async def summary(self, user: User) -> Dict[str, Any]:
        _, stats = await self.time_logs.list_logs(user)
        return {
            "stats": stats,
            "daily_trend": await self.time_logs.daily_trend(user, days=TREND_DAYS),
            "recent_logs": await self.time_logs.recent(user, limit=RECENT_LIMIT),
            "project_count": len(await self.projects.list_projects(user)),
            "task_count": len(await self.tasks.user_tasks(user)),
            "pending_approval_count": len(await self.approvals.pending(user)),
        }
