from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from timetrack.core.errors import BadRequestError, ForbiddenError, NotFoundError
from timetrack.db.models.time_logs import TimeLog
from timetrack.db.models.users import User
from timetrack.repositories.projects import ProjectRepository
from timetrack.repositories.time_logs import TimeLogRepository
from timetrack.services.base import BaseService
from timetrack.services.notifications import NotificationService

logger = logging.getLogger(__name__)

NOT_AUTHORIZED = "You are not authorized to approve this time log."


def is_project_approver(project, user_id: UUID) -> bool:
    return any(m.member_id == user_id and m.is_approver for m in project.members)


# PUBLIC_INTERFACE
def can_approve(user: User, log: TimeLog) -> bool:
    """True when the user leads the log's project or is an approver on it."""
    project = log.project
    return project.user_id == user.id or is_project_approver(project, user.id)


def approval_message(approved_count: int, skipped_count: int) -> str:
    message = f"{approved_count} time logs approved successfully."
    if skipped_count > 0:
        message += f" {skipped_count} time logs were skipped because you are not authorized to approve them."
    return message


def _notification_data(log: TimeLog, actor: User) -> Dict[str, Any]:
    return {
        "time_log_id": str(log.id),
        "project_id": str(log.project_id),
        "project_name": log.project.name,
        "actor_id": str(actor.id),
        "actor_name": actor.name,
        "status": log.status,
        "comment": log.comment,
    }


class ApprovalService(BaseService):
    """Approve and reject teammates' time logs."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)
        self.logs = TimeLogRepository(session)
        self.projects = ProjectRepository(session)
        self.notifications = NotificationService(session)

    def _apply(self, user: User, log: TimeLog, status: str, comment: Optional[str]) -> None:
        log.status = status
        log.approved_by = user.id
        log.approved_at = datetime.now(timezone.utc)
        log.comment = comment

    async def _load(self, time_log_id: UUID) -> TimeLog:
        log = await self.logs.get(time_log_id)
        if log is None:
            raise NotFoundError("Time log not found.")
        return log

    # PUBLIC_INTERFACE
    async def pending(self, user: User) -> List[TimeLog]:
        """Pending logs of other users on projects the user leads or approves."""
        project_ids = await self.projects.approvable_project_ids(user.id)
        return await self.logs.pending_for_projects(project_ids, exclude_user_id=user.id)

    # PUBLIC_INTERFACE
    async def approve(self, user: User, time_log_id: UUID, comment: Optional[str] = None) -> TimeLog:
        """Approve a single time log and notify its owner."""
        log = await self._load(time_log_id)
        if not can_approve(user, log):
            raise ForbiddenError(NOT_AUTHORIZED)
        async with self.transaction():
            self._apply(user, log, "approved", comment)
            if log.user_id != user.id:
                await self.notifications.notify(log.user_id, "time_log_approved", _notification_data(log, user))
        await self.notifications.dispatch()
        logger.info("Time log %s approved", log.id)
        return log

    # PUBLIC_INTERFACE
    async def reject(self, user: User, time_log_id: UUID, comment: Optional[str] = None) -> TimeLog:
        """
        Reject a time log.

        The owner is notified; when an approver who is not the team leader rejects,
        the leader is notified too. Paid logs can no longer be rejected.
        """
        log = await self._load(time_log_id)
        if not can_approve(user, log):
            raise ForbiddenError(NOT_AUTHORIZED)
        if log.is_paid:
            raise ForbiddenError("Paid time logs cannot be rejected.")
        leader_id = log.project.user_id
        async with self.transaction():
            self._apply(user, log, "rejected", comment)
            data = _notification_data(log, user)
            if log.user_id != user.id:
                await self.notifications.notify(log.user_id, "time_log_rejected", data)
            if user.id != leader_id and is_project_approver(log.project, user.id):
                await self.notifications.notify(leader_id, "time_log_rejected", data)
        await self.notifications.dispatch()
        logger.info("Time log %s rejected", log.id)
        return log

    # PUBLIC_INTERFACE
    async def approve_many(self, user: User, ids: Sequence[UUID], comment: Optional[str] = None) -> Dict[str, Any]:
        """
        Approve every log the user may approve, skipping the rest.

        The batch is a single transaction: any unexpected failure rolls back all approvals.
        Returns:
            {"approved_count", "skipped_count", "message"}
        """
        if not ids:
            raise BadRequestError("No time logs selected.")
        logs = await self.logs.get_many(ids)
        approved = 0
        skipped = 0
        async with self.transaction():
            for log in logs:
                if not can_approve(user, log):
                    skipped += 1
                    continue
                self._apply(user, log, "approved", comment)
                approved += 1
                if log.user_id != user.id:
                    await self.notifications.notify(log.user_id, "time_log_approved", _notification_data(log, user))
        await self.notifications.dispatch()
        logger.info("Bulk approval: approved=%d skipped=%d", approved, skipped)
        return {
            "approved_count": approved,
            "skipped_count": skipped,
            "message": approval_message(approved, skipped),
        }
