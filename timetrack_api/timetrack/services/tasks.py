from __future__ import annotations

import logging
import re
from typing import Any, Dict, Iterable, List, Optional, Set
from uuid import UUID

import pandas as pd
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from timetrack.core.errors import BadRequestError, ConflictError, ForbiddenError, NotFoundError, ServiceError
from timetrack.db.models.projects import Project
from timetrack.db.models.tasks import Tag, Task, TaskComment
from timetrack.db.models.users import User
from timetrack.repositories.projects import ProjectRepository
from timetrack.repositories.tasks import TagRepository, TaskRepository
from timetrack.repositories.users import UserRepository
from timetrack.schemas.tasks import TagCreate, TaskBase, TaskCommentWrite, TaskStatusUpdate, TaskUpdate
from timetrack.services.base import BaseService
from timetrack.services.github import ClientFactory, GitHubService
from timetrack.services.notifications import NotificationService
from timetrack.services.projects import is_participant

logger = logging.getLogger(__name__)

EXPORT_COLUMNS = ["ID", "Project", "Title", "Description", "Status", "Priority", "Due Date", "Assignees", "Created At"]

MENTION_RE = re.compile(r"@([A-Za-z0-9._-]+)")
TAG_RE = re.compile(r"<[^>]+>")
HANDLE_STRIP_RE = re.compile(r"[^a-z0-9._-]+")


def mention_handle(name: str) -> str:
    """'Jane Doe' -> 'janedoe'"""
    return HANDLE_STRIP_RE.sub("", name.lower())


# PUBLIC_INTERFACE
def resolve_mentions(body: str, candidates: Iterable[User]) -> Set[UUID]:
    """
    Ids of candidates @mentioned in body.

    A user matches by the handle of their name (lowercased, non [a-z0-9._-] removed)
    or by the local part of their e-mail address.
    """
    text = TAG_RE.sub("", body or "").strip()
    handles = {h.lower() for h in MENTION_RE.findall(text)}
    if not handles:
        return set()
    lookup: Dict[str, UUID] = {}
    for user in candidates:
        handle = mention_handle(user.name or "")
        if handle:
            lookup[handle] = user.id
        if user.email and "@" in user.email:
            lookup[user.email.split("@", 1)[0].lower()] = user.id
    return {lookup[h] for h in handles if h in lookup}


def can_view_task(task: Task, user_id: UUID) -> bool:
    return is_participant(task.project, user_id) or any(a.id == user_id for a in task.assignees)


def _task_payload(task: Task, actor: User) -> Dict[str, Any]:
    return {
        "task_id": str(task.id),
        "task_title": task.title,
        "project_id": str(task.project_id),
        "project_name": task.project.name if task.project else None,
        "status": task.status,
        "actor_id": str(actor.id),
        "actor_name": actor.name,
    }


class TaskService(BaseService):
    """Tasks, assignees, comments and status transitions."""

    def __init__(self, session: AsyncSession, github_client_factory: Optional[ClientFactory] = None) -> None:
        super().__init__(session)
        self.repo = TaskRepository(session)
        self.projects = ProjectRepository(session)
        self.tags = TagRepository(session)
        self.users = UserRepository(session)
        self.notifications = NotificationService(session)
        self.github = GitHubService(session, client_factory=github_client_factory)

    async def _project(self, user: User, project_id: UUID) -> Project:
        project = await self.projects.get(project_id)
        if project is None:
            raise NotFoundError("Project not found.")
        if not is_participant(project, user.id):
            raise ForbiddenError("You are not authorized to add tasks to this project.")
        return project

    async def _load(self, task_id: UUID) -> Task:
        task = await self.repo.get(task_id)
        if task is None:
            raise NotFoundError("Task not found.")
        return task

    async def _assignees(self, project: Project, ids: List[UUID]) -> List[User]:
        allowed = {project.user_id, *(m.member_id for m in project.members)}
        outsiders = [i for i in ids if i not in allowed]
        if outsiders:
            raise BadRequestError(
                "Assignees must be the project owner or its team members.",
                details={"user_ids": [str(i) for i in outsiders]},
            )
        return await self.users.list_by_ids(list(dict.fromkeys(ids)))

    async def _notify_assigned(self, task: Task, actor: User, user_ids: Iterable[UUID]) -> None:
        for user_id in user_ids:
            if user_id != actor.id:
                await self.notifications.notify(user_id, "task_assigned", _task_payload(task, actor))

    async def _notify_completion(self, task: Task, actor: User, old_status: str) -> None:
        if task.status == "completed" and old_status != "completed" and actor.id != task.project.user_id:
            await self.notifications.notify(task.project.user_id, "task_completed", _task_payload(task, actor))

    async def _close_issue(self, task: Task) -> None:
        try:
            async with self.transaction():
                await self.github.close_task_issue(task.project.owner, task)
        except ServiceError as exc:
            logger.warning("Could not close GitHub issue for task %s: %s", task.id, exc.message)

    # PUBLIC_INTERFACE
    async def user_tasks(self, user: User, status: Optional[str] = None, search: Optional[str] = None) -> List[Task]:
        """Tasks of projects the user owns plus tasks assigned to the user."""
        owned = [p.id for p in await self.projects.owned_projects(user.id)]
        return await self.repo.list_tasks(project_ids=owned, assignee_id=user.id, status=status, search=search)

    # PUBLIC_INTERFACE
    async def project_tasks(self, user: User, project_id: UUID) -> List[Task]:
        project = await self.projects.get(project_id)
        if project is None:
            raise NotFoundError("Project not found.")
        if not is_participant(project, user.id):
            raise ForbiddenError("You are not authorized to view this project.")
        return await self.repo.project_tasks(project.id)

    # PUBLIC_INTERFACE
    async def get(self, user: User, task_id: UUID) -> Task:
        task = await self._load(task_id)
        if not can_view_task(task, user.id):
            raise ForbiddenError("You are not authorized to view this task.")
        return task

    # PUBLIC_INTERFACE
    async def create(self, user: User, payload: TaskBase) -> Task:
        """
        Create a task. Only the project owner may pick assignees; anyone else
        creating a task is assigned to it themselves.
        """
        project = await self._project(user, payload.project_id)
        assignee_ids = payload.assignees if project.user_id == user.id else [user.id]
        assignees = await self._assignees(project, assignee_ids)
        async with self.transaction():
            task = Task(
                project_id=project.id,
                project=project,
                created_by=user.id,
                title=payload.title,
                description=payload.description,
                status=payload.status,
                priority=payload.priority,
                due_date=payload.due_date,
                is_imported=False,
                assignees=assignees,
                tags=[await self.tags.first_or_create(user.id, name) for name in payload.tags],
            )
            await self.repo.add(task)
            await self.repo.flush()
            await self._notify_assigned(task, user, [a.id for a in assignees])
        await self.notifications.dispatch()
        await self.repo.refresh(task)
        logger.info("Task %s created in project %s", task.id, project.id)
        return task

    # PUBLIC_INTERFACE
    async def update(self, user: User, task_id: UUID, payload: TaskUpdate) -> Task:
        """Owner-only edit; newly added assignees are notified."""
        task = await self._load(task_id)
        if task.project.user_id != user.id:
            raise ForbiddenError("You are not authorized to update this task.")
        project = task.project
        if payload.project_id != task.project_id:
            project = await self._project(user, payload.project_id)
            if project.user_id != user.id:
                raise ForbiddenError("You can only move tasks into projects you own.")
        assignees = await self._assignees(project, payload.assignees)
        previous = {a.id for a in task.assignees}
        old_status = task.status

        async with self.transaction():
            task.project_id = project.id
            task.project = project
            task.title = payload.title
            task.description = payload.description
            task.status = payload.status
            task.priority = payload.priority
            task.due_date = payload.due_date
            task.assignees = assignees
            task.tags = [await self.tags.first_or_create(user.id, name) for name in payload.tags]
            await self.repo.flush()
            await self._notify_assigned(task, user, [a.id for a in assignees if a.id not in previous])
            await self._notify_completion(task, user, old_status)
        await self.notifications.dispatch()
        if payload.close_github_issue and task.status == "completed":
            await self._close_issue(task)
        await self.repo.refresh(task)
        return task

    # PUBLIC_INTERFACE
    async def update_status(self, user: User, task_id: UUID, payload: TaskStatusUpdate) -> Task:
        """Status change by the project owner or an assignee."""
        task = await self._load(task_id)
        if task.project.user_id != user.id and not any(a.id == user.id for a in task.assignees):
            raise ForbiddenError("You are not authorized to update this task.")
        old_status = task.status
        async with self.transaction():
            task.status = payload.status
            await self._notify_completion(task, user, old_status)
        await self.notifications.dispatch()
        if payload.close_github_issue and task.status == "completed":
            await self._close_issue(task)
        return task

    # PUBLIC_INTERFACE
    async def delete(self, user: User, task_id: UUID) -> None:
        task = await self._load(task_id)
        if task.project.user_id != user.id:
            raise ForbiddenError("You are not authorized to delete this task.")
        async with self.transaction():
            await self.repo.delete(task)
        logger.info("Task %s deleted", task_id)

    # PUBLIC_INTERFACE
    async def export_frame(self, user: User) -> pd.DataFrame:
        tasks = await self.user_tasks(user)
        rows = [
            [
                str(t.id),
                t.project.name if t.project else "",
                t.title,
                t.description or "",
                t.status,
                t.priority,
                t.due_date.isoformat() if t.due_date else "",
                ", ".join(a.name for a in t.assignees),
                t.created_at.strftime("%Y-%m-%d %H:%M:%S") if t.created_at else "",
            ]
            for t in tasks
        ]
        return pd.DataFrame(rows, columns=EXPORT_COLUMNS)

    # Comments

    # PUBLIC_INTERFACE
    async def list_comments(self, user: User, task_id: UUID) -> List[TaskComment]:
        task = await self.get(user, task_id)
        return await self.repo.list_comments(task.id)

    # PUBLIC_INTERFACE
    async def add_comment(self, user: User, task_id: UUID, payload: TaskCommentWrite) -> TaskComment:
        """
        Comment on a task and notify the project owner, assignees and @mentioned participants.

        The commenter never notifies themselves.
        """
        task = await self._load(task_id)
        if not can_view_task(task, user.id):
            raise ForbiddenError("You are not authorized to comment on this task.")
        project = task.project

        recipients: Set[UUID] = {project.user_id, *(a.id for a in task.assignees)}
        participants = [project.owner, *(m.member for m in project.members), *task.assignees]
        recipients |= resolve_mentions(payload.body, [p for p in participants if p is not None])
        recipients.discard(user.id)

        comment = TaskComment(task_id=task.id, user_id=user.id, user=user, body=payload.body)
        async with self.transaction():
            await self.repo.add(comment)
            await self.repo.flush()
            data = {**_task_payload(task, user), "comment_id": str(comment.id), "body": payload.body[:200]}
            for recipient in sorted(recipients, key=str):
                await self.notifications.notify(recipient, "task_commented", data)
        await self.notifications.dispatch()
        await self.repo.refresh(comment)
        return comment

    async def _editable_comment(self, user: User, task_id: UUID, comment_id: UUID) -> TaskComment:
        task = await self._load(task_id)
        comment = await self.repo.get_comment(comment_id)
        if comment is None or comment.task_id != task.id:
            raise NotFoundError("Comment not found for this task.")
        if user.id not in (task.project.user_id, comment.user_id):
            raise ForbiddenError("You are not authorized to modify this comment.")
        return comment

    # PUBLIC_INTERFACE
    async def update_comment(self, user: User, task_id: UUID, comment_id: UUID, payload: TaskCommentWrite) -> TaskComment:
        comment = await self._editable_comment(user, task_id, comment_id)
        async with self.transaction():
            comment.body = payload.body
        await self.repo.refresh(comment)
        return comment

    # PUBLIC_INTERFACE
    async def delete_comment(self, user: User, task_id: UUID, comment_id: UUID) -> None:
        comment = await self._editable_comment(user, task_id, comment_id)
        async with self.transaction():
            await self.repo.delete(comment)


class TagService(BaseService):
    """User-scoped tags shared by tasks and time logs."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)
        self.repo = TagRepository(session)

    # PUBLIC_INTERFACE
    async def list_tags(self, user: User, search: Optional[str] = None, limit: int = 100) -> List[Tag]:
        """Autocomplete: the user's tags whose name contains `search`, ordered by name."""
        return await self.repo.list_tags(user.id, search, limit)

    # PUBLIC_INTERFACE
    async def create(self, user: User, payload: TagCreate) -> Tag:
        name = payload.name.strip()
        if await self.repo.get_by_name(user.id, name) is not None:
            raise ConflictError("The tag name has already been taken.")
        try:
            async with self.transaction():
                tag = await self.repo.first_or_create(user.id, name, payload.color)
        except IntegrityError as exc:
            raise ConflictError("The tag name has already been taken.") from exc
        return tag

    # PUBLIC_INTERFACE
    async def delete(self, user: User, tag_id: UUID) -> None:
        tag = await self.repo.get_owned(tag_id, user.id)
        if tag is None:
            raise NotFoundError("Tag not found.")
        async with self.transaction():
            await self.repo.delete(tag)
