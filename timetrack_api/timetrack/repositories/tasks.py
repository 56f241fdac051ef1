from __future__ import annotations

import random
from typing import List, Optional, Sequence
from uuid import UUID

from sqlalchemy import or_, select

from timetrack.db.models.tasks import Tag, Task, TaskAssignee, TaskComment, TaskMeta
from .base import BaseRepository


def random_color() -> str:
    return "#{:06x}".format(random.randint(0, 0xFFFFFF))


class TaskRepository(BaseRepository):
    """Repository for tasks, their external meta and comments."""

    async def get(self, task_id: UUID) -> Optional[Task]:
        stmt = select(Task).where(Task.id == task_id)
        return await self.scalar_one_or_none(stmt)

    async def list_tasks(
        self,
        *,
        project_ids: Sequence[UUID],
        assignee_id: Optional[UUID] = None,
        status: Optional[str] = None,
        search: Optional[str] = None,
    ) -> List[Task]:
        """Tasks in the given projects, plus tasks assigned to assignee_id when provided."""
        conditions = [Task.project_id.in_(list(project_ids))] if project_ids else []
        if assignee_id is not None:
            assigned = select(TaskAssignee.task_id).where(TaskAssignee.user_id == assignee_id)
            conditions.append(Task.id.in_(assigned))
        if not conditions:
            return []
        stmt = select(Task).where(or_(*conditions))
        if status:
            stmt = stmt.where(Task.status == status)
        if search:
            stmt = stmt.where(Task.title.ilike(f"%{search}%"))
        stmt = stmt.order_by(Task.created_at.desc())
        result = await self.scalars(stmt)
        return list(result)

    async def project_tasks(self, project_id: UUID) -> List[Task]:
        stmt = select(Task).where(Task.project_id == project_id).order_by(Task.created_at.desc())
        result = await self.scalars(stmt)
        return list(result)

    async def find_by_source(self, source: str, source_id: str) -> Optional[Task]:
        stmt = (
            select(Task)
            .join(TaskMeta, TaskMeta.task_id == Task.id)
            .where(TaskMeta.source == source, TaskMeta.source_id == source_id)
        )
        return await self.scalar_one_or_none(stmt)

    # Comments
    async def list_comments(self, task_id: UUID) -> List[TaskComment]:
        stmt = select(TaskComment).where(TaskComment.task_id == task_id).order_by(TaskComment.created_at.asc())
        result = await self.scalars(stmt)
        return list(result)

    async def get_comment(self, comment_id: UUID) -> Optional[TaskComment]:
        stmt = select(TaskComment).where(TaskComment.id == comment_id)
        return await self.scalar_one_or_none(stmt)


class TagRepository(BaseRepository):
    """Repository for user-scoped tags."""

    async def list_tags(self, user_id: UUID, search: Optional[str] = None, limit: int = 100) -> List[Tag]:
        stmt = select(Tag).where(Tag.user_id == user_id)
        if search:
            stmt = stmt.where(Tag.name.ilike(f"%{search}%"))
        stmt = stmt.order_by(Tag.name).limit(limit)
        result = await self.scalars(stmt)
        return list(result)

    async def get_by_name(self, user_id: UUID, name: str) -> Optional[Tag]:
        stmt = select(Tag).where(Tag.user_id == user_id, Tag.name == name)
        return await self.scalar_one_or_none(stmt)

    async def get_owned(self, tag_id: UUID, user_id: UUID) -> Optional[Tag]:
        stmt = select(Tag).where(Tag.id == tag_id, Tag.user_id == user_id)
        return await self.scalar_one_or_none(stmt)

    async def first_or_create(self, user_id: UUID, name: str, color: Optional[str] = None) -> Tag:
        """Existing tag of the user with this name, or a new one (random colour unless given)."""
        tag = await self.get_by_name(user_id, name)
        if tag is None:
            tag = Tag(user_id=user_id, name=name, color=color or random_color())
            await self.add(tag)
            await self.flush()
        return tag
