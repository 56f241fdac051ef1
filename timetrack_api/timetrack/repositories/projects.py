from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from sqlalchemy import or_, select

from timetrack.db.models.projects import Project, ProjectMember, ProjectNote
from .base import BaseRepository


class ProjectRepository(BaseRepository):
    """Repository for projects and their member rows."""

    async def get(self, project_id: UUID) -> Optional[Project]:
        stmt = select(Project).where(Project.id == project_id)
        return await self.scalar_one_or_none(stmt)

    async def user_projects(self, user_id: UUID, search: Optional[str] = None) -> List[Project]:
        """Projects the user owns or is a member of."""
        member_of = select(ProjectMember.project_id).where(ProjectMember.member_id == user_id)
        stmt = select(Project).where(or_(Project.user_id == user_id, Project.id.in_(member_of)))
        if search:
            stmt = stmt.where(Project.name.ilike(f"%{search}%"))
        stmt = stmt.order_by(Project.name)
        result = await self.scalars(stmt)
        return list(result)

    async def owned_projects(self, user_id: UUID) -> List[Project]:
        stmt = select(Project).where(Project.user_id == user_id).order_by(Project.name)
        result = await self.scalars(stmt)
        return list(result)

    async def approvable_project_ids(self, user_id: UUID) -> List[UUID]:
        """Ids of projects the user leads or is an approver on."""
        approver_of = select(ProjectMember.project_id).where(
            ProjectMember.member_id == user_id, ProjectMember.is_approver.is_(True)
        )
        stmt = select(Project.id).where(or_(Project.user_id == user_id, Project.id.in_(approver_of)))
        result = await self.scalars(stmt)
        return list(result)

    async def get_by_name(self, user_id: UUID, name: str) -> Optional[Project]:
        stmt = select(Project).where(Project.user_id == user_id, Project.name == name).limit(1)
        return await self.scalar_one_or_none(stmt)

    async def get_by_repo(self, user_id: UUID, source: str, repo_id: str) -> Optional[Project]:
        stmt = (
            select(Project)
            .where(Project.user_id == user_id, Project.source == source, Project.repo_id == repo_id)
            .limit(1)
        )
        return await self.scalar_one_or_none(stmt)

    async def imported_repo_ids(self, user_id: UUID, source: str) -> List[str]:
        stmt = select(Project.repo_id).where(
            Project.user_id == user_id, Project.source == source, Project.repo_id.is_not(None)
        )
        result = await self.scalars(stmt)
        return list(result)

    async def is_member(self, project_id: UUID, user_id: UUID) -> bool:
        stmt = select(ProjectMember.id).where(
            ProjectMember.project_id == project_id, ProjectMember.member_id == user_id
        )
        return (await self.scalar_one_or_none(stmt)) is not None

    # Notes
    async def list_notes(self, project_id: UUID) -> List[ProjectNote]:
        stmt = select(ProjectNote).where(ProjectNote.project_id == project_id).order_by(ProjectNote.created_at.desc())
        result = await self.scalars(stmt)
        return list(result)

    async def get_note(self, note_id: UUID) -> Optional[ProjectNote]:
        stmt = select(ProjectNote).where(ProjectNote.id == note_id)
        return await self.scalar_one_or_none(stmt)
