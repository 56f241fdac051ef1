from __future__ import annotations

import logging
from typing import Dict, List, Optional
from uuid import UUID

import pandas as pd
from sqlalchemy.ext.asyncio import AsyncSession

from timetrack.core.errors import BadRequestError, ForbiddenError, NotFoundError
from timetrack.db.models.projects import Project, ProjectMember, ProjectNote
from timetrack.db.models.users import User
from timetrack.repositories.clients import ClientRepository
from timetrack.repositories.projects import ProjectRepository
from timetrack.repositories.teams import TeamRepository
from timetrack.schemas.projects import ProjectBase, ProjectNoteWrite
from timetrack.services.base import BaseService

logger = logging.getLogger(__name__)

EXPORT_COLUMNS = ["ID", "Name", "Description", "Owner", "Team Members", "Approvers", "Created At"]


def is_participant(project: Project, user_id: UUID) -> bool:
    """Owner or assigned member."""
    return project.user_id == user_id or any(m.member_id == user_id for m in project.members)


class ProjectService(BaseService):
    """Projects, their member/approver rows and notes."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)
        self.repo = ProjectRepository(session)
        self.clients = ClientRepository(session)
        self.teams = TeamRepository(session)

    async def _load(self, project_id: UUID) -> Project:
        project = await self.repo.get(project_id)
        if project is None:
            raise NotFoundError("Project not found.")
        return project

    async def _owned(self, user: User, project_id: UUID, action: str) -> Project:
        project = await self._load(project_id)
        if project.user_id != user.id:
            raise ForbiddenError(f"You are not authorized to {action} this project.")
        return project

    async def _check_client(self, user: User, client_id: Optional[UUID]) -> None:
        if client_id is not None and await self.clients.get_owned(client_id, user.id) is None:
            raise NotFoundError("Client not found.")

    async def _sync_members(self, user: User, project: Project, payload: ProjectBase) -> None:
        """
        Replace member rows with payload.team_members; a member listed in approvers is an approver.

        Existing rows are kept and updated so (project, member) stays unique.
        """
        wanted = list(dict.fromkeys(payload.team_members))
        wanted = [member_id for member_id in wanted if member_id != user.id]
        entries = await self.teams.entries_for_pairs((user.id, member_id) for member_id in wanted)
        unknown = [member_id for member_id in wanted if (user.id, member_id) not in entries]
        if unknown:
            raise BadRequestError(
                "Team members must belong to your team.", details={"member_ids": [str(m) for m in unknown]}
            )
        approvers = set(payload.approvers)
        existing: Dict[UUID, ProjectMember] = {m.member_id: m for m in project.members}
        members: List[ProjectMember] = []
        for member_id in wanted:
            entry = entries[(user.id, member_id)]
            row = existing.get(member_id) or ProjectMember(member_id=member_id, member=entry.member)
            row.is_approver = member_id in approvers
            row.hourly_rate = entry.hourly_rate
            row.currency = entry.currency
            members.append(row)
        project.members = members

    # PUBLIC_INTERFACE
    async def list_projects(self, user: User, search: Optional[str] = None) -> List[Project]:
        """Projects the user owns plus those the user is a member of."""
        return await self.repo.user_projects(user.id, search)

    # PUBLIC_INTERFACE
    async def get(self, user: User, project_id: UUID) -> Project:
        project = await self._load(project_id)
        if not is_participant(project, user.id):
            raise ForbiddenError("You are not authorized to view this project.")
        return project

    # PUBLIC_INTERFACE
    async def create(self, user: User, payload: ProjectBase) -> Project:
        await self._check_client(user, payload.client_id)
        project = Project(
            user_id=user.id,
            owner=user,
            client_id=payload.client_id,
            name=payload.name,
            description=payload.description,
            members=[],
        )
        async with self.transaction():
            await self._sync_members(user, project, payload)
            await self.repo.add(project)
            await self.repo.flush()
        await self.repo.refresh(project)
        logger.info("Project %s created with %d members", project.id, len(project.members))
        return project

    # PUBLIC_INTERFACE
    async def update(self, user: User, project_id: UUID, payload: ProjectBase) -> Project:
        project = await self._owned(user, project_id, "update")
        await self._check_client(user, payload.client_id)
        async with self.transaction():
            project.name = payload.name
            project.description = payload.description
            project.client_id = payload.client_id
            await self._sync_members(user, project, payload)
            await self.repo.flush()
        await self.repo.refresh(project)
        return project

    # PUBLIC_INTERFACE
    async def delete(self, user: User, project_id: UUID) -> None:
        project = await self._owned(user, project_id, "delete")
        async with self.transaction():
            await self.repo.delete(project)
        logger.info("Project %s deleted", project_id)

    # PUBLIC_INTERFACE
    async def export_frame(self, user: User) -> pd.DataFrame:
        projects = await self.repo.user_projects(user.id)
        rows = [
            [
                str(p.id),
                p.name,
                p.description or "",
                p.owner.name if p.owner else "",
                ", ".join(m.member.name for m in p.members),
                ", ".join(m.member.name for m in p.members if m.is_approver),
                p.created_at.strftime("%Y-%m-%d %H:%M:%S") if p.created_at else "",
            ]
            for p in projects
        ]
        return pd.DataFrame(rows, columns=EXPORT_COLUMNS)

    # Notes

    async def _note(self, project: Project, note_id: UUID) -> ProjectNote:
        note = await self.repo.get_note(note_id)
        if note is None or note.project_id != project.id:
            raise NotFoundError("Note not found.")
        return note

    async def _editable_note(self, user: User, project_id: UUID, note_id: UUID) -> ProjectNote:
        project = await self._load(project_id)
        note = await self._note(project, note_id)
        if user.id not in (note.user_id, project.user_id):
            raise ForbiddenError("You are not authorized to modify this note.")
        return note

    # PUBLIC_INTERFACE
    async def list_notes(self, user: User, project_id: UUID) -> List[ProjectNote]:
        project = await self.get(user, project_id)
        return await self.repo.list_notes(project.id)

    # PUBLIC_INTERFACE
    async def create_note(self, user: User, project_id: UUID, payload: ProjectNoteWrite) -> ProjectNote:
        project = await self._load(project_id)
        if not is_participant(project, user.id):
            raise ForbiddenError("You are not authorized to add notes to this project.")
        note = ProjectNote(project_id=project.id, user_id=user.id, user=user, body=payload.body)
        async with self.transaction():
            await self.repo.add(note)
            await self.repo.flush()
        await self.repo.refresh(note)
        return note

    # PUBLIC_INTERFACE
    async def update_note(self, user: User, project_id: UUID, note_id: UUID, payload: ProjectNoteWrite) -> ProjectNote:
        note = await self._editable_note(user, project_id, note_id)
        async with self.transaction():
            note.body = payload.body
        await self.repo.refresh(note)
        return note

    # PUBLIC_INTERFACE
    async def delete_note(self, user: User, project_id: UUID, note_id: UUID) -> None:
        note = await self._editable_note(user, project_id, note_id)
        async with self.transaction():
            await self.repo.delete(note)
