"""Tests for who may read and edit project notes."""

from types import SimpleNamespace
from uuid import uuid4

import pytest

from timetrack.core.errors import ForbiddenError, NotFoundError
from timetrack.schemas.projects import ProjectNoteWrite
from timetrack.services.projects import ProjectService


def _project(owner_id, *member_ids) -> SimpleNamespace:
    members = [SimpleNamespace(member_id=m, is_approver=False) for m in member_ids]
    return SimpleNamespace(id=uuid4(), user_id=owner_id, name="Website", members=members)


def _note(project, author_id) -> SimpleNamespace:
    return SimpleNamespace(id=uuid4(), project_id=project.id, user_id=author_id, body="Kickoff on Monday")


@pytest.fixture
def service(session, mocker) -> ProjectService:
    service = ProjectService(session)
    service.repo = mocker.AsyncMock()
    return service


@pytest.mark.unit
class TestProjectNotes:
    async def test_outsider_cannot_list_or_add_notes(self, service, user) -> None:
        project = _project(uuid4())
        service.repo.get.return_value = project

        with pytest.raises(ForbiddenError):
            await service.list_notes(user, project.id)
        with pytest.raises(ForbiddenError):
            await service.create_note(user, project.id, ProjectNoteWrite(body="Hello"))

        service.repo.add.assert_not_awaited()

    async def test_member_lists_notes(self, service, user) -> None:
        project = _project(uuid4(), user.id)
        service.repo.get.return_value = project
        service.repo.list_notes.return_value = [_note(project, user.id)]

        notes = await service.list_notes(user, project.id)

        assert len(notes) == 1
        service.repo.list_notes.assert_awaited_once_with(project.id)

    async def test_author_may_edit_own_note(self, service, user) -> None:
        project = _project(uuid4(), user.id)
        note = _note(project, user.id)
        service.repo.get.return_value = project
        service.repo.get_note.return_value = note

        updated = await service.update_note(user, project.id, note.id, ProjectNoteWrite(body="Moved to Tuesday"))

        assert updated.body == "Moved to Tuesday"
        service.session.commit.assert_awaited()

    async def test_owner_may_delete_any_note(self, service, user) -> None:
        member_id = uuid4()
        project = _project(user.id, member_id)
        note = _note(project, member_id)
        service.repo.get.return_value = project
        service.repo.get_note.return_value = note

        await service.delete_note(user, project.id, note.id)

        service.repo.delete.assert_awaited_once_with(note)

    async def test_other_member_may_not_edit(self, service, user) -> None:
        author_id = uuid4()
        project = _project(uuid4(), user.id, author_id)
        note = _note(project, author_id)
        service.repo.get.return_value = project
        service.repo.get_note.return_value = note

        with pytest.raises(ForbiddenError):
            await service.update_note(user, project.id, note.id, ProjectNoteWrite(body="Hijacked"))

        assert note.body == "Kickoff on Monday"

    async def test_note_of_another_project_is_not_found(self, service, user) -> None:
        project = _project(user.id)
        service.repo.get.return_value = project
        service.repo.get_note.return_value = _note(_project(user.id), user.id)

        with pytest.raises(NotFoundError):
            await service.delete_note(user, project.id, uuid4())
