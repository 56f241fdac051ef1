"""Tests for task comment mention parsing and visibility."""

from types import SimpleNamespace
from uuid import uuid4

import pytest

from timetrack.services.tasks import can_view_task, mention_handle, resolve_mentions


@pytest.mark.unit
class TestMentions:
    def test_handle_strips_spaces_and_symbols(self) -> None:
        assert mention_handle("Jane Doe") == "janedoe"
        assert mention_handle("O'Brien-Smith") == "obrien-smith"

    def test_matches_name_handle_and_email_local_part(self, user_factory) -> None:
        jane = user_factory(name="Jane Doe", email="jane@example.com")
        bob = user_factory(name="Bob Stone", email="b.stone@example.com")
        eve = user_factory(name="Eve", email="eve@example.com")

        found = resolve_mentions("Hey @JaneDoe and @b.stone, please review", [jane, bob, eve])

        assert found == {jane.id, bob.id}

    def test_markup_is_ignored_and_unknown_handles_dropped(self, user_factory) -> None:
        jane = user_factory(name="Jane Doe", email="jane@example.com")

        found = resolve_mentions("<p>ping @jane and @nobody</p>", [jane])

        assert found == {jane.id}

    def test_no_mentions(self, user_factory) -> None:
        assert resolve_mentions("plain comment", [user_factory()]) == set()
        assert resolve_mentions("", [user_factory()]) == set()


@pytest.mark.unit
def test_assignee_can_view_task_outside_project() -> None:
    assignee_id = uuid4()
    project = SimpleNamespace(user_id=uuid4(), members=[])
    task = SimpleNamespace(project=project, assignees=[SimpleNamespace(id=assignee_id)])

    assert can_view_task(task, assignee_id)
    assert can_view_task(task, project.user_id)
    assert not can_view_task(task, uuid4())
