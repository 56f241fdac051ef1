"""Tests for one-on-one chat conversations and messages."""

from datetime import datetime, timezone
from types import SimpleNamespace
from uuid import uuid4

import pytest

from timetrack.api.main import parse_chat_frame
from timetrack.core.errors import BadRequestError, ForbiddenError, NotFoundError
from timetrack.services.chat import ChatService, conversation_title


def _conversation(*participants, **extra):
    values = {
        "id": uuid4(),
        "is_group": False,
        "title": None,
        "participants": list(participants),
        "updated_at": datetime.now(timezone.utc),
    }
    values.update(extra)
    return SimpleNamespace(**values)


@pytest.fixture
def service(session, mocker) -> ChatService:
    service = ChatService(session)
    service.repo = mocker.AsyncMock()
    service.repo.last_message.return_value = None
    service.teams = mocker.AsyncMock()
    return service


@pytest.mark.unit
class TestConversationTitle:
    def test_direct_chat_uses_other_participant(self, user, user_factory) -> None:
        other = user_factory(name="Bob Stone", email="bob@example.com")

        assert conversation_title(_conversation(user, other), user.id) == "Bob Stone"

    def test_group_title_wins(self, user, user_factory) -> None:
        conversation = _conversation(user, user_factory(), is_group=True, title="Release")

        assert conversation_title(conversation, user.id) == "Release"


@pytest.mark.unit
class TestChatService:
    async def test_start_reuses_existing_conversation(self, service, user, user_factory) -> None:
        teammate = user_factory(name="Bob Stone", email="bob@example.com")
        existing = _conversation(user, teammate)
        service.teams.team_users.return_value = [teammate]
        service.repo.find_direct.return_value = existing

        summary = await service.start(user, teammate.id)

        assert summary["id"] == existing.id
        assert summary["title"] == "Bob Stone"
        service.repo.create_conversation.assert_not_awaited()

    async def test_start_creates_conversation_when_missing(self, service, user, user_factory) -> None:
        teammate = user_factory(name="Bob Stone", email="bob@example.com")
        created = _conversation(user, teammate)
        service.teams.team_users.return_value = [teammate]
        service.repo.find_direct.return_value = None
        service.repo.create_conversation.return_value = created

        summary = await service.start(user, teammate.id)

        assert summary["id"] == created.id
        service.repo.create_conversation.assert_awaited_once_with([user.id, teammate.id])

    async def test_start_outside_team_is_forbidden(self, service, user) -> None:
        service.teams.team_users.return_value = []

        with pytest.raises(ForbiddenError):
            await service.start(user, uuid4())

    @pytest.mark.parametrize("body", ["", "   ", "x" * 5001])
    async def test_send_validates_body(self, service, user, body) -> None:
        with pytest.raises(BadRequestError):
            await service.send(user, uuid4(), body)

    async def test_send_requires_participation(self, service, user) -> None:
        service.repo.get_conversation.return_value = _conversation(user)
        service.repo.is_participant.return_value = False

        with pytest.raises(NotFoundError):
            await service.send(user, uuid4(), "hello")

    async def test_send_stores_and_pushes_message(self, service, user, user_factory, mocker) -> None:
        teammate = user_factory(name="Bob Stone", email="bob@example.com")
        conversation = _conversation(user, teammate)
        service.repo.get_conversation.return_value = conversation
        service.repo.is_participant.return_value = True
        manager = mocker.patch("timetrack.services.chat.broadcast_manager")
        manager.publish_chat_message = mocker.AsyncMock()
        manager.publish_to_user = mocker.AsyncMock()
        mocker.patch("timetrack.services.chat.Message", side_effect=lambda **kw: SimpleNamespace(created_at=None, read_at=None, **kw))

        payload = await service.send(user, conversation.id, "  hello  ")

        assert payload["body"] == "hello"
        assert payload["is_mine"] is True
        service.repo.touch.assert_awaited_once()
        manager.publish_chat_message.assert_awaited_once()
        manager.publish_to_user.assert_awaited_once()
        assert manager.publish_to_user.await_args.args[:2] == (teammate.id, "chat.message")

    async def test_messages_marks_incoming_as_read(self, service, user, user_factory) -> None:
        teammate = user_factory(name="Bob Stone", email="bob@example.com")
        conversation = _conversation(user, teammate)
        service.repo.get_conversation.return_value = conversation
        service.repo.is_participant.return_value = True
        incoming = SimpleNamespace(
            id=uuid4(),
            conversation_id=conversation.id,
            user_id=teammate.id,
            user=teammate,
            body="hi",
            read_at=None,
            created_at=datetime.now(timezone.utc),
        )
        service.repo.messages.return_value = [incoming]

        payloads = await service.messages(user, conversation.id)

        conversation_id, reader_id, _ = service.repo.mark_read.await_args.args
        assert (conversation_id, reader_id) == (conversation.id, user.id)
        service.session.commit.assert_awaited()
        assert payloads[0]["is_mine"] is False
        assert payloads[0]["user_name"] == "Bob Stone"

    async def test_messages_of_foreign_conversation(self, service, user) -> None:
        service.repo.get_conversation.return_value = _conversation(user)
        service.repo.is_participant.return_value = False

        with pytest.raises(NotFoundError):
            await service.messages(user, uuid4())

        service.repo.mark_read.assert_not_awaited()


@pytest.mark.unit
class TestChatFrames:
    @pytest.mark.parametrize("raw", ["ping", "PING", " ping\n", '{"type": "ping"}'])
    def test_text_and_json_pings(self, raw) -> None:
        assert parse_chat_frame(raw) == {"type": "ping"}

    def test_chat_message(self) -> None:
        frame = parse_chat_frame('{"type": "chat.message", "payload": {"body": "hello"}}')

        assert frame == {"type": "chat.message", "payload": {"body": "hello"}}

    @pytest.mark.parametrize("raw", ["hello", "[1, 2]", "{broken"])
    def test_undecodable_frames_are_ignored(self, raw) -> None:
        assert parse_chat_frame(raw) is None
