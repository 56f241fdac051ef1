"""Tests for adding members to a leader's team."""

from decimal import Decimal
from types import SimpleNamespace

import pytest

from timetrack.core.errors import BadRequestError, ConflictError
from timetrack.schemas.teams import TeamMemberCreate
from timetrack.services.teams import TeamService


def _payload(**extra) -> TeamMemberCreate:
    values = {
        "name": "Bob Stone",
        "email": "bob@example.com",
        "password": "long-enough",
        "hourly_rate": "40.00",
        "currency": "eur",
    }
    values.update(extra)
    return TeamMemberCreate(**values)


@pytest.fixture
def service(session, mocker) -> TeamService:
    service = TeamService(session)
    service.repo = mocker.AsyncMock()
    service.users = mocker.AsyncMock()
    service.notifications = mocker.AsyncMock()
    mocker.patch("timetrack.services.teams.get_password_hash", side_effect=lambda p: f"hashed:{p}")
    return service


@pytest.mark.unit
class TestAddMember:
    async def test_existing_member_conflicts(self, service, user, user_factory) -> None:
        member = user_factory(name="Bob Stone", email="bob@example.com")
        service.users.get_user_by_email.return_value = member
        service.repo.entry.return_value = SimpleNamespace(leader_id=user.id, member_id=member.id)

        with pytest.raises(ConflictError):
            await service.add_member(user, _payload())

        service.repo.create.assert_not_awaited()
        service.session.commit.assert_not_awaited()

    async def test_leader_cannot_add_themselves(self, service, user) -> None:
        service.users.get_user_by_email.return_value = user

        with pytest.raises(BadRequestError):
            await service.add_member(user, _payload(email=user.email))

    async def test_non_monetary_member_gets_zero_rate(self, service, user, user_factory) -> None:
        member = user_factory(name="Bob Stone", email="bob@example.com")
        service.users.get_user_by_email.return_value = None
        service.users.create_user.return_value = member
        service.repo.create.return_value = SimpleNamespace()

        entry = await service.add_member(user, _payload(non_monetary=True))

        kwargs = service.repo.create.await_args.kwargs
        assert kwargs["hourly_rate"] == Decimal("0")
        assert kwargs["non_monetary"] is True
        assert kwargs["currency"] == "EUR"
        assert service.users.create_user.await_args.kwargs["hashed_password"] == "hashed:long-enough"
        assert entry.member is member
        assert service.notifications.notify.await_args.args[:2] == (member.id, "team_member_created")

    async def test_existing_user_keeps_account_and_rate(self, service, user, user_factory) -> None:
        member = user_factory(name="Bob Stone", email="bob@example.com")
        service.users.get_user_by_email.return_value = member
        service.repo.entry.return_value = None
        service.repo.create.return_value = SimpleNamespace()

        await service.add_member(user, _payload())

        service.users.create_user.assert_not_awaited()
        assert service.repo.create.await_args.kwargs["hourly_rate"] == Decimal("40.00")
        assert service.notifications.notify.await_args.args[1] == "team_member_added"
