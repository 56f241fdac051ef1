"""Tests for approving and rejecting time logs."""

from types import SimpleNamespace
from uuid import uuid4

import pytest

from timetrack.core.errors import BadRequestError, ForbiddenError, NotFoundError
from timetrack.services.approvals import ApprovalService, approval_message, can_approve


def _project(leader_id, approvers=()):
    members = [SimpleNamespace(member_id=a, is_approver=True) for a in approvers]
    return SimpleNamespace(id=uuid4(), user_id=leader_id, name="Website", members=members)


def _log(project, user_id, **extra):
    values = {
        "id": uuid4(),
        "project": project,
        "project_id": project.id,
        "user_id": user_id,
        "status": "pending",
        "is_paid": False,
        "comment": None,
        "approved_by": None,
        "approved_at": None,
    }
    values.update(extra)
    return SimpleNamespace(**values)


@pytest.fixture
def service(session, mocker) -> ApprovalService:
    service = ApprovalService(session)
    service.logs = mocker.AsyncMock()
    service.projects = mocker.AsyncMock()
    service.notifications = mocker.AsyncMock()
    return service


@pytest.mark.unit
class TestCanApprove:
    def test_leader_and_approver_may_approve(self, user, user_factory) -> None:
        approver = user_factory(name="Approver", email="approver@example.com")
        project = _project(user.id, approvers=[approver.id])
        log = _log(project, uuid4())

        assert can_approve(user, log)
        assert can_approve(approver, log)

    def test_plain_member_may_not(self, user, user_factory) -> None:
        member = user_factory(name="Member", email="member@example.com")
        project = _project(user.id)
        project.members.append(SimpleNamespace(member_id=member.id, is_approver=False))

        assert not can_approve(member, _log(project, uuid4()))


@pytest.mark.unit
class TestApprovalService:
    async def test_approve_sets_status_and_notifies_owner(self, service, user) -> None:
        owner_id = uuid4()
        log = _log(_project(user.id), owner_id)
        service.logs.get.return_value = log

        result = await service.approve(user, log.id, comment="Looks good")

        assert result.status == "approved"
        assert result.approved_by == user.id
        assert result.approved_at is not None
        assert result.comment == "Looks good"
        service.notifications.notify.assert_awaited_once()
        assert service.notifications.notify.await_args.args[:2] == (owner_id, "time_log_approved")
        service.session.commit.assert_awaited()

    async def test_approve_unknown_log(self, service, user) -> None:
        service.logs.get.return_value = None

        with pytest.raises(NotFoundError):
            await service.approve(user, uuid4())

    async def test_approve_requires_authority(self, service, user) -> None:
        log = _log(_project(uuid4()), uuid4())
        service.logs.get.return_value = log

        with pytest.raises(ForbiddenError):
            await service.approve(user, log.id)
        assert log.status == "pending"

    async def test_reject_paid_log_is_forbidden(self, service, user) -> None:
        log = _log(_project(user.id), uuid4(), is_paid=True)
        service.logs.get.return_value = log

        with pytest.raises(ForbiddenError):
            await service.reject(user, log.id)

    async def test_reject_by_approver_notifies_owner_and_leader(self, service, user, user_factory) -> None:
        leader_id = uuid4()
        owner_id = uuid4()
        log = _log(_project(leader_id, approvers=[user.id]), owner_id)
        service.logs.get.return_value = log

        await service.reject(user, log.id, comment="Wrong project")

        notified = [c.args[0] for c in service.notifications.notify.await_args_list]
        assert notified == [owner_id, leader_id]
        assert log.status == "rejected"

    async def test_approve_many_skips_unauthorized_logs(self, service, user) -> None:
        mine = _project(user.id)
        theirs = _project(uuid4())
        logs = [_log(mine, uuid4()), _log(mine, uuid4()), _log(theirs, uuid4())]
        service.logs.get_many.return_value = logs

        result = await service.approve_many(user, [log.id for log in logs])

        assert result["approved_count"] == 2
        assert result["skipped_count"] == 1
        assert result["message"] == approval_message(2, 1)
        assert [log.status for log in logs] == ["approved", "approved", "pending"]

    async def test_approve_many_requires_selection(self, service, user) -> None:
        with pytest.raises(BadRequestError):
            await service.approve_many(user, [])


@pytest.mark.unit
def test_approval_message() -> None:
    assert approval_message(3, 0) == "3 time logs approved successfully."
    assert approval_message(1, 2).endswith("2 time logs were skipped because you are not authorized to approve them.")
