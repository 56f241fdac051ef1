"""Tests for reading and acknowledging notifications."""

from types import SimpleNamespace
from uuid import uuid4

import pytest

from timetrack.core.errors import ForbiddenError, NotFoundError
from timetrack.services.notifications import NotificationService


@pytest.fixture
def service(session, mocker) -> NotificationService:
    service = NotificationService(session)
    service.repo = mocker.AsyncMock()
    return service


@pytest.mark.unit
class TestMarkRead:
    async def test_unknown_notification(self, service, user) -> None:
        service.repo.get.return_value = None

        with pytest.raises(NotFoundError):
            await service.mark_read(user, uuid4())

    async def test_someone_elses_notification(self, service, user) -> None:
        service.repo.get.return_value = SimpleNamespace(id=uuid4(), user_id=uuid4(), read_at=None)

        with pytest.raises(ForbiddenError):
            await service.mark_read(user, uuid4())

        service.session.commit.assert_not_awaited()

    async def test_own_notification_is_stamped_once(self, service, user) -> None:
        notification = SimpleNamespace(id=uuid4(), user_id=user.id, read_at=None)
        service.repo.get.return_value = notification

        await service.mark_read(user, notification.id)
        first = notification.read_at
        await service.mark_read(user, notification.id)

        assert first is not None
        assert notification.read_at == first
        service.session.commit.assert_awaited()
