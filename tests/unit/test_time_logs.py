"""Tests for time log interval handling, stats and payment."""

from datetime import datetime, timezone
from decimal import Decimal
from types import SimpleNamespace
from uuid import uuid4

import pytest

from timetrack.core.errors import BadRequestError, NotFoundError, UnprocessableError
from timetrack.services.time_logs import TimeLogService, compute_stats, mark_paid_message, normalize_interval


def _ts(day: int, hour: int, minute: int = 0) -> datetime:
    return datetime(2024, 3, day, hour, minute, tzinfo=timezone.utc)


@pytest.mark.unit
class TestNormalizeInterval:
    def test_same_day_duration_in_hours(self) -> None:
        start, end, duration = normalize_interval(_ts(1, 9), _ts(1, 10, 30))

        assert start == _ts(1, 9)
        assert end == _ts(1, 10, 30)
        assert duration == Decimal("1.50")

    def test_end_on_next_day_is_moved_onto_start_date(self) -> None:
        start, end, duration = normalize_interval(_ts(1, 22), _ts(2, 1))

        assert end == _ts(1, 1)
        assert duration == Decimal("21.00")

    def test_running_log_has_no_duration(self) -> None:
        start, end, duration = normalize_interval(_ts(1, 9), None)

        assert end is None
        assert duration is None

    def test_partial_minutes_are_truncated(self) -> None:
        start = _ts(1, 9)
        _, _, duration = normalize_interval(start, start.replace(minute=20, second=59))

        assert duration == Decimal("0.33")


def _log(status="approved", duration="1.00", is_paid=False, non_billable=False, currency="USD"):
    return SimpleNamespace(
        status=status,
        duration=Decimal(duration),
        is_paid=is_paid,
        non_billable=non_billable,
        currency=currency,
    )


@pytest.mark.unit
class TestComputeStats:
    def test_only_approved_logs_count(self) -> None:
        logs = [
            _log(duration="2.00"),
            _log(duration="3.00", is_paid=True),
            _log(duration="1.00", non_billable=True),
            _log(status="pending", duration="5.00"),
            _log(status="rejected", duration="4.00"),
        ]

        stats = compute_stats(logs, lambda log: Decimal("10"))

        assert stats["total_duration"] == 6.0
        assert stats["unpaid_hours"] == 2.0
        assert stats["paid_hours"] == 3.0
        assert stats["unbillable_hours"] == 1.0
        assert stats["weekly_average"] == round(6.0 / 7, 2)
        assert stats["unpaid_amount_by_currency"] == {"USD": 20.0}
        assert stats["paid_amount_by_currency"] == {"USD": 30.0}

    def test_empty_input(self) -> None:
        stats = compute_stats([], lambda log: Decimal("0"))

        assert stats["total_duration"] == 0.0
        assert stats["weekly_average"] == 0
        assert stats["unpaid_amount_by_currency"] == {}


@pytest.mark.unit
def test_mark_paid_message_variants() -> None:
    assert mark_paid_message(2, 0) == "2 time logs marked as paid."
    assert "1 time log entry was skipped" in mark_paid_message(1, 1)
    assert "3 time log entries were skipped" in mark_paid_message(0, 3)


@pytest.mark.unit
class TestMarkPaid:
    @pytest.fixture
    def service(self, session, mocker) -> TimeLogService:
        service = TimeLogService(session)
        service.repo = mocker.AsyncMock()
        service.notifications = mocker.AsyncMock()
        service._rate_resolver = mocker.AsyncMock(return_value=lambda log: Decimal("20"))
        return service

    def _paid_log(self, leader_id, user_id, project, **extra):
        values = {
            "id": uuid4(),
            "user_id": user_id,
            "project": project,
            "project_id": project.id,
            "is_complete": True,
            "status": "approved",
            "is_paid": False,
            "duration": Decimal("1.50"),
            "hourly_rate": None,
        }
        values.update(extra)
        return SimpleNamespace(**values)

    async def test_pays_eligible_logs_and_accumulates_project_amount(self, service, user, user_factory) -> None:
        member = user_factory(name="Member", email="member@example.com")
        project = SimpleNamespace(id=uuid4(), user_id=user.id, paid_amount=Decimal("5.00"), name="Site")
        good = self._paid_log(user.id, member.id, project)
        pending = self._paid_log(user.id, member.id, project, status="pending")
        running = self._paid_log(user.id, member.id, project, is_complete=False)
        service.repo.get_many.return_value = [good, pending, running]

        result = await service.mark_paid(user, [good.id, pending.id, running.id, uuid4()])

        assert result["paid_count"] == 1
        assert result["skipped_count"] == 3
        assert good.is_paid is True
        assert good.hourly_rate == Decimal("20")
        assert project.paid_amount == Decimal("35.00")
        assert pending.is_paid is False
        service.notifications.notify.assert_awaited_once()
        assert service.notifications.notify.await_args.args[0] == member.id

    async def test_logs_of_other_projects_are_skipped(self, service, user, user_factory) -> None:
        stranger = user_factory(name="Stranger", email="stranger@example.com")
        project = SimpleNamespace(id=uuid4(), user_id=stranger.id, paid_amount=Decimal("0"), name="Other")
        log = self._paid_log(stranger.id, stranger.id, project)
        service.repo.get_many.return_value = [log]

        result = await service.mark_paid(user, [log.id])

        assert result["paid_count"] == 0
        assert result["skipped_count"] == 1
        assert log.is_paid is False

    async def test_empty_selection_is_rejected(self, service, user) -> None:
        with pytest.raises(BadRequestError):
            await service.mark_paid(user, [])


def _csv(*rows: str) -> bytes:
    return "\n".join(["Project,Start Timestamp,End Timestamp,Note", *rows]).encode()


@pytest.mark.unit
class TestImportFile:
    @pytest.fixture
    def service(self, session, mocker) -> TimeLogService:
        service = TimeLogService(session)
        service.repo = mocker.AsyncMock()
        service.projects = mocker.AsyncMock()
        service.teams = mocker.AsyncMock()
        service.teams.entries_for_pairs.return_value = {}
        return service

    @pytest.fixture
    def own_project(self, user) -> SimpleNamespace:
        return SimpleNamespace(
            id=uuid4(), user_id=user.id, name="Website", owner=SimpleNamespace(hourly_rate=Decimal("60.00"))
        )

    async def test_any_invalid_row_rejects_the_whole_file(self, service, user, own_project) -> None:
        service.projects.user_projects.return_value = [own_project]
        content = _csv(
            "Website,2024-03-01 09:00:00,2024-03-01 10:30:00,Homepage",
            "Nope,2024-03-01 09:00:00,2024-03-01 10:00:00,Unknown project",
            "Website,2024-03-01 11:00:00,2024-03-01 10:00:00,Backwards",
            "Website,01/03/2024 09:00,2024-03-01 10:00:00,Bad format",
        )

        with pytest.raises(UnprocessableError) as exc_info:
            await service.import_file(user, content, "logs.csv")

        errors = exc_info.value.details["errors"]
        assert len(errors) == 3
        assert errors[0].startswith("Row #3: Project 'Nope' not found")
        assert errors[1].startswith("Row #4: ") and "End timestamp must be after" in errors[1]
        assert errors[2].startswith("Row #5: ") and "start timestamp must match" in errors[2]
        service.repo.add.assert_not_awaited()
        service.session.commit.assert_not_awaited()

    async def test_missing_column_is_reported(self, service, user) -> None:
        with pytest.raises(UnprocessableError) as exc_info:
            await service.import_file(user, b"Project,Note\nWebsite,Hi", "logs.csv")

        assert "Missing column: Start Timestamp" in exc_info.value.details["errors"]

    async def test_unsupported_extension(self, service, user) -> None:
        with pytest.raises(BadRequestError):
            await service.import_file(user, b"irrelevant", "logs.txt")

    async def test_valid_rows_are_imported(self, service, user, own_project) -> None:
        team_project = SimpleNamespace(id=uuid4(), user_id=uuid4(), name="Client App", owner=None)
        service.projects.user_projects.return_value = [own_project, team_project]
        content = _csv(
            "Website,2024-03-01 09:00:00,2024-03-01 10:30:00,Homepage",
            "Client App,2024-03-02 13:00:00,2024-03-02 15:00:00,Review",
        )

        result = await service.import_file(user, content, "logs.csv")

        assert result["imported_count"] == 2
        own, team = [call.args[0] for call in service.repo.add.await_args_list]
        assert own.status == "approved"
        assert own.approved_by == user.id
        assert own.hourly_rate == Decimal("60.00")
        assert own.duration == Decimal("1.50")
        assert own.start_timestamp == _ts(1, 9)
        assert team.status == "pending"
        assert team.hourly_rate == Decimal("0")
        assert team.currency == "USD"
        service.session.commit.assert_awaited()


@pytest.mark.unit
class TestUnpaidByClient:
    @pytest.fixture
    def service(self, session, mocker) -> TimeLogService:
        service = TimeLogService(session)
        service.repo = mocker.AsyncMock()
        service.clients = mocker.AsyncMock()
        return service

    def _unpaid(self, project, duration: str, non_billable: bool = False) -> SimpleNamespace:
        return SimpleNamespace(
            id=uuid4(), project=project, project_id=project.id, duration=Decimal(duration), non_billable=non_billable
        )

    async def test_groups_per_project_with_user_rate_fallback(self, service, user) -> None:
        client = SimpleNamespace(id=uuid4(), hourly_rate=None, currency=None)
        site = SimpleNamespace(id=uuid4(), name="Website")
        app = SimpleNamespace(id=uuid4(), name="App")
        service.clients.get_owned.return_value = client
        service.clients.projects.return_value = [app, site]
        service.repo.unpaid_uninvoiced.return_value = [
            self._unpaid(site, "1.50"),
            self._unpaid(app, "2.00"),
            self._unpaid(site, "0.50"),
        ]

        groups = await service.unpaid_by_client(user, client.id)

        assert [g["project_name"] for g in groups] == ["Website", "App"]
        assert groups[0]["total_hours"] == 2.0
        assert len(groups[0]["time_logs"]) == 2
        assert groups[1]["total_hours"] == 2.0
        assert all(g["hourly_rate"] == 50.0 for g in groups)
        assert all(g["currency"] == "USD" for g in groups)
        service.repo.unpaid_uninvoiced.assert_awaited_once_with([app.id, site.id])

    async def test_client_rate_and_currency_win(self, service, user) -> None:
        client = SimpleNamespace(id=uuid4(), hourly_rate=Decimal("90.00"), currency="EUR")
        site = SimpleNamespace(id=uuid4(), name="Website")
        service.clients.get_owned.return_value = client
        service.clients.projects.return_value = [site]
        service.repo.unpaid_uninvoiced.return_value = [self._unpaid(site, "1.00")]

        (group,) = await service.unpaid_by_client(user, client.id)

        assert group["hourly_rate"] == 90.0
        assert group["currency"] == "EUR"

    async def test_unknown_client(self, service, user) -> None:
        service.clients.get_owned.return_value = None

        with pytest.raises(NotFoundError):
            await service.unpaid_by_client(user, uuid4())
