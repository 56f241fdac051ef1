"""Tests for rate and currency resolution."""

from decimal import Decimal
from types import SimpleNamespace
from uuid import uuid4

import pytest

from timetrack.services.rates import amounts_by_currency, log_currency, member_hourly_rate, quantize


@pytest.fixture
def project(user_factory) -> SimpleNamespace:
    owner = user_factory(name="Lead", hourly_rate=Decimal("90.00"))
    return SimpleNamespace(user_id=owner.id, owner=owner)


@pytest.mark.unit
class TestMemberHourlyRate:
    def test_owner_is_billed_at_personal_rate(self, project) -> None:
        assert member_hourly_rate(project, project.user_id) == Decimal("90.00")

    def test_member_rate_comes_from_team_entry(self, project) -> None:
        entry = SimpleNamespace(hourly_rate=Decimal("35.00"), non_monetary=False, currency="EUR")

        assert member_hourly_rate(project, uuid4(), entry) == Decimal("35.00")

    def test_non_monetary_member_earns_nothing(self, project) -> None:
        entry = SimpleNamespace(hourly_rate=Decimal("35.00"), non_monetary=True, currency="EUR")

        assert member_hourly_rate(project, uuid4(), entry) == Decimal("0")

    def test_member_without_entry_earns_nothing(self, project) -> None:
        assert member_hourly_rate(project, uuid4(), None) == Decimal("0")


@pytest.mark.unit
class TestLogCurrency:
    def test_team_entry_wins(self, user_factory) -> None:
        entry = SimpleNamespace(currency="EUR")

        assert log_currency(entry, user_factory(currency="GBP")) == "EUR"

    def test_falls_back_to_user_then_default(self, user_factory) -> None:
        assert log_currency(None, user_factory(currency="GBP")) == "GBP"
        assert log_currency(None, None) == "USD"


@pytest.mark.unit
def test_amounts_by_currency_groups_and_skips_zero_rates() -> None:
    logs = [
        SimpleNamespace(duration=Decimal("2.00"), currency="USD", rate=Decimal("10")),
        SimpleNamespace(duration=Decimal("1.50"), currency="USD", rate=Decimal("20")),
        SimpleNamespace(duration=Decimal("3.00"), currency="EUR", rate=Decimal("0")),
        SimpleNamespace(duration=Decimal("1.00"), currency=None, rate=Decimal("5")),
    ]

    result = amounts_by_currency(logs, lambda log: log.rate)

    assert result == {"USD": 55.0}


@pytest.mark.unit
def test_quantize_rounds_half_up() -> None:
    assert quantize("2.345") == Decimal("2.35")
    assert quantize(None) == Decimal("0.00")
