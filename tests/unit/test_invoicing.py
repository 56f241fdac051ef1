"""Tests for invoice totals and the invoice lifecycle."""

from datetime import date
from decimal import Decimal
from types import SimpleNamespace
from uuid import uuid4

import pytest

from timetrack.core.errors import NotFoundError
from timetrack.db.models.invoices import InvoiceItem
from timetrack.schemas.invoices import InvoiceCreate, InvoiceStatusUpdate, InvoiceUpdate
from timetrack.services.invoicing import InvoiceService, calculate_totals


def _item(quantity, unit_price) -> SimpleNamespace:
    return SimpleNamespace(quantity=quantity, unit_price=unit_price)


@pytest.mark.unit
class TestCalculateTotals:
    """Subtotal, discount, tax and total arithmetic."""

    def test_subtotal_sums_line_amounts(self) -> None:
        totals = calculate_totals([_item(2, "40.00"), _item("1.5", 20)])

        assert totals.subtotal == Decimal("110.00")
        assert totals.discount_amount == Decimal("0.00")
        assert totals.tax_amount == Decimal("0.00")
        assert totals.total_amount == Decimal("110.00")

    def test_percentage_discount(self) -> None:
        totals = calculate_totals([_item(1, 100)], discount_type="percentage", discount_value=10)

        assert totals.discount_amount == Decimal("10.00")
        assert totals.total_amount == Decimal("90.00")

    def test_fixed_discount_is_capped_at_subtotal(self) -> None:
        totals = calculate_totals([_item(1, 100)], discount_type="fixed", discount_value=150)

        assert totals.discount_amount == Decimal("100.00")
        assert totals.total_amount == Decimal("0.00")

    def test_tax_is_computed_on_the_subtotal(self) -> None:
        totals = calculate_totals(
            [_item(1, 100)],
            discount_type="percentage",
            discount_value=10,
            tax_type="percentage",
            tax_rate=10,
        )

        assert totals.discount_amount == Decimal("10.00")
        assert totals.tax_amount == Decimal("10.00")
        assert totals.total_amount == Decimal("100.00")

    def test_fixed_tax(self) -> None:
        totals = calculate_totals([_item(2, 50)], tax_type="fixed", tax_rate="12.5")

        assert totals.tax_amount == Decimal("12.50")
        assert totals.total_amount == Decimal("112.50")

    @pytest.mark.parametrize("value", [None, 0, -5])
    def test_non_positive_adjustments_are_ignored(self, value) -> None:
        totals = calculate_totals([_item(1, 80)], discount_type="percentage", discount_value=value)

        assert totals.discount_amount == Decimal("0.00")
        assert totals.total_amount == Decimal("80.00")

    def test_amounts_are_rounded_to_cents(self) -> None:
        totals = calculate_totals([_item("0.333", "10")], discount_type="percentage", discount_value="33.333")

        assert totals.subtotal == Decimal("3.33")
        assert totals.discount_amount == Decimal("1.11")
        assert totals.total_amount == Decimal("2.22")


def _line(description: str, quantity: str, unit_price: str, **extra) -> SimpleNamespace:
    values = {
        "id": uuid4(),
        "time_log_id": None,
        "description": description,
        "quantity": Decimal(quantity),
        "unit_price": Decimal(unit_price),
        "amount": Decimal(quantity) * Decimal(unit_price),
    }
    values.update(extra)
    return SimpleNamespace(**values)


def _invoice(user_id, client_id, items, **extra) -> SimpleNamespace:
    values = {
        "id": uuid4(),
        "user_id": user_id,
        "client_id": client_id,
        "client": SimpleNamespace(name="Acme", email="billing@acme.test"),
        "invoice_number": "INV-001",
        "status": "draft",
        "currency": "USD",
        "paid_amount": Decimal("0"),
        "total_amount": Decimal("0"),
        "items": items,
    }
    values.update(extra)
    return SimpleNamespace(**values)


def _payload(model, client_id, items, **extra):
    values = {
        "client_id": client_id,
        "invoice_number": "INV-001",
        "issue_date": date(2024, 3, 1),
        "due_date": date(2024, 3, 31),
        "items": items,
    }
    values.update(extra)
    return model(**values)


@pytest.mark.unit
class TestInvoiceService:
    @pytest.fixture
    def client(self) -> SimpleNamespace:
        return SimpleNamespace(id=uuid4(), currency="USD")

    @pytest.fixture
    def service(self, session, mocker, client) -> InvoiceService:
        service = InvoiceService(session)
        service.repo = mocker.AsyncMock()
        service.repo.get_by_number.return_value = None
        service.clients = mocker.AsyncMock()
        service.clients.get_owned.return_value = client
        service.clients.projects.return_value = []
        service.time_logs = mocker.AsyncMock()
        service.notifications = mocker.AsyncMock()
        return service

    async def test_create_links_logs_only_through_own_client_projects(self, service, user, client) -> None:
        own = SimpleNamespace(id=uuid4(), user_id=user.id)
        shared = SimpleNamespace(id=uuid4(), user_id=uuid4())
        service.clients.projects.return_value = [own, shared]
        log = SimpleNamespace(id=uuid4(), project_id=own.id)
        service.time_logs.get_many.return_value = [log]
        payload = _payload(
            InvoiceCreate,
            client.id,
            [{"description": "March work", "quantity": "2", "unit_price": "50", "time_log_id": log.id}],
        )

        invoice = await service.create(user, payload)

        assert invoice.total_amount == Decimal("100.00")
        ids, _, project_ids = service.time_logs.link_invoice.await_args.args
        assert ids == [log.id]
        assert project_ids == [own.id]
        service.session.commit.assert_awaited()

    async def test_create_rejects_someone_elses_time_log(self, service, user, client) -> None:
        own = SimpleNamespace(id=uuid4(), user_id=user.id)
        service.clients.projects.return_value = [own]
        foreign = SimpleNamespace(id=uuid4(), project_id=uuid4())
        service.time_logs.get_many.return_value = [foreign]
        payload = _payload(
            InvoiceCreate,
            client.id,
            [{"description": "Grouped", "quantity": "1", "unit_price": "10"}],
            grouped_time_log_ids=[foreign.id],
        )

        with pytest.raises(NotFoundError):
            await service.create(user, payload)

        service.repo.add.assert_not_awaited()
        service.time_logs.link_invoice.assert_not_awaited()

    async def test_create_rejects_missing_time_log(self, service, user, client) -> None:
        service.clients.projects.return_value = [SimpleNamespace(id=uuid4(), user_id=user.id)]
        service.time_logs.get_many.return_value = []
        payload = _payload(
            InvoiceCreate,
            client.id,
            [{"description": "Ghost", "quantity": "1", "unit_price": "10", "time_log_id": uuid4()}],
        )

        with pytest.raises(NotFoundError):
            await service.create(user, payload)

    async def test_update_reconciles_items(self, service, user, client) -> None:
        kept = _line("Old design", "1", "10")
        dropped = _line("Removed", "3", "10")
        invoice = _invoice(user.id, client.id, [kept, dropped])
        service.repo.get_owned.return_value = invoice
        payload = _payload(
            InvoiceUpdate,
            client.id,
            [
                {"id": kept.id, "description": "Design", "quantity": "2", "unit_price": "50"},
                {"description": "Support", "quantity": "1", "unit_price": "30"},
                {"id": uuid4(), "description": "Other invoice line", "quantity": "5", "unit_price": "100"},
            ],
        )

        result = await service.update(user, invoice.id, payload)

        assert len(result.items) == 2
        assert result.items[0] is kept
        assert kept.description == "Design"
        assert kept.amount == Decimal("100.00")
        added = result.items[1]
        assert isinstance(added, InvoiceItem)
        assert added.description == "Support"
        assert dropped not in result.items
        assert result.subtotal == Decimal("130.00")
        assert result.total_amount == Decimal("130.00")
        service.time_logs.unlink_invoice.assert_awaited_once_with(invoice.id)

    async def test_update_notifies_on_transition_to_sent(self, service, user, client) -> None:
        invoice = _invoice(user.id, client.id, [])
        service.repo.get_owned.return_value = invoice
        payload = _payload(
            InvoiceUpdate,
            client.id,
            [{"description": "Work", "quantity": "1", "unit_price": "10"}],
            status="sent",
        )

        await service.update(user, invoice.id, payload)

        assert service.notifications.notify.await_args.args[1] == "invoice_status_changed"
        service.notifications.dispatch.assert_awaited_once()

    async def test_cancelling_releases_time_logs(self, service, user, client) -> None:
        invoice = _invoice(user.id, client.id, [], status="sent")
        service.repo.get_owned.return_value = invoice

        result = await service.update_status(user, invoice.id, InvoiceStatusUpdate(status="cancelled"))

        assert result.status == "cancelled"
        service.time_logs.unlink_invoice.assert_awaited_once_with(invoice.id)
        service.notifications.notify.assert_not_awaited()

    async def test_payment_status_keeps_time_logs_linked(self, service, user, client) -> None:
        invoice = _invoice(user.id, client.id, [], status="sent")
        service.repo.get_owned.return_value = invoice

        await service.update_status(user, invoice.id, InvoiceStatusUpdate(status="paid", paid_amount="130"))

        assert invoice.paid_amount == Decimal("130")
        service.time_logs.unlink_invoice.assert_not_awaited()

    async def test_delete_releases_time_logs(self, service, user, client) -> None:
        invoice = _invoice(user.id, client.id, [])
        service.repo.get_owned.return_value = invoice

        await service.delete(user, invoice.id)

        service.time_logs.unlink_invoice.assert_awaited_once_with(invoice.id)
        service.repo.delete.assert_awaited_once_with(invoice)
        service.session.commit.assert_awaited()

    async def test_other_users_invoice_is_not_found(self, service, user) -> None:
        service.repo.get_owned.return_value = None

        with pytest.raises(NotFoundError):
            await service.delete(user, uuid4())
