from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Iterable, List, Optional
from uuid import UUID

import pandas as pd
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from timetrack.core.errors import ConflictError, NotFoundError
from timetrack.db.models.invoices import Invoice, InvoiceItem
from timetrack.db.models.users import User
from timetrack.repositories.clients import ClientRepository
from timetrack.repositories.invoices import InvoiceRepository
from timetrack.repositories.time_logs import TimeLogRepository
from timetrack.schemas.invoices import InvoiceCreate, InvoiceItemIn, InvoiceStatusUpdate, InvoiceUpdate
from timetrack.services.base import BaseService
from timetrack.services.notifications import NotificationService
from timetrack.services.rates import DEFAULT_CURRENCY, quantize, to_decimal

logger = logging.getLogger(__name__)

EXPORT_COLUMNS = [
    "ID",
    "Invoice Number",
    "Client",
    "Issue Date",
    "Due Date",
    "Total Amount",
    "Paid Amount",
    "Status",
    "Created At",
]

NOTIFY_STATUSES = ("sent", "overdue")


@dataclass(frozen=True)
class InvoiceTotals:
    subtotal: Decimal
    discount_amount: Decimal
    tax_amount: Decimal
    total_amount: Decimal


def _adjustment(subtotal: Decimal, kind: Optional[str], value: Any) -> Decimal:
    """Percentage of, or fixed amount capped at, the subtotal. Zero when unset."""
    value = to_decimal(value)
    if not kind or value <= 0:
        return Decimal("0")
    if kind == "percentage":
        return subtotal * value / Decimal("100")
    return min(value, subtotal)


# PUBLIC_INTERFACE
def calculate_totals(
    items: Iterable[Any],
    discount_type: Optional[str] = None,
    discount_value: Any = None,
    tax_type: Optional[str] = None,
    tax_rate: Any = None,
) -> InvoiceTotals:
    """
    Compute invoice totals.

    subtotal = sum(quantity * unit_price); discount and tax are each computed on the
    subtotal; total = subtotal - discount + tax. Every amount is quantized to cents.
    """
    subtotal = sum(
        (to_decimal(item.quantity) * to_decimal(item.unit_price) for item in items),
        Decimal("0"),
    )
    discount = _adjustment(subtotal, discount_type, discount_value)
    tax = _adjustment(subtotal, tax_type, tax_rate)
    return InvoiceTotals(
        subtotal=quantize(subtotal),
        discount_amount=quantize(discount),
        tax_amount=quantize(tax),
        total_amount=quantize(subtotal - discount + tax),
    )


def _linked_time_log_ids(items: Iterable[InvoiceItemIn], grouped_ids: Iterable[UUID]) -> List[UUID]:
    ids = [item.time_log_id for item in items if item.time_log_id]
    ids.extend(grouped_ids)
    return list(dict.fromkeys(ids))


class InvoiceService(BaseService):
    """Invoice lifecycle: create, edit, status transitions and exports."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session)
        self.repo = InvoiceRepository(session)
        self.clients = ClientRepository(session)
        self.time_logs = TimeLogRepository(session)
        self.notifications = NotificationService(session)

    # PUBLIC_INTERFACE
    async def get(self, user: User, invoice_id: UUID) -> Invoice:
        """Return an invoice owned by the user; other users get 404."""
        invoice = await self.repo.get_owned(invoice_id, user.id)
        if invoice is None:
            raise NotFoundError("Invoice not found.")
        return invoice

    # PUBLIC_INTERFACE
    async def list_invoices(self, user: User, **filters) -> List[Invoice]:
        return await self.repo.list_invoices(user_id=user.id, **filters)

    async def _ensure_number_free(self, invoice_number: str, invoice_id: Optional[UUID] = None) -> None:
        existing = await self.repo.get_by_number(invoice_number)
        if existing is not None and existing.id != invoice_id:
            raise ConflictError("The invoice number has already been taken.")

    def _apply_totals(self, invoice: Invoice, items: Iterable[Any]) -> None:
        totals = calculate_totals(
            items, invoice.discount_type, invoice.discount_value, invoice.tax_type, invoice.tax_rate
        )
        invoice.subtotal = totals.subtotal
        invoice.discount_amount = totals.discount_amount
        invoice.tax_amount = totals.tax_amount
        invoice.total_amount = totals.total_amount

    async def _notify_status(self, user: User, invoice: Invoice) -> None:
        await self.notifications.notify(
            user.id,
            "invoice_status_changed",
            {
                "invoice_id": str(invoice.id),
                "invoice_number": invoice.invoice_number,
                "status": invoice.status,
                "client_name": invoice.client.name if invoice.client else None,
                "total_amount": float(invoice.total_amount or 0),
                "currency": invoice.currency,
            },
        )

    async def _linkable_project_ids(self, user: User, client: Any, time_log_ids: List[UUID]) -> List[UUID]:
        """
        Projects of the client owned by the user; every referenced log must sit on one.

        Raises NotFoundError when a log is missing or belongs to someone else's project.
        """
        project_ids = [p.id for p in await self.clients.projects(client.id) if p.user_id == user.id]
        if time_log_ids:
            allowed = set(project_ids)
            found = {log.id for log in await self.time_logs.get_many(time_log_ids) if log.project_id in allowed}
            if any(log_id not in found for log_id in time_log_ids):
                raise NotFoundError("Time log not found.")
        return project_ids

    async def _flush(self) -> None:
        try:
            await self.repo.flush()
        except IntegrityError as exc:
            raise ConflictError("The invoice number has already been taken.") from exc

    # PUBLIC_INTERFACE
    async def create(self, user: User, payload: InvoiceCreate) -> Invoice:
        """
        Create an invoice with its items and link referenced time logs.

        Currency falls back to the client's, then the user's, then USD.
        """
        client = await self.clients.get_owned(payload.client_id, user.id)
        if client is None:
            raise NotFoundError("Client not found.")
        await self._ensure_number_free(payload.invoice_number)
        time_log_ids = _linked_time_log_ids(payload.items, payload.grouped_time_log_ids)
        project_ids = await self._linkable_project_ids(user, client, time_log_ids)

        invoice = Invoice(
            user_id=user.id,
            client_id=client.id,
            invoice_number=payload.invoice_number,
            issue_date=payload.issue_date,
            due_date=payload.due_date,
            status=payload.status,
            notes=payload.notes,
            currency=(payload.currency or client.currency or user.currency or DEFAULT_CURRENCY).upper(),
            discount_type=payload.discount_type,
            discount_value=payload.discount_value,
            tax_type=payload.tax_type,
            tax_rate=payload.tax_rate,
            items=[
                InvoiceItem(
                    time_log_id=item.time_log_id,
                    description=item.description,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    amount=quantize(to_decimal(item.quantity) * to_decimal(item.unit_price)),
                )
                for item in payload.items
            ],
        )
        self._apply_totals(invoice, payload.items)

        async with self.transaction():
            await self.repo.add(invoice)
            await self._flush()
            await self.time_logs.link_invoice(time_log_ids, invoice.id, project_ids)
        await self.repo.refresh(invoice)
        logger.info("Invoice %s created (total=%s %s)", invoice.invoice_number, invoice.total_amount, invoice.currency)
        return invoice

    # PUBLIC_INTERFACE
    async def update(self, user: User, invoice_id: UUID, payload: InvoiceUpdate) -> Invoice:
        """
        Replace header fields and reconcile items.

        Items carrying an id of this invoice are updated, items without id are added,
        items carrying an unknown id are ignored, and existing items not present in
        the payload are removed.
        """
        invoice = await self.get(user, invoice_id)
        client = await self.clients.get_owned(payload.client_id, user.id)
        if client is None:
            raise NotFoundError("Client not found.")
        await self._ensure_number_free(payload.invoice_number, invoice.id)
        previous_status = invoice.status

        existing = {item.id: item for item in invoice.items}
        incoming = [data for data in payload.items if data.id is None or data.id in existing]
        time_log_ids = _linked_time_log_ids(incoming, payload.grouped_time_log_ids)
        project_ids = await self._linkable_project_ids(user, client, time_log_ids)

        async with self.transaction():
            invoice.client_id = client.id
            invoice.invoice_number = payload.invoice_number
            invoice.issue_date = payload.issue_date
            invoice.due_date = payload.due_date
            invoice.status = payload.status
            invoice.notes = payload.notes
            invoice.currency = (payload.currency or invoice.currency).upper()
            invoice.discount_type = payload.discount_type
            invoice.discount_value = payload.discount_value
            invoice.tax_type = payload.tax_type
            invoice.tax_rate = payload.tax_rate

            kept: List[InvoiceItem] = []
            for data in incoming:
                amount = quantize(to_decimal(data.quantity) * to_decimal(data.unit_price))
                item = existing[data.id] if data.id else InvoiceItem(invoice_id=invoice.id)
                item.time_log_id = data.time_log_id
                item.description = data.description
                item.quantity = data.quantity
                item.unit_price = data.unit_price
                item.amount = amount
                kept.append(item)
            invoice.items = kept
            self._apply_totals(invoice, kept)

            await self.time_logs.unlink_invoice(invoice.id)
            await self.time_logs.link_invoice(time_log_ids, invoice.id, project_ids)
            await self._flush()
            if invoice.status != previous_status and invoice.status in NOTIFY_STATUSES:
                await self._notify_status(user, invoice)
        await self.notifications.dispatch()
        await self.repo.refresh(invoice)
        return invoice

    # PUBLIC_INTERFACE
    async def send(self, user: User, invoice_id: UUID) -> Invoice:
        """Mark the invoice as sent to the client and raise a status notification."""
        invoice = await self.get(user, invoice_id)
        async with self.transaction():
            invoice.status = "sent"
            await self._notify_status(user, invoice)
        await self.notifications.dispatch()
        logger.info(
            "Invoice %s marked as sent to %s",
            invoice.invoice_number,
            invoice.client.email if invoice.client else None,
        )
        await self.repo.refresh(invoice)
        return invoice

    # PUBLIC_INTERFACE
    async def update_status(self, user: User, invoice_id: UUID, payload: InvoiceStatusUpdate) -> Invoice:
        """Apply a status transition; cancelling releases linked time logs."""
        invoice = await self.get(user, invoice_id)
        async with self.transaction():
            invoice.status = payload.status
            if payload.paid_amount is not None:
                invoice.paid_amount = payload.paid_amount
            if payload.status == "cancelled":
                await self.time_logs.unlink_invoice(invoice.id)
            if payload.status in NOTIFY_STATUSES:
                await self._notify_status(user, invoice)
        await self.notifications.dispatch()
        await self.repo.refresh(invoice)
        return invoice

    # PUBLIC_INTERFACE
    async def delete(self, user: User, invoice_id: UUID) -> None:
        """Release linked time logs and delete the invoice."""
        invoice = await self.get(user, invoice_id)
        async with self.transaction():
            await self.time_logs.unlink_invoice(invoice.id)
            await self.repo.delete(invoice)
        logger.info("Invoice %s deleted", invoice.invoice_number)

    # PUBLIC_INTERFACE
    async def export_frame(self, user: User) -> pd.DataFrame:
        """Tabular export of the user's invoices."""
        invoices = await self.repo.list_invoices(user_id=user.id, limit=100000)
        rows = [
            [
                str(inv.id),
                inv.invoice_number,
                inv.client.name if inv.client else "",
                inv.issue_date.isoformat(),
                inv.due_date.isoformat(),
                float(inv.total_amount or 0),
                float(inv.paid_amount or 0),
                inv.status,
                inv.created_at.strftime("%Y-%m-%d %H:%M:%S") if inv.created_at else "",
            ]
            for inv in invoices
        ]
        return pd.DataFrame(rows, columns=EXPORT_COLUMNS)
