from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

InvoiceStatus = Literal["draft", "sent", "paid", "partially_paid", "overdue", "cancelled"]
AdjustmentType = Literal["percentage", "fixed"]


class InvoiceItemIn(BaseModel):
    """Invoice line as submitted by the client."""
    id: Optional[UUID] = Field(None, description="Existing item id (updates only)")
    time_log_id: Optional[UUID] = Field(None, description="Linked time log, if any")
    description: str = Field(..., min_length=1, max_length=1000)
    quantity: Decimal = Field(..., ge=0, description="Quantity (hours for time-based lines)")
    unit_price: Decimal = Field(..., ge=0, description="Price per unit")


class InvoiceBase(BaseModel):
    client_id: UUID = Field(..., description="Client being invoiced")
    invoice_number: str = Field(..., min_length=1, max_length=100)
    issue_date: date = Field(...)
    due_date: date = Field(...)
    status: InvoiceStatus = Field("draft")
    notes: Optional[str] = Field(None, max_length=5000)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    discount_type: Optional[AdjustmentType] = Field(None)
    discount_value: Optional[Decimal] = Field(None, ge=0)
    tax_type: Optional[AdjustmentType] = Field(None)
    tax_rate: Optional[Decimal] = Field(None, ge=0)
    items: List[InvoiceItemIn] = Field(..., min_length=1)
    grouped_time_log_ids: List[UUID] = Field(
        default_factory=list, description="Time logs summarized by grouped lines; linked to the invoice"
    )

    @model_validator(mode="after")
    def _check_dates(self) -> "InvoiceBase":
        if self.due_date < self.issue_date:
            raise ValueError("due_date must be on or after issue_date")
        return self


class InvoiceCreate(InvoiceBase):
    """Create invoice payload."""


class InvoiceUpdate(InvoiceBase):
    """Update invoice payload (full replacement of header and items)."""


class InvoiceStatusUpdate(BaseModel):
    """Status transition payload."""
    status: InvoiceStatus = Field(...)
    paid_amount: Optional[Decimal] = Field(None, ge=0)

    @model_validator(mode="after")
    def _require_paid_amount(self) -> "InvoiceStatusUpdate":
        if self.status in ("paid", "partially_paid") and self.paid_amount is None:
            raise ValueError("paid_amount is required when status is paid or partially_paid")
        return self


class InvoiceItemRead(BaseModel):
    id: UUID
    time_log_id: Optional[UUID] = None
    description: str
    quantity: Decimal
    unit_price: Decimal
    amount: Decimal

    class Config:
        from_attributes = True


class InvoiceClientRead(BaseModel):
    id: UUID
    name: str
    email: Optional[str] = None

    class Config:
        from_attributes = True


class InvoiceRead(BaseModel):
    """Invoice read model."""
    id: UUID
    client_id: UUID
    client: Optional[InvoiceClientRead] = None
    invoice_number: str
    issue_date: date
    due_date: date
    status: str
    notes: Optional[str] = None
    currency: str
    discount_type: Optional[str] = None
    discount_value: Optional[Decimal] = None
    tax_type: Optional[str] = None
    tax_rate: Optional[Decimal] = None
    subtotal: Decimal
    discount_amount: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    paid_amount: Decimal
    items: List[InvoiceItemRead] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
