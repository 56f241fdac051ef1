from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field


class ClientBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255, description="Client name")
    email: Optional[EmailStr] = Field(None)
    contact_person: Optional[str] = Field(None, max_length=255)
    phone: Optional[str] = Field(None, max_length=50)
    address: Optional[str] = Field(None, max_length=1000)
    notes: Optional[str] = Field(None, max_length=5000)
    hourly_rate: Optional[Decimal] = Field(None, ge=0, description="Default rate used when invoicing this client")
    currency: str = Field("USD", min_length=3, max_length=3)


class ClientCreate(ClientBase):
    """Create client payload."""


class ClientUpdate(ClientBase):
    """Update client payload."""


class ClientRead(BaseModel):
    """Client read model."""
    id: UUID
    name: str
    email: Optional[str] = None
    contact_person: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    notes: Optional[str] = None
    hourly_rate: Optional[Decimal] = None
    currency: str
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
