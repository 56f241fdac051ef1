from __future__ import annotations

from decimal import Decimal
from typing import Dict, Optional
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field


class TeamMemberCreate(BaseModel):
    """Invite an existing user by e-mail, or create them with the given password."""
    name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr = Field(...)
    password: str = Field(..., min_length=8, description="Used only when the user does not exist yet")
    hourly_rate: Decimal = Field(Decimal("0"), ge=0)
    currency: str = Field("USD", min_length=3, max_length=3)
    non_monetary: bool = Field(False, description="Member is not paid; forces the rate to 0")


class TeamMemberUpdate(BaseModel):
    """Update a member's details and billing terms."""
    name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr = Field(...)
    password: Optional[str] = Field(None, min_length=8, description="New password; omit to keep the current one")
    hourly_rate: Decimal = Field(Decimal("0"), ge=0)
    currency: str = Field("USD", min_length=3, max_length=3)
    non_monetary: bool = Field(False)


class TeamMemberRead(BaseModel):
    """Team member with billing terms and approved-time stats."""
    id: UUID = Field(..., description="Member user id")
    team_id: UUID = Field(..., description="Team entry id")
    name: str
    email: str
    hourly_rate: Decimal
    currency: str
    non_monetary: bool
    total_hours: float = 0
    unpaid_hours: float = 0
    weekly_average: float = 0
    unpaid_amount: Dict[str, float] = Field(default_factory=dict)


class TeamUserRead(BaseModel):
    """Minimal user card for pickers and chat."""
    id: UUID
    name: str
    email: str

    class Config:
        from_attributes = True
