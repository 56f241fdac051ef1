from __future__ import annotations

import uuid
from decimal import Decimal
from typing import Optional

from sqlalchemy import Boolean, ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from timetrack.db.base import Base, Money, TenantMixin, TimestampMixin, UUIDPkMixin


class User(UUIDPkMixin, TenantMixin, TimestampMixin, Base):
    """Application user within a tenant. Acts as team leader for the projects they own."""
    __tablename__ = "users"
    __table_args__ = (
        UniqueConstraint("tenant_id", "email", name="uq_users_tenant_email"),
    )

    email: Mapped[str] = mapped_column(Text, nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    hashed_password: Mapped[str] = mapped_column(Text, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true")
    hourly_rate: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"), server_default="0")
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD", server_default="USD")
    github_token: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    @property
    def has_github_token(self) -> bool:
        return bool(self.github_token)


class Credential(UUIDPkMixin, TenantMixin, TimestampMixin, Base):
    """Per-user credentials for an external source (e.g. Jira domain/email/token)."""
    __tablename__ = "credentials"
    __table_args__ = (
        UniqueConstraint("tenant_id", "user_id", "source", name="uq_credentials_tenant_user_source"),
    )

    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    source: Mapped[str] = mapped_column(Text, nullable=False)
    keys: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
