from __future__ import annotations

import uuid
from decimal import Decimal

from sqlalchemy import Boolean, ForeignKey, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from timetrack.db.base import Base, Money, TenantMixin, TimestampMixin, UUIDPkMixin
from timetrack.db.models.users import User


class Team(UUIDPkMixin, TenantMixin, TimestampMixin, Base):
    """Leader -> member edge carrying the member's billing terms."""
    __tablename__ = "teams"
    __table_args__ = (
        UniqueConstraint("tenant_id", "leader_id", "member_id", name="uq_teams_tenant_leader_member"),
    )

    leader_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    member_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    hourly_rate: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"), server_default="0")
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD", server_default="USD")
    non_monetary: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")

    leader: Mapped[User] = relationship(User, foreign_keys=[leader_id], lazy="selectin")
    member: Mapped[User] = relationship(User, foreign_keys=[member_id], lazy="selectin")
