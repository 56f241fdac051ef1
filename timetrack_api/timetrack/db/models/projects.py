from __future__ import annotations

import uuid
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import Boolean, ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from timetrack.db.base import Base, Money, TenantMixin, TimestampMixin, UUIDPkMixin
from timetrack.db.models.clients import Client
from timetrack.db.models.users import User


class Project(UUIDPkMixin, TenantMixin, TimestampMixin, Base):
    """Project owned by a team leader, optionally imported from GitHub or Jira."""
    __tablename__ = "projects"

    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    client_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), ForeignKey("clients.id", ondelete="SET NULL"), nullable=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    paid_amount: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"), server_default="0")
    repo_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    source: Mapped[Optional[str]] = mapped_column(Text, nullable=True)  # github | jira

    owner: Mapped[User] = relationship(User, lazy="selectin")
    client: Mapped[Optional[Client]] = relationship(Client, lazy="selectin")
    members: Mapped[List["ProjectMember"]] = relationship(
        "ProjectMember",
        back_populates="project",
        cascade="all, delete-orphan",
        lazy="selectin",
    )


class ProjectMember(UUIDPkMixin, TenantMixin, TimestampMixin, Base):
    """Team member assigned to a project; approvers may approve teammates' time logs."""
    __tablename__ = "project_members"
    __table_args__ = (
        UniqueConstraint("tenant_id", "project_id", "member_id", name="uq_project_members_tenant_project_member"),
    )

    project_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    member_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    is_approver: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    hourly_rate: Mapped[Optional[Decimal]] = mapped_column(Money, nullable=True)
    currency: Mapped[Optional[str]] = mapped_column(String(3), nullable=True)

    project: Mapped[Project] = relationship(Project, back_populates="members")
    member: Mapped[User] = relationship(User, lazy="selectin")


class ProjectNote(UUIDPkMixin, TenantMixin, TimestampMixin, Base):
    """Free-form note left on a project by its owner or a member."""
    __tablename__ = "project_notes"

    project_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)

    user: Mapped[User] = relationship(User, lazy="selectin")
