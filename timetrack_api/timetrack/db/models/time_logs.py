from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from timetrack.db.base import Base, Hours, Money, TenantMixin, TimestampMixin, UUIDPkMixin
from timetrack.db.models.projects import Project
from timetrack.db.models.tasks import Tag, Task
from timetrack.db.models.users import User

TIME_LOG_STATUSES = ("pending", "approved", "rejected")


class TimeLog(UUIDPkMixin, TenantMixin, TimestampMixin, Base):
    """Interval of work recorded by a user against a project (and optionally a task)."""
    __tablename__ = "time_logs"

    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    project_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    task_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), ForeignKey("tasks.id", ondelete="SET NULL"), nullable=True)
    invoice_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), ForeignKey("invoices.id", ondelete="SET NULL"), nullable=True, index=True)
    start_timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_timestamp: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    duration: Mapped[Optional[Decimal]] = mapped_column(Hours, nullable=True)
    note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_paid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    non_billable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    hourly_rate: Mapped[Optional[Decimal]] = mapped_column(Money, nullable=True)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD", server_default="USD")
    status: Mapped[str] = mapped_column(Text, nullable=False, default="pending", server_default="pending", index=True)
    approved_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    comment: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    user: Mapped[User] = relationship(User, foreign_keys=[user_id], lazy="selectin")
    approver: Mapped[Optional[User]] = relationship(User, foreign_keys=[approved_by], lazy="selectin")
    project: Mapped[Project] = relationship(Project, lazy="selectin")
    task: Mapped[Optional[Task]] = relationship(Task, lazy="selectin")
    tags: Mapped[List[Tag]] = relationship(
        Tag,
        secondary="time_log_tags",
        primaryjoin="TimeLog.id==TimeLogTag.time_log_id",
        secondaryjoin="Tag.id==TimeLogTag.tag_id",
        lazy="selectin",
    )

    @property
    def is_complete(self) -> bool:
        return self.start_timestamp is not None and self.end_timestamp is not None


class TimeLogTag(UUIDPkMixin, TenantMixin, TimestampMixin, Base):
    """Association of time logs to tags."""
    __tablename__ = "time_log_tags"
    __table_args__ = (
        UniqueConstraint("tenant_id", "time_log_id", "tag_id", name="uq_time_log_tags_tenant_time_log_tag"),
    )

    time_log_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("time_logs.id", ondelete="CASCADE"), nullable=False)
    tag_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("tags.id", ondelete="CASCADE"), nullable=False)
