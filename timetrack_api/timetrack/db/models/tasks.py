from __future__ import annotations

import uuid
from datetime import date
from typing import List, Optional

from sqlalchemy import Boolean, Date, ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from timetrack.db.base import Base, TenantMixin, TimestampMixin, UUIDPkMixin
from timetrack.db.models.projects import Project
from timetrack.db.models.users import User

TASK_STATUSES = ("pending", "in_progress", "completed")
TASK_PRIORITIES = ("low", "medium", "high")


class Tag(UUIDPkMixin, TenantMixin, TimestampMixin, Base):
    """User-scoped label attached to tasks and time logs."""
    __tablename__ = "tags"
    __table_args__ = (
        UniqueConstraint("tenant_id", "user_id", "name", name="uq_tags_tenant_user_name"),
    )

    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    color: Mapped[str] = mapped_column(String(7), nullable=False)


class Task(UUIDPkMixin, TenantMixin, TimestampMixin, Base):
    """Unit of work inside a project."""
    __tablename__ = "tasks"

    project_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="pending", server_default="pending")
    priority: Mapped[str] = mapped_column(Text, nullable=False, default="medium", server_default="medium")
    due_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    is_imported: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    project: Mapped[Project] = relationship(Project, lazy="selectin")
    assignees: Mapped[List[User]] = relationship(
        User,
        secondary="task_assignees",
        primaryjoin="Task.id==TaskAssignee.task_id",
        secondaryjoin="User.id==TaskAssignee.user_id",
        lazy="selectin",
    )
    tags: Mapped[List[Tag]] = relationship(
        Tag,
        secondary="task_tags",
        primaryjoin="Task.id==TaskTag.task_id",
        secondaryjoin="Tag.id==TaskTag.tag_id",
        lazy="selectin",
    )
    meta: Mapped[Optional["TaskMeta"]] = relationship(
        "TaskMeta", uselist=False, back_populates="task", cascade="all, delete-orphan", lazy="selectin"
    )


class TaskAssignee(UUIDPkMixin, TenantMixin, TimestampMixin, Base):
    """Association of tasks to assigned users."""
    __tablename__ = "task_assignees"
    __table_args__ = (
        UniqueConstraint("tenant_id", "task_id", "user_id", name="uq_task_assignees_tenant_task_user"),
    )

    task_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)


class TaskTag(UUIDPkMixin, TenantMixin, TimestampMixin, Base):
    """Association of tasks to tags."""
    __tablename__ = "task_tags"
    __table_args__ = (
        UniqueConstraint("tenant_id", "task_id", "tag_id", name="uq_task_tags_tenant_task_tag"),
    )

    task_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False)
    tag_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("tags.id", ondelete="CASCADE"), nullable=False)


class TaskMeta(UUIDPkMixin, TenantMixin, TimestampMixin, Base):
    """External source linkage of a task; (source, source_id) identifies the remote issue."""
    __tablename__ = "task_metas"
    __table_args__ = (
        UniqueConstraint("tenant_id", "source", "source_id", name="uq_task_metas_tenant_source_source_id"),
    )

    task_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, unique=True)
    source: Mapped[str] = mapped_column(Text, nullable=False)  # github | jira
    source_id: Mapped[str] = mapped_column(Text, nullable=False)
    source_number: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    source_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    source_state: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    extra_data: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)

    task: Mapped[Task] = relationship(Task, back_populates="meta")


class TaskComment(UUIDPkMixin, TenantMixin, TimestampMixin, Base):
    """Discussion entry on a task."""
    __tablename__ = "task_comments"

    task_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)

    user: Mapped[User] = relationship(User, lazy="selectin")
