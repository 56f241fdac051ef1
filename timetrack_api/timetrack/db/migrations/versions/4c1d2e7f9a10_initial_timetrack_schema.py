"""Initial time tracking schema with multi-tenancy and RLS.

- tenants, users, credentials
- teams, clients
- projects, project_members, project_notes
- tags, tasks, task_assignees, task_tags, task_metas, task_comments
- invoices, invoice_items
- time_logs, time_log_tags
- conversations, conversation_participants, messages
- notifications

Also creates helper function set_tenant_id(uuid) to set the app.tenant_id GUC.
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "4c1d2e7f9a10"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


TENANT_DEFAULT = sa.text("current_setting('app.tenant_id', true)::uuid")

TENANT_SCOPED_TABLES = [
    "users",
    "credentials",
    "teams",
    "clients",
    "projects",
    "project_members",
    "project_notes",
    "tags",
    "tasks",
    "task_assignees",
    "task_tags",
    "task_metas",
    "task_comments",
    "invoices",
    "invoice_items",
    "time_logs",
    "time_log_tags",
    "conversations",
    "conversation_participants",
    "messages",
    "notifications",
]


def _base_columns() -> list:
    """id, tenant_id and timestamps shared by every tenant-scoped table."""
    return [
        sa.Column("id", sa.UUID(), primary_key=True, server_default=sa.text("uuid_generate_v4()")),
        sa.Column("tenant_id", sa.UUID(), nullable=False, server_default=TENANT_DEFAULT),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    ]


def _tenant_fk() -> sa.ForeignKeyConstraint:
    return sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE")


def upgrade() -> None:
    op.execute('CREATE EXTENSION IF NOT EXISTS "uuid-ossp";')
    op.execute(
        """
        CREATE OR REPLACE FUNCTION set_tenant_id(p_tenant_id uuid)
        RETURNS void AS $$
        BEGIN
            PERFORM set_config('app.tenant_id', p_tenant_id::text, false);
        END;
        $$ LANGUAGE plpgsql;
        """
    )

    op.create_table(
        "tenants",
        sa.Column("id", sa.UUID(), primary_key=True, server_default=sa.text("uuid_generate_v4()")),
        sa.Column("name", sa.Text(), nullable=False, unique=True),
        sa.Column("slug", sa.Text(), nullable=False, unique=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )

    # Users and credentials
    op.create_table(
        "users",
        *_base_columns(),
        sa.Column("email", sa.Text(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("hashed_password", sa.Text(), nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.Column("hourly_rate", sa.Numeric(12, 2), server_default="0", nullable=False),
        sa.Column("currency", sa.String(3), server_default="USD", nullable=False),
        sa.Column("github_token", sa.Text(), nullable=True),
        _tenant_fk(),
        sa.UniqueConstraint("tenant_id", "email", name="uq_users_tenant_email"),
    )
    op.create_table(
        "credentials",
        *_base_columns(),
        sa.Column("user_id", sa.UUID(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("source", sa.Text(), nullable=False),
        sa.Column("keys", postgresql.JSONB(), server_default=sa.text("'{}'::jsonb"), nullable=False),
        _tenant_fk(),
        sa.UniqueConstraint("tenant_id", "user_id", "source", name="uq_credentials_tenant_user_source"),
    )

    # Teams and clients
    op.create_table(
        "teams",
        *_base_columns(),
        sa.Column("leader_id", sa.UUID(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("member_id", sa.UUID(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("hourly_rate", sa.Numeric(12, 2), server_default="0", nullable=False),
        sa.Column("currency", sa.String(3), server_default="USD", nullable=False),
        sa.Column("non_monetary", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        _tenant_fk(),
        sa.UniqueConstraint("tenant_id", "leader_id", "member_id", name="uq_teams_tenant_leader_member"),
    )
    op.create_table(
        "clients",
        *_base_columns(),
        sa.Column("user_id", sa.UUID(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("email", sa.Text(), nullable=True),
        sa.Column("contact_person", sa.Text(), nullable=True),
        sa.Column("phone", sa.Text(), nullable=True),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("hourly_rate", sa.Numeric(12, 2), nullable=True),
        sa.Column("currency", sa.String(3), server_default="USD", nullable=False),
        _tenant_fk(),
    )

    # Projects
    op.create_table(
        "projects",
        *_base_columns(),
        sa.Column("user_id", sa.UUID(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("client_id", sa.UUID(), sa.ForeignKey("clients.id", ondelete="SET NULL"), nullable=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("paid_amount", sa.Numeric(12, 2), server_default="0", nullable=False),
        sa.Column("repo_id", sa.Text(), nullable=True),
        sa.Column("source", sa.Text(), nullable=True),
        _tenant_fk(),
    )
    op.create_table(
        "project_members",
        *_base_columns(),
        sa.Column("project_id", sa.UUID(), sa.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("member_id", sa.UUID(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("is_approver", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("hourly_rate", sa.Numeric(12, 2), nullable=True),
        sa.Column("currency", sa.String(3), nullable=True),
        _tenant_fk(),
        sa.UniqueConstraint("tenant_id", "project_id", "member_id", name="uq_project_members_tenant_project_member"),
    )
    op.create_table(
        "project_notes",
        *_base_columns(),
        sa.Column("project_id", sa.UUID(), sa.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("user_id", sa.UUID(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        _tenant_fk(),
    )

    # Tasks and tags
    op.create_table(
        "tags",
        *_base_columns(),
        sa.Column("user_id", sa.UUID(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("color", sa.String(7), nullable=False),
        _tenant_fk(),
        sa.UniqueConstraint("tenant_id", "user_id", "name", name="uq_tags_tenant_user_name"),
    )
    op.create_table(
        "tasks",
        *_base_columns(),
        sa.Column("project_id", sa.UUID(), sa.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.Text(), server_default="pending", nullable=False),
        sa.Column("priority", sa.Text(), server_default="medium", nullable=False),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("is_imported", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("created_by", sa.UUID(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        _tenant_fk(),
        sa.CheckConstraint("status IN ('pending', 'in_progress', 'completed')", name="ck_tasks_status"),
        sa.CheckConstraint("priority IN ('low', 'medium', 'high')", name="ck_tasks_priority"),
    )
    op.create_table(
        "task_assignees",
        *_base_columns(),
        sa.Column("task_id", sa.UUID(), sa.ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.UUID(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        _tenant_fk(),
        sa.UniqueConstraint("tenant_id", "task_id", "user_id", name="uq_task_assignees_tenant_task_user"),
    )
    op.create_table(
        "task_tags",
        *_base_columns(),
        sa.Column("task_id", sa.UUID(), sa.ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False),
        sa.Column("tag_id", sa.UUID(), sa.ForeignKey("tags.id", ondelete="CASCADE"), nullable=False),
        _tenant_fk(),
        sa.UniqueConstraint("tenant_id", "task_id", "tag_id", name="uq_task_tags_tenant_task_tag"),
    )
    op.create_table(
        "task_metas",
        *_base_columns(),
        sa.Column("task_id", sa.UUID(), sa.ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, unique=True),
        sa.Column("source", sa.Text(), nullable=False),
        sa.Column("source_id", sa.Text(), nullable=False),
        sa.Column("source_number", sa.Text(), nullable=True),
        sa.Column("source_url", sa.Text(), nullable=True),
        sa.Column("source_state", sa.Text(), nullable=True),
        sa.Column("extra_data", postgresql.JSONB(), server_default=sa.text("'{}'::jsonb"), nullable=False),
        _tenant_fk(),
        sa.UniqueConstraint("tenant_id", "source", "source_id", name="uq_task_metas_tenant_source_source_id"),
    )
    op.create_table(
        "task_comments",
        *_base_columns(),
        sa.Column("task_id", sa.UUID(), sa.ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("user_id", sa.UUID(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        _tenant_fk(),
    )

    # Invoices
    op.create_table(
        "invoices",
        *_base_columns(),
        sa.Column("user_id", sa.UUID(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("client_id", sa.UUID(), sa.ForeignKey("clients.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("invoice_number", sa.Text(), nullable=False),
        sa.Column("issue_date", sa.Date(), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=False),
        sa.Column("status", sa.Text(), server_default="draft", nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("currency", sa.String(3), server_default="USD", nullable=False),
        sa.Column("discount_type", sa.Text(), nullable=True),
        sa.Column("discount_value", sa.Numeric(12, 2), nullable=True),
        sa.Column("tax_type", sa.Text(), nullable=True),
        sa.Column("tax_rate", sa.Numeric(12, 2), nullable=True),
        sa.Column("subtotal", sa.Numeric(12, 2), server_default="0", nullable=False),
        sa.Column("discount_amount", sa.Numeric(12, 2), server_default="0", nullable=False),
        sa.Column("tax_amount", sa.Numeric(12, 2), server_default="0", nullable=False),
        sa.Column("total_amount", sa.Numeric(12, 2), server_default="0", nullable=False),
        sa.Column("paid_amount", sa.Numeric(12, 2), server_default="0", nullable=False),
        _tenant_fk(),
        sa.UniqueConstraint("tenant_id", "invoice_number", name="uq_invoices_tenant_invoice_number"),
        sa.CheckConstraint(
            "status IN ('draft', 'sent', 'paid', 'partially_paid', 'overdue', 'cancelled')",
            name="ck_invoices_status",
        ),
    )

    # Time logs
    op.create_table(
        "time_logs",
        *_base_columns(),
        sa.Column("user_id", sa.UUID(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("project_id", sa.UUID(), sa.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("task_id", sa.UUID(), sa.ForeignKey("tasks.id", ondelete="SET NULL"), nullable=True),
        sa.Column("invoice_id", sa.UUID(), sa.ForeignKey("invoices.id", ondelete="SET NULL"), nullable=True, index=True),
        sa.Column("start_timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_timestamp", sa.DateTime(timezone=True), nullable=True),
        sa.Column("duration", sa.Numeric(10, 2), nullable=True),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("is_paid", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("non_billable", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("hourly_rate", sa.Numeric(12, 2), nullable=True),
        sa.Column("currency", sa.String(3), server_default="USD", nullable=False),
        sa.Column("status", sa.Text(), server_default="pending", nullable=False, index=True),
        sa.Column("approved_by", sa.UUID(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("comment", sa.Text(), nullable=True),
        _tenant_fk(),
        sa.CheckConstraint("status IN ('pending', 'approved', 'rejected')", name="ck_time_logs_status"),
        sa.Index("ix_time_logs_tenant_start", "tenant_id", "start_timestamp"),
    )
    op.create_table(
        "time_log_tags",
        *_base_columns(),
        sa.Column("time_log_id", sa.UUID(), sa.ForeignKey("time_logs.id", ondelete="CASCADE"), nullable=False),
        sa.Column("tag_id", sa.UUID(), sa.ForeignKey("tags.id", ondelete="CASCADE"), nullable=False),
        _tenant_fk(),
        sa.UniqueConstraint("tenant_id", "time_log_id", "tag_id", name="uq_time_log_tags_tenant_time_log_tag"),
    )
    op.create_table(
        "invoice_items",
        *_base_columns(),
        sa.Column("invoice_id", sa.UUID(), sa.ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("time_log_id", sa.UUID(), sa.ForeignKey("time_logs.id", ondelete="SET NULL"), nullable=True),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("quantity", sa.Numeric(12, 2), nullable=False),
        sa.Column("unit_price", sa.Numeric(12, 2), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        _tenant_fk(),
    )

    # Chat
    op.create_table(
        "conversations",
        *_base_columns(),
        sa.Column("is_group", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("title", sa.Text(), nullable=True),
        _tenant_fk(),
    )
    op.create_table(
        "conversation_participants",
        *_base_columns(),
        sa.Column("conversation_id", sa.UUID(), sa.ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.UUID(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True),
        _tenant_fk(),
        sa.UniqueConstraint(
            "tenant_id", "conversation_id", "user_id", name="uq_conversation_participants_tenant_conversation_user"
        ),
    )
    op.create_table(
        "messages",
        *_base_columns(),
        sa.Column("conversation_id", sa.UUID(), sa.ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("user_id", sa.UUID(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        _tenant_fk(),
    )

    op.create_table(
        "notifications",
        *_base_columns(),
        sa.Column("user_id", sa.UUID(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("type", sa.Text(), nullable=False),
        sa.Column("data", postgresql.JSONB(), server_default=sa.text("'{}'::jsonb"), nullable=False),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        _tenant_fk(),
        sa.Index("ix_notifications_tenant_user_created_at", "tenant_id", "user_id", "created_at"),
    )

    for tbl in TENANT_SCOPED_TABLES:
        op.create_index(f"ix_{tbl}_tenant_id", tbl, ["tenant_id"])

    # Enable RLS and add policies
    op.execute("ALTER TABLE tenants ENABLE ROW LEVEL SECURITY;")
    op.execute(
        """
        CREATE POLICY tenant_row_access ON tenants
        USING (id = current_setting('app.tenant_id', true)::uuid)
        WITH CHECK (id = current_setting('app.tenant_id', true)::uuid);
        """
    )
    for tbl in TENANT_SCOPED_TABLES:
        op.execute(f"ALTER TABLE {tbl} ENABLE ROW LEVEL SECURITY;")
        op.execute(
            f"""
            CREATE POLICY {tbl}_tenant_isolation ON {tbl}
            USING (tenant_id = current_setting('app.tenant_id', true)::uuid)
            WITH CHECK (tenant_id = current_setting('app.tenant_id', true)::uuid);
            """
        )


def downgrade() -> None:
    for tbl in reversed(TENANT_SCOPED_TABLES):
        op.execute(f"DROP POLICY IF EXISTS {tbl}_tenant_isolation ON {tbl};")
        op.execute(f"ALTER TABLE {tbl} DISABLE ROW LEVEL SECURITY;")
    op.execute("DROP POLICY IF EXISTS tenant_row_access ON tenants;")
    op.execute("ALTER TABLE tenants DISABLE ROW LEVEL SECURITY;")

    for tbl in [
        "notifications",
        "messages",
        "conversation_participants",
        "conversations",
        "invoice_items",
        "time_log_tags",
        "time_logs",
        "invoices",
        "task_comments",
        "task_metas",
        "task_tags",
        "task_assignees",
        "tasks",
        "tags",
        "project_notes",
        "project_members",
        "projects",
        "clients",
        "teams",
        "credentials",
        "users",
        "tenants",
    ]:
        op.drop_table(tbl)

    op.execute("DROP FUNCTION IF EXISTS set_tenant_id(uuid);")
