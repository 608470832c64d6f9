"""Initial schema: workflow templates, approval requests and history, audit logs, notifications

Revision ID: 0001
Revises: None
Create Date: 2026-10-16

Audit log immutability is enforced with triggers on PostgreSQL only; other
databases rely on the application never updating or deleting audit rows.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

NOW = sa.text("CURRENT_TIMESTAMP")


def _is_postgresql() -> bool:
    return op.get_bind().dialect.name == "postgresql"


def upgrade() -> None:
    """Create all tables."""

    # --- workflow_templates (no FK deps) ---
    op.create_table(
        "workflow_templates",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("tenant_id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("request_type", sa.String(50), nullable=False),
        sa.Column("approval_levels", sa.JSON(), nullable=False),
        sa.Column("conditions", sa.JSON(), nullable=False),
        sa.Column("priority_order", sa.Integer(), nullable=False, server_default="100"),
        sa.Column("default_sla_hours", sa.Integer(), nullable=False, server_default="72"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_by", sa.Uuid(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=NOW),
        sa.PrimaryKeyConstraint("id", name="pk_workflow_templates"),
        sa.UniqueConstraint("tenant_id", "request_type", "name", name="uq_workflow_templates_tenant_type_name"),
    )
    op.create_index("ix_workflow_templates_tenant_id", "workflow_templates", ["tenant_id"])
    op.create_index("ix_workflow_templates_request_type", "workflow_templates", ["request_type"])

    # --- approval_requests (FK -> workflow_templates) ---
    op.create_table(
        "approval_requests",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("tenant_id", sa.Uuid(), nullable=False),
        sa.Column("request_type", sa.String(50), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("priority", sa.String(20), nullable=False, server_default="normal"),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("state", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("current_level", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("required_chain", sa.JSON(), nullable=False),
        sa.Column("workflow_template_id", sa.Uuid(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("sla_hours", sa.Integer(), nullable=False, server_default="72"),
        sa.Column("deadline", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_by", sa.Uuid(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=NOW),
        sa.PrimaryKeyConstraint("id", name="pk_approval_requests"),
        sa.ForeignKeyConstraint(
            ["workflow_template_id"], ["workflow_templates.id"],
            name="fk_approval_requests_workflow_template_id",
            ondelete="SET NULL",
        ),
    )
    op.create_index("ix_approval_requests_tenant_id", "approval_requests", ["tenant_id"])
    op.create_index("ix_approval_requests_created_by", "approval_requests", ["created_by"])
    op.create_index("ix_approval_requests_created_at", "approval_requests", ["created_at"])
    op.create_index("ix_approval_requests_deadline", "approval_requests", ["deadline"])
    op.create_index("ix_approval_requests_tenant_state", "approval_requests", ["tenant_id", "state"])
    op.create_index("ix_approval_requests_tenant_type", "approval_requests", ["tenant_id", "request_type"])

    # --- approval_transitions (FK -> approval_requests) ---
    op.create_table(
        "approval_transitions",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("request_id", sa.Uuid(), nullable=False),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("level", sa.Integer(), nullable=False),
        sa.Column("decision", sa.String(20), nullable=False),
        sa.Column("from_state", sa.String(20), nullable=False),
        sa.Column("to_state", sa.String(20), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("actor_id", sa.Uuid(), nullable=False),
        sa.Column("actor_role", sa.String(50), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW),
        sa.PrimaryKeyConstraint("id", name="pk_approval_transitions"),
        sa.ForeignKeyConstraint(
            ["request_id"], ["approval_requests.id"],
            name="fk_approval_transitions_request_id",
            ondelete="CASCADE",
        ),
        sa.UniqueConstraint("request_id", "sequence", name="uq_approval_transitions_request_sequence"),
    )
    op.create_index("ix_approval_transitions_request_id", "approval_transitions", ["request_id"])

    # --- audit_logs (no FK deps; immutable) ---
    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("tenant_id", sa.Uuid(), nullable=False),
        sa.Column("actor_id", sa.Uuid(), nullable=True),
        sa.Column("actor_role", sa.String(50), nullable=True),
        sa.Column("action", sa.String(100), nullable=False),
        sa.Column("resource_type", sa.String(100), nullable=False),
        sa.Column("resource_id", sa.Uuid(), nullable=True),
        sa.Column("old_values", sa.JSON(), nullable=True),
        sa.Column("new_values", sa.JSON(), nullable=True),
        sa.Column("details", sa.JSON(), nullable=True),
        sa.Column("severity", sa.String(20), nullable=False, server_default="info"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW),
        sa.PrimaryKeyConstraint("id", name="pk_audit_logs"),
    )
    op.create_index("ix_audit_logs_tenant_id", "audit_logs", ["tenant_id"])
    op.create_index("ix_audit_logs_actor_id", "audit_logs", ["actor_id"])
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"])
    op.create_index("ix_audit_logs_resource_id", "audit_logs", ["resource_id"])
    op.create_index("ix_audit_logs_created_at", "audit_logs", ["created_at"])
    op.create_index("ix_audit_logs_tenant_created", "audit_logs", ["tenant_id", "created_at"])

    # --- webhook_configs (no FK deps) ---
    op.create_table(
        "webhook_configs",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("tenant_id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("url", sa.Text(), nullable=False),
        sa.Column("method", sa.String(10), server_default="POST"),
        sa.Column("auth_type", sa.String(50), nullable=True),
        sa.Column("auth_value", sa.Text(), nullable=True),
        sa.Column("headers", sa.JSON(), nullable=True),
        sa.Column("subscribed_events", sa.JSON(), nullable=True),
        sa.Column("payload_template", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
        sa.Column("last_triggered_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("failure_count", sa.Integer(), server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=NOW),
        sa.PrimaryKeyConstraint("id", name="pk_webhook_configs"),
    )
    op.create_index("ix_webhook_configs_tenant_id", "webhook_configs", ["tenant_id"])

    # --- notification_logs (FK -> webhook_configs, approval_requests) ---
    op.create_table(
        "notification_logs",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("tenant_id", sa.Uuid(), nullable=False),
        sa.Column("channel", sa.String(50), nullable=False),
        sa.Column("event_type", sa.String(50), nullable=False),
        sa.Column("recipient", sa.String(255), nullable=False),
        sa.Column("webhook_id", sa.Uuid(), nullable=True),
        sa.Column("approval_request_id", sa.Uuid(), nullable=True),
        sa.Column("payload", sa.JSON(), nullable=True),
        sa.Column("status", sa.String(50), nullable=False, server_default="pending"),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_notification_logs"),
        sa.ForeignKeyConstraint(
            ["webhook_id"], ["webhook_configs.id"],
            name="fk_notification_logs_webhook_id",
            ondelete="SET NULL",
        ),
        sa.ForeignKeyConstraint(
            ["approval_request_id"], ["approval_requests.id"],
            name="fk_notification_logs_approval_request_id",
            ondelete="SET NULL",
        ),
    )
    op.create_index("ix_notification_logs_tenant_id", "notification_logs", ["tenant_id"])
    op.create_index("ix_notification_logs_approval_request_id", "notification_logs", ["approval_request_id"])
    op.create_index("ix_notification_logs_created_at", "notification_logs", ["created_at"])

    if _is_postgresql():
        op.execute("""
            CREATE OR REPLACE FUNCTION prevent_audit_log_change()
            RETURNS TRIGGER AS $trigger$
            BEGIN
                RAISE EXCEPTION 'Audit logs are immutable. Record ID: %', OLD.id;
            END;
            $trigger$ LANGUAGE plpgsql;
        """)
        op.execute("""
            CREATE TRIGGER audit_logs_prevent_update
            BEFORE UPDATE ON audit_logs
            FOR EACH ROW
            EXECUTE FUNCTION prevent_audit_log_change();
        """)
        op.execute("""
            CREATE TRIGGER audit_logs_prevent_delete
            BEFORE DELETE ON audit_logs
            FOR EACH ROW
            EXECUTE FUNCTION prevent_audit_log_change();
        """)


def downgrade() -> None:
    """Drop all tables in reverse dependency order."""
    if _is_postgresql():
        op.execute("DROP TRIGGER IF EXISTS audit_logs_prevent_update ON audit_logs;")
        op.execute("DROP TRIGGER IF EXISTS audit_logs_prevent_delete ON audit_logs;")
        op.execute("DROP FUNCTION IF EXISTS prevent_audit_log_change();")

    op.drop_table("notification_logs")
    op.drop_table("webhook_configs")
    op.drop_table("audit_logs")
    op.drop_table("approval_transitions")
    op.drop_table("approval_requests")
    op.drop_table("workflow_templates")
