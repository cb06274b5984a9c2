"""initial_report_workflow_schema

Create reports, report_corrections, numbering sequences, form_templates,
users and audit_trail.

Revision ID: 5f2c9a1d7e30
Revises:
Create Date: 2026-10-18 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "5f2c9a1d7e30"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    if "reports" not in existing_tables:
        op.create_table(
            "reports",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("form_type", sa.String(length=30), nullable=False),
            sa.Column("form_number", sa.String(length=50), nullable=True),
            sa.Column("report_number", sa.String(length=50), nullable=True),
            sa.Column("client_code", sa.String(length=20), nullable=True),
            sa.Column("status", sa.String(length=60), nullable=False, server_default="DRAFT"),
            sa.Column("version", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("data", sa.JSON(), nullable=False),
            sa.Column("created_by", sa.String(length=64), nullable=True),
            sa.Column("updated_by", sa.String(length=64), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("locked_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("form_number"),
            sa.UniqueConstraint("report_number"),
        )
        op.create_index("idx_report_form_status", "reports", ["form_type", "status"])
        op.create_index("idx_report_client", "reports", ["client_code"])

    if "report_corrections" not in existing_tables:
        op.create_table(
            "report_corrections",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("report_id", sa.String(length=36), nullable=False),
            sa.Column("field_key", sa.String(length=200), nullable=False),
            sa.Column("message", sa.Text(), nullable=False),
            sa.Column("status", sa.String(length=10), nullable=False, server_default="OPEN"),
            sa.Column("old_value", sa.JSON(), nullable=True),
            sa.Column("requested_by_user_id", sa.String(length=64), nullable=True),
            sa.Column("requested_by_role", sa.String(length=20), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("resolved_by_user_id", sa.String(length=64), nullable=True),
            sa.Column("resolution_note", sa.Text(), nullable=True),
            sa.ForeignKeyConstraint(["report_id"], ["reports.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("idx_correction_report_status", "report_corrections", ["report_id", "status"])
        op.create_index("idx_correction_field", "report_corrections", ["report_id", "field_key"])

    if "client_sequences" not in existing_tables:
        op.create_table(
            "client_sequences",
            sa.Column("client_code", sa.String(length=20), nullable=False),
            sa.Column("last_number", sa.Integer(), nullable=False, server_default="0"),
            sa.PrimaryKeyConstraint("client_code"),
        )

    if "lab_report_sequences" not in existing_tables:
        op.create_table(
            "lab_report_sequences",
            sa.Column("department", sa.String(length=10), nullable=False),
            sa.Column("last_number", sa.Integer(), nullable=False, server_default="0"),
            sa.PrimaryKeyConstraint("department"),
        )

    if "form_templates" not in existing_tables:
        op.create_table(
            "form_templates",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("form_type", sa.String(length=30), nullable=False),
            sa.Column("client_code", sa.String(length=20), nullable=True),
            sa.Column("data", sa.JSON(), nullable=False),
            sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("created_by", sa.String(length=64), nullable=True),
            sa.Column("updated_by", sa.String(length=64), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("client_code", "form_type", "name", name="uq_template_client_form_name"),
        )
        op.create_index("idx_template_form_type", "form_templates", ["form_type"])
        op.create_index("ix_form_templates_client_code", "form_templates", ["client_code"])

    if "users" not in existing_tables:
        op.create_table(
            "users",
            sa.Column("id", sa.String(length=64), nullable=False),
            sa.Column("email", sa.String(length=200), nullable=True),
            sa.Column("full_name", sa.String(length=200), nullable=True),
            sa.Column("role", sa.String(length=20), nullable=False),
            sa.Column("client_code", sa.String(length=20), nullable=True),
            sa.Column("password_hash", sa.String(length=256), nullable=True),
            sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("email"),
        )

    if "audit_trail" not in existing_tables:
        op.create_table(
            "audit_trail",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("entity", sa.String(length=30), nullable=False),
            sa.Column("entity_id", sa.String(length=36), nullable=False),
            sa.Column("action", sa.String(length=60), nullable=False),
            sa.Column("user_id", sa.String(length=64), nullable=True),
            sa.Column("role", sa.String(length=20), nullable=True),
            sa.Column("reason", sa.Text(), nullable=True),
            sa.Column("changes_json", sa.Text(), nullable=True),
            sa.Column("ip_address", sa.String(length=64), nullable=True),
            sa.Column("request_id", sa.String(length=64), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("idx_audit_entity", "audit_trail", ["entity", "entity_id"])
        op.create_index("idx_audit_user", "audit_trail", ["user_id"])
        op.create_index("idx_audit_action", "audit_trail", ["action"])
        op.create_index("idx_audit_ts", "audit_trail", ["created_at"])


def downgrade():
    for table in (
        "audit_trail", "users", "form_templates", "lab_report_sequences",
        "client_sequences", "report_corrections", "reports",
    ):
        op.drop_table(table)
