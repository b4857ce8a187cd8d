"""
002 — Append-only audit_log + immutability triggers

Columns are exactly the audited set (id, table_name, operation, old_data,
new_data, changed_by, changed_at, client_info). UPDATE / DELETE (and TRUNCATE
on PostgreSQL) are rejected by triggers, independently of the ORM guards.

Revision ID: 002
Create Date: 2026-10-18
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB

from factora.models.audit_log import (
    PG_IMMUTABILITY_DDL, PG_IMMUTABILITY_DROP, SQLITE_IMMUTABILITY_DDL,
)

revision = "002"
down_revision = "001"
branch_labels = None
depends_on = None

Snapshot = sa.JSON(none_as_null=True).with_variant(JSONB(none_as_null=True), "postgresql")


def upgrade() -> None:
    op.create_table(
        "audit_log",
        sa.Column("id", sa.BigInteger().with_variant(sa.Integer, "sqlite"), primary_key=True, autoincrement=True),
        sa.Column("table_name", sa.String(100), nullable=False),
        sa.Column("operation", sa.String(6), nullable=False),
        sa.Column("old_data", Snapshot, nullable=True),
        sa.Column("new_data", Snapshot, nullable=True),
        sa.Column("changed_by", sa.String(200), nullable=False),
        sa.Column("changed_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("client_info", sa.Text, nullable=True),
        sa.CheckConstraint("operation IN ('INSERT', 'UPDATE', 'DELETE')", name="ck_audit_log_operation"),
    )
    op.create_index("ix_audit_log_table_name", "audit_log", ["table_name"])
    op.create_index("ix_audit_log_operation", "audit_log", ["operation"])
    op.create_index("ix_audit_log_changed_by", "audit_log", ["changed_by"])
    op.create_index("ix_audit_log_changed_at", "audit_log", ["changed_at"])

    dialect = op.get_bind().dialect.name
    if dialect == "postgresql":
        op.execute(PG_IMMUTABILITY_DDL)
    elif dialect == "sqlite":
        for statement in SQLITE_IMMUTABILITY_DDL:
            op.execute(statement)


def downgrade() -> None:
    dialect = op.get_bind().dialect.name
    if dialect == "postgresql":
        op.execute(PG_IMMUTABILITY_DROP)
    elif dialect == "sqlite":
        op.execute("DROP TRIGGER IF EXISTS audit_log_no_update")
        op.execute("DROP TRIGGER IF EXISTS audit_log_no_delete")
    op.drop_table("audit_log")
