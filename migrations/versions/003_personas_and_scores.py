"""
003 — personas, transactions, credit_scores

Revision ID: 003
Create Date: 2026-10-18
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB

revision = "003"
down_revision = "002"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "personas",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("display_name", sa.String(200), nullable=False),
        sa.Column("external_ref", sa.String(100), nullable=True, unique=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "transactions",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("persona_id", sa.Uuid, sa.ForeignKey("personas.id"), nullable=False),
        sa.Column("amount", sa.Float, nullable=False),
        sa.Column("category", sa.String(50), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_transactions_persona_occurred", "transactions", ["persona_id", "occurred_at"])

    op.create_table(
        "credit_scores",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("persona_id", sa.Uuid, sa.ForeignKey("personas.id"), nullable=False),
        sa.Column("model_id", sa.Uuid, sa.ForeignKey("scoring_models.id"), nullable=False),
        sa.Column("score", sa.Float, nullable=False),
        sa.Column("raw_score", sa.Float, nullable=False),
        sa.Column("band", sa.String(50), nullable=True),
        sa.Column("explanation", sa.JSON().with_variant(JSONB(), "postgresql"), nullable=False),
        sa.Column("computed_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_credit_scores_persona_computed", "credit_scores", ["persona_id", "computed_at"])
    op.create_index("ix_credit_scores_model_id", "credit_scores", ["model_id"])


def downgrade() -> None:
    op.drop_table("credit_scores")
    op.drop_table("transactions")
    op.drop_table("personas")
