"""
001 — Scoring model registry: scoring_models, score_factors, risk_bands

Revision ID: 001
Create Date: 2026-10-18
"""
from alembic import op
import sqlalchemy as sa

revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "scoring_models",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("version", sa.String(50), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "score_factors",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("model_id", sa.Uuid, sa.ForeignKey("scoring_models.id"), nullable=False),
        sa.Column("factor_key", sa.String(100), nullable=False),
        sa.Column("weight", sa.Float, nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("model_id", "factor_key", name="uq_score_factors_model_factor"),
    )
    op.create_index("ix_score_factors_model_id", "score_factors", ["model_id"])

    op.create_table(
        "risk_bands",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("model_id", sa.Uuid, sa.ForeignKey("scoring_models.id"), nullable=False),
        sa.Column("band", sa.String(50), nullable=False),
        sa.Column("min_score", sa.Float, nullable=False),
        sa.Column("max_score", sa.Float, nullable=False),
        sa.Column("recommendation", sa.Text, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("model_id", "band", name="uq_risk_bands_model_band"),
        sa.CheckConstraint("min_score <= max_score", name="ck_risk_bands_range"),
    )
    op.create_index("ix_risk_bands_model_id", "risk_bands", ["model_id"])


def downgrade() -> None:
    op.drop_table("risk_bands")
    op.drop_table("score_factors")
    op.drop_table("scoring_models")
