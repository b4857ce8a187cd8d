"""
Scoring model registry tables.
Schema: scoring_models, score_factors, risk_bands — all tracked (audited).
"""
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    CheckConstraint, Column, DateTime, Float, ForeignKey, Integer, String, Text,
    UniqueConstraint, Uuid,
)

from factora.models.auditing import Audited
from factora.models.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ScoringModel(Audited, Base):
    __tablename__ = "scoring_models"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(200), nullable=False)
    version = Column(String(50), nullable=False)   # informational only
    description = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    def __repr__(self):
        return f"<ScoringModel {self.id} {self.name} v{self.version}>"


class ScoreFactor(Audited, Base):
    __tablename__ = "score_factors"
    __table_args__ = (
        UniqueConstraint("model_id", "factor_key", name="uq_score_factors_model_factor"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    model_id = Column(Uuid, ForeignKey("scoring_models.id"), nullable=False, index=True)
    factor_key = Column(String(100), nullable=False)     # e.g. tx_6m_count
    weight = Column(Float, nullable=False)               # signed: sign = direction of effect
    description = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    def __repr__(self):
        return f"<ScoreFactor {self.factor_key}={self.weight} model={self.model_id}>"


class RiskBand(Audited, Base):
    __tablename__ = "risk_bands"
    __table_args__ = (
        UniqueConstraint("model_id", "band", name="uq_risk_bands_model_band"),
        CheckConstraint("min_score <= max_score", name="ck_risk_bands_range"),
    )

    # integer PK doubles as insertion order (last band-selection tie-breaker)
    id = Column(Integer, primary_key=True, autoincrement=True)
    model_id = Column(Uuid, ForeignKey("scoring_models.id"), nullable=False, index=True)
    band = Column(String(50), nullable=False)            # A, B, C, D ...
    min_score = Column(Float, nullable=False)            # inclusive
    max_score = Column(Float, nullable=False)            # inclusive
    recommendation = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    def __repr__(self):
        return f"<RiskBand {self.band} [{self.min_score}, {self.max_score}] model={self.model_id}>"
