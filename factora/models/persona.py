"""
Persona / transaction store and the persisted credit score ledger.
Schema: personas, transactions, credit_scores — all tracked (audited).

Transactions are raw material for factor extraction, which happens upstream;
the evaluator never reads them.
"""
import uuid

from sqlalchemy import (
    JSON, Column, DateTime, Float, ForeignKey, Index, String, Text, Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB

from factora.models.auditing import Audited
from factora.models.database import Base
from factora.models.registry import utcnow


class Persona(Audited, Base):
    __tablename__ = "personas"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    display_name = Column(String(200), nullable=False)
    external_ref = Column(String(100), nullable=True, unique=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    def __repr__(self):
        return f"<Persona {self.id} {self.display_name}>"


class Transaction(Audited, Base):
    __tablename__ = "transactions"
    __table_args__ = (
        Index("ix_transactions_persona_occurred", "persona_id", "occurred_at"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    persona_id = Column(Uuid, ForeignKey("personas.id"), nullable=False)
    amount = Column(Float, nullable=False)
    category = Column(String(50), nullable=False)   # purchase | remittance | bill | microcredit ...
    description = Column(Text, nullable=True)
    occurred_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)


class CreditScore(Audited, Base):
    __tablename__ = "credit_scores"
    __table_args__ = (
        Index("ix_credit_scores_persona_computed", "persona_id", "computed_at"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    persona_id = Column(Uuid, ForeignKey("personas.id"), nullable=False)
    model_id = Column(Uuid, ForeignKey("scoring_models.id"), nullable=False, index=True)
    score = Column(Float, nullable=False)
    raw_score = Column(Float, nullable=False)
    band = Column(String(50), nullable=True)        # NULL = unclassified
    explanation = Column(JSON().with_variant(JSONB(), "postgresql"), nullable=False)
    computed_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    def __repr__(self):
        return f"<CreditScore {self.id} persona={self.persona_id} score={self.score} band={self.band}>"
