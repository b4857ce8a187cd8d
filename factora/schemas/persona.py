"""
Persona, transaction and credit score ledger payloads.
"""
from __future__ import annotations

from datetime import date, datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from factora.schemas.scoring import FactorValue, ScoreResult


class PersonaCreate(BaseModel):
    display_name: str = Field(min_length=1, max_length=200)
    external_ref: Optional[str] = Field(None, max_length=100)


class PersonaRename(BaseModel):
    display_name: str = Field(min_length=1, max_length=200)


class PersonaOut(BaseModel):
    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: UUID
    display_name: str
    external_ref: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class TransactionCreate(BaseModel):
    amount: float = Field(allow_inf_nan=False)
    category: str = Field(min_length=1, max_length=50)
    description: Optional[str] = None
    occurred_at: datetime


class TransactionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: UUID
    persona_id: UUID
    amount: float
    category: str
    description: Optional[str] = None
    occurred_at: datetime
    created_at: datetime


class CreditScoreRequest(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    model_id: Optional[UUID] = None
    factor_values: dict[str, FactorValue] = Field(default_factory=dict)
    timeout_ms: Optional[int] = Field(None, gt=0)


class CreditScoreOut(BaseModel):
    model_config = ConfigDict(from_attributes=True, frozen=True, protected_namespaces=())

    id: UUID
    persona_id: UUID
    model_id: UUID
    score: float
    raw_score: float
    band: Optional[str] = Field(None, description="null = unclassified")
    explanation: dict[str, Any]
    computed_at: datetime


class TrendPoint(BaseModel):
    month: date = Field(description="First day of the month (UTC)")
    average_score: float
    count: int


class ScoreTrend(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    persona_id: UUID
    model_id: Optional[UUID] = None
    months: int
    points: list[TrendPoint]


class RecordedScore(BaseModel):
    record: CreditScoreOut
    result: ScoreResult
