"""
Registry payloads: models, factors, bands, and the read-only snapshot the
evaluator works from.
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class ScoringModelOut(BaseModel):
    model_config = ConfigDict(from_attributes=True, frozen=True, protected_namespaces=())

    id: UUID
    name: str
    version: str = Field(description="Informational; not used for concurrency control")
    description: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class ScoreFactorOut(BaseModel):
    model_config = ConfigDict(from_attributes=True, frozen=True, protected_namespaces=())

    model_id: UUID
    factor_key: str
    weight: float
    description: Optional[str] = None
    updated_at: datetime


class RiskBandOut(BaseModel):
    model_config = ConfigDict(from_attributes=True, frozen=True, protected_namespaces=())

    id: int = Field(description="Insertion order")
    model_id: UUID
    band: str
    min_score: float
    max_score: float
    recommendation: str
    updated_at: datetime

    def contains(self, score: float) -> bool:
        return self.min_score <= score <= self.max_score


class RegistrySnapshot(BaseModel):
    """All factors and all bands of one model as of one instant."""
    model_config = ConfigDict(frozen=True)

    model: ScoringModelOut
    factors: tuple[ScoreFactorOut, ...]
    bands: tuple[RiskBandOut, ...]
    read_at: datetime

    @property
    def weights(self) -> dict[str, float]:
        return {f.factor_key: f.weight for f in self.factors}


# ── Write payloads ──

class ModelCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    version: str = Field(min_length=1, max_length=50)
    description: Optional[str] = None
    id: Optional[UUID] = Field(None, description="Client-chosen id; generated when omitted")


class ModelUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    version: Optional[str] = Field(None, min_length=1, max_length=50)
    description: Optional[str] = None


class FactorUpsert(BaseModel):
    weight: float = Field(allow_inf_nan=False)
    description: Optional[str] = None


class BandUpsert(BaseModel):
    min_score: float = Field(allow_inf_nan=False)
    max_score: float = Field(allow_inf_nan=False)
    recommendation: str = Field(min_length=1)
