"""
Scoring call payloads.

The outcome of a scoring call is discriminated on ``status``:
  "ok"    → ScoreResult (score, band or unclassified, factor usage)
  "error" → ScoreFailure (UnknownModel | Timeout)
A failure never carries a score, so it cannot be mistaken for a low one.
"""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Annotated, Literal, Optional, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, StrictBool

from factora.schemas.registry import RiskBandOut

FactorValue = Union[StrictBool, float]

UNCLASSIFIED_RECOMMENDATION = "Score falls outside defined risk bands - manual review required"


class WarningCode(str, Enum):
    UNDECLARED_FACTOR = "UNDECLARED_FACTOR"
    INVALID_VALUE = "INVALID_VALUE"
    OVERLAPPING_BANDS = "OVERLAPPING_BANDS"
    SCORE_CLAMPED = "SCORE_CLAMPED"
    UNCLASSIFIED_SCORE = "UNCLASSIFIED_SCORE"


class ScoreWarning(BaseModel):
    code: WarningCode
    message: str
    factor_key: Optional[str] = None
    bands: list[str] = []


class FactorContribution(BaseModel):
    factor_key: str
    weight: float
    value: float
    contribution: float


class ScoreRequest(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    model_id: Optional[UUID] = Field(None, description="Defaults to the configured active model")
    factor_values: dict[str, FactorValue] = Field(default_factory=dict)
    timeout_ms: Optional[int] = Field(None, gt=0)


class ScoreResult(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    status: Literal["ok"] = "ok"
    model_id: UUID
    model_version: str

    score: float = Field(description="Final score (clamped only under the clamp policy)")
    raw_score: float
    clamped: bool = False
    band: Optional[RiskBandOut] = Field(None, description="null = unclassified")
    recommendation: str

    used_factors: list[str] = Field(description="Declared and supplied: these drove the score")
    unused_factors: list[str] = Field(description="Declared but not supplied: no signal, not zero evidence")
    unclassified_factors: list[str] = Field(description="Supplied but not declared in the model: ignored")
    contributions: list[FactorContribution]
    warnings: list[ScoreWarning] = []

    evaluated_at: datetime
    processing_time_ms: int

    @property
    def classified(self) -> bool:
        return self.band is not None


class ScoreFailure(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    status: Literal["error"] = "error"
    error: Literal["UnknownModel", "Timeout"]
    message: str
    retryable: bool
    model_id: Optional[UUID] = None


ScoreOutcome = Annotated[Union[ScoreResult, ScoreFailure], Field(discriminator="status")]


class SimulationRequest(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    model_id: Optional[UUID] = None
    base_values: dict[str, FactorValue] = Field(default_factory=dict)
    overrides: dict[str, FactorValue] = Field(default_factory=dict)
    timeout_ms: Optional[int] = Field(None, gt=0)


class SimulationResult(BaseModel):
    original: ScoreResult
    simulated: ScoreResult
    overridden_factors: list[str]
    score_delta: float
    band_changed: bool


# ── Batch what-if: named override sets against one snapshot ──

class BatchSimulationRequest(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    model_id: Optional[UUID] = None
    base_values: dict[str, FactorValue] = Field(default_factory=dict)
    scenarios: dict[str, dict[str, FactorValue]] = Field(
        min_length=1, description="scenario name → factor overrides applied on top of base_values",
    )
    timeout_ms: Optional[int] = Field(None, gt=0)


class ScenarioOutcome(BaseModel):
    """One scenario of a batch; a failed scenario never hides the others."""
    scenario_name: str
    status: Literal["ok", "error"]
    simulation: Optional[SimulationResult] = None
    error: Optional[str] = None


class BatchSimulationResult(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    batch_id: UUID
    model_id: UUID
    model_version: str
    batch_timestamp: datetime
    scenarios_processed: int
    results: dict[str, ScenarioOutcome]
