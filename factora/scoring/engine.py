"""
Score Evaluator

Maps (registry snapshot, factor_key → value) to a score and a risk band:
  1. Weighted sum over factors declared in the model AND supplied
  2. Optional clamp into the configured coverage range (policy)
  3. Band selection (deterministic under overlapping bands)

Pure: no I/O and no hidden state. The caller reads the snapshot (all factors
and all bands of one model, same transaction) and passes it in, so a
concurrent upsert can never leave half the new weights visible here.
"""
from __future__ import annotations

import math
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Mapping, Optional

import structlog

from factora.core.config import ClampPolicy, Settings
from factora.core.deadline import Deadline
from factora.core.errors import OperationTimeout
from factora.schemas.registry import RegistrySnapshot
from factora.schemas.scoring import (
    UNCLASSIFIED_RECOMMENDATION,
    BatchSimulationResult,
    FactorContribution,
    FactorValue,
    ScenarioOutcome,
    ScoreResult,
    ScoreWarning,
    SimulationResult,
    WarningCode,
)
from factora.scoring.bands import select_band

logger = structlog.get_logger()

# Float noise from weight × value products is trimmed before classification
SCORE_PRECISION = 6


@dataclass(frozen=True)
class ScoringPolicy:
    range_min: float = 0.0
    range_max: float = 1000.0
    clamp: ClampPolicy = ClampPolicy.NONE

    @classmethod
    def from_settings(cls, settings: Settings) -> "ScoringPolicy":
        return cls(
            range_min=settings.score_range_min,
            range_max=settings.score_range_max,
            clamp=settings.score_clamp_policy,
        )


def _as_number(value: FactorValue) -> Optional[float]:
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def evaluate(
    snapshot: RegistrySnapshot,
    factor_values: Mapping[str, FactorValue],
    policy: Optional[ScoringPolicy] = None,
    deadline: Optional[Deadline] = None,
) -> ScoreResult:
    """
    Never raises for missing factors (no signal → no contribution) and never
    for an unmatched score (→ unclassified). Raises OperationTimeout if the
    deadline expires; a half-computed score is never returned.
    """
    t0 = time.perf_counter_ns()
    policy = policy or ScoringPolicy()
    deadline = deadline or Deadline.unbounded("evaluation")
    deadline.check("start")

    # ── Step 1: Weighted sum over declared ∩ supplied ──
    warnings: list[ScoreWarning] = []
    contributions: list[FactorContribution] = []
    used: list[str] = []
    unused: list[str] = []
    raw_score = 0.0

    for factor in snapshot.factors:
        key = factor.factor_key
        if key not in factor_values:
            unused.append(key)
            continue

        value = _as_number(factor_values[key])
        if value is None:
            unused.append(key)
            warnings.append(ScoreWarning(
                code=WarningCode.INVALID_VALUE,
                factor_key=key,
                message=f"Value {factor_values[key]!r} for {key} is not a finite number; factor ignored",
            ))
            continue

        contribution = factor.weight * value
        raw_score += contribution
        used.append(key)
        contributions.append(FactorContribution(
            factor_key=key,
            weight=factor.weight,
            value=value,
            contribution=round(contribution, SCORE_PRECISION),
        ))

    declared = snapshot.weights
    unclassified = sorted(k for k in factor_values if k not in declared)
    for key in unclassified:
        warnings.append(ScoreWarning(
            code=WarningCode.UNDECLARED_FACTOR,
            factor_key=key,
            message=f"{key} is not declared in model {snapshot.model.name} v{snapshot.model.version}; ignored",
        ))

    deadline.check("weighting")

    # ── Step 2: Clamp (policy) ──
    raw_score = round(raw_score, SCORE_PRECISION)
    score = raw_score
    clamped = False
    if policy.clamp is ClampPolicy.CLAMP:
        score = min(max(raw_score, policy.range_min), policy.range_max)
        clamped = score != raw_score
        if clamped:
            warnings.append(ScoreWarning(
                code=WarningCode.SCORE_CLAMPED,
                message=f"Raw score {raw_score} clamped into [{policy.range_min}, {policy.range_max}]",
            ))

    # ── Step 3: Band ──
    band, candidates = select_band(snapshot.bands, score)
    if len(candidates) > 1:
        warnings.append(ScoreWarning(
            code=WarningCode.OVERLAPPING_BANDS,
            message=f"Score {score} falls in {len(candidates)} overlapping bands; selected {band.band}",
            bands=[b.band for b in candidates],
        ))
    if band is None:
        warnings.append(ScoreWarning(
            code=WarningCode.UNCLASSIFIED_SCORE,
            message=f"Score {score} is outside every band of the model",
        ))

    deadline.check("classification")
    elapsed_ms = int((time.perf_counter_ns() - t0) / 1_000_000)

    logger.info(
        "score_evaluation_complete",
        model_id=str(snapshot.model.id),
        score=score,
        band=band.band if band else None,
        used=len(used),
        unused=len(unused),
        unclassified=len(unclassified),
        warnings=len(warnings),
        elapsed_ms=elapsed_ms,
    )

    return ScoreResult(
        model_id=snapshot.model.id,
        model_version=snapshot.model.version,
        score=score,
        raw_score=raw_score,
        clamped=clamped,
        band=band,
        recommendation=band.recommendation if band else UNCLASSIFIED_RECOMMENDATION,
        used_factors=sorted(used),
        unused_factors=sorted(unused),
        unclassified_factors=unclassified,
        contributions=contributions,
        warnings=warnings,
        evaluated_at=datetime.now(timezone.utc),
        processing_time_ms=elapsed_ms,
    )


def simulate(
    snapshot: RegistrySnapshot,
    base_values: Mapping[str, FactorValue],
    overrides: Mapping[str, FactorValue],
    policy: Optional[ScoringPolicy] = None,
    deadline: Optional[Deadline] = None,
) -> SimulationResult:
    """What-if: the same snapshot scored twice, once with overrides applied on top."""
    original = evaluate(snapshot, base_values, policy, deadline)
    simulated = evaluate(snapshot, {**base_values, **overrides}, policy, deadline)

    original_band = original.band.band if original.band else None
    simulated_band = simulated.band.band if simulated.band else None
    return SimulationResult(
        original=original,
        simulated=simulated,
        overridden_factors=sorted(overrides),
        score_delta=round(simulated.score - original.score, SCORE_PRECISION),
        band_changed=original_band != simulated_band,
    )


def simulate_batch(
    snapshot: RegistrySnapshot,
    base_values: Mapping[str, FactorValue],
    scenarios: Mapping[str, Mapping[str, FactorValue]],
    policy: Optional[ScoringPolicy] = None,
    deadline: Optional[Deadline] = None,
) -> BatchSimulationResult:
    """
    Every named override set scored against the same snapshot. A scenario
    that fails is reported in its own slot; the deadline still bounds the
    whole batch.
    """
    batch_id = uuid.uuid4()
    results: dict[str, ScenarioOutcome] = {}
    for name, overrides in scenarios.items():
        try:
            simulation = simulate(snapshot, base_values, overrides, policy, deadline)
        except OperationTimeout:
            raise
        except Exception as e:
            logger.warning("scenario_simulation_failed", batch_id=str(batch_id), scenario=name, error=str(e))
            results[name] = ScenarioOutcome(
                scenario_name=name, status="error", error=f"Scenario simulation failed: {e}",
            )
            continue
        results[name] = ScenarioOutcome(scenario_name=name, status="ok", simulation=simulation)

    logger.info(
        "batch_simulation_complete",
        batch_id=str(batch_id),
        model_id=str(snapshot.model.id),
        scenarios=len(results),
        failed=sum(1 for r in results.values() if r.status == "error"),
    )
    return BatchSimulationResult(
        batch_id=batch_id,
        model_id=snapshot.model.id,
        model_version=snapshot.model.version,
        batch_timestamp=datetime.now(timezone.utc),
        scenarios_processed=len(scenarios),
        results=results,
    )
