"""
Scoring service: registry snapshot + evaluator behind one call.

    outcome = score(model_id, {"tx_6m_count": 12, "has_savings_account": True})
    if outcome.status == "ok": ...

Unknown models and expired deadlines come back as ScoreFailure values, not
exceptions, so a failed evaluation can never be read as a low score.
"""
from __future__ import annotations

import time
from typing import Mapping, Optional, Union

import structlog
from sqlalchemy.orm import Session, sessionmaker

from factora.core.config import Settings, get_settings
from factora.core.deadline import Deadline
from factora.core.errors import OperationTimeout, UnknownModel
from factora.core.metrics import EVALUATION_LATENCY, EVALUATIONS
from factora.models.database import get_snapshot_session_factory
from factora.schemas.scoring import (
    BatchSimulationResult, FactorValue, ScoreFailure, ScoreResult, SimulationResult,
)
from factora.scoring import engine
from factora.services import model_registry

logger = structlog.get_logger()


def _failure(e: Union[UnknownModel, OperationTimeout], model_id) -> ScoreFailure:
    EVALUATIONS.labels(outcome=e.code).inc()
    logger.warning("score_evaluation_failed", model_id=str(model_id), error=e.code, message=e.message)
    return ScoreFailure(error=e.code, message=e.message, retryable=e.retryable, model_id=model_id)


def _deadline(timeout_ms: Optional[int], settings: Settings) -> Deadline:
    return Deadline(timeout_ms if timeout_ms is not None else settings.evaluation_timeout_ms, "evaluation")


def evaluate_in_session(
    session: Session,
    model_id,
    factor_values: Mapping[str, FactorValue],
    deadline: Optional[Deadline] = None,
    settings: Optional[Settings] = None,
) -> ScoreResult:
    """Raising variant for callers that already hold a transaction (score ledger)."""
    settings = settings or get_settings()
    snap = model_registry.snapshot(session, model_id, deadline)
    return engine.evaluate(snap, factor_values, engine.ScoringPolicy.from_settings(settings), deadline)


def score(
    model_id,
    factor_values: Mapping[str, FactorValue],
    timeout_ms: Optional[int] = None,
    session_factory: Optional[sessionmaker[Session]] = None,
    settings: Optional[Settings] = None,
) -> Union[ScoreResult, ScoreFailure]:
    settings = settings or get_settings()
    factory = session_factory or get_snapshot_session_factory()
    deadline = _deadline(timeout_ms, settings)

    t0 = time.perf_counter()
    try:
        with factory() as session, session.begin():
            result = evaluate_in_session(session, model_id, factor_values, deadline, settings)
    except (UnknownModel, OperationTimeout) as e:
        return _failure(e, model_id)
    finally:
        EVALUATION_LATENCY.observe(time.perf_counter() - t0)

    EVALUATIONS.labels(outcome="ok" if result.classified else "unclassified").inc()
    return result


def simulate(
    model_id,
    base_values: Mapping[str, FactorValue],
    overrides: Mapping[str, FactorValue],
    timeout_ms: Optional[int] = None,
    session_factory: Optional[sessionmaker[Session]] = None,
    settings: Optional[Settings] = None,
) -> Union[SimulationResult, ScoreFailure]:
    """Both evaluations run against one snapshot; nothing is persisted."""
    settings = settings or get_settings()
    factory = session_factory or get_snapshot_session_factory()
    deadline = _deadline(timeout_ms, settings)

    try:
        with factory() as session, session.begin():
            snap = model_registry.snapshot(session, model_id, deadline)
        result = engine.simulate(
            snap, base_values, overrides, engine.ScoringPolicy.from_settings(settings), deadline,
        )
    except (UnknownModel, OperationTimeout) as e:
        return _failure(e, model_id)

    logger.info(
        "score_simulation_complete",
        model_id=str(model_id),
        overrides=result.overridden_factors,
        score_delta=result.score_delta,
        band_changed=result.band_changed,
    )
    return result


def simulate_batch(
    model_id,
    base_values: Mapping[str, FactorValue],
    scenarios: Mapping[str, Mapping[str, FactorValue]],
    timeout_ms: Optional[int] = None,
    session_factory: Optional[sessionmaker[Session]] = None,
    settings: Optional[Settings] = None,
) -> Union[BatchSimulationResult, ScoreFailure]:
    """Named scenarios against one snapshot; per-scenario errors stay inside the batch."""
    settings = settings or get_settings()
    factory = session_factory or get_snapshot_session_factory()
    deadline = _deadline(timeout_ms, settings)

    try:
        with factory() as session, session.begin():
            snap = model_registry.snapshot(session, model_id, deadline)
        return engine.simulate_batch(
            snap, base_values, scenarios, engine.ScoringPolicy.from_settings(settings), deadline,
        )
    except (UnknownModel, OperationTimeout) as e:
        return _failure(e, model_id)
