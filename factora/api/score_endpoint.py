"""
POST /v1/scores/evaluate  → score a factor mapping against a model
POST /v1/scores/simulate  → what-if with overrides (nothing persisted)
POST /v1/scores/simulate/batch → named what-if scenarios against one snapshot

model_id defaults to the configured active model here and only here.
Failures come back as {"status": "error", "error": "UnknownModel" | "Timeout"}.
"""
from __future__ import annotations

from typing import Union

import structlog
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session, sessionmaker

from factora.api.deps import resolve_model_id, snapshot_session_factory
from factora.core.config import Settings, get_settings
from factora.core.errors import UnknownModel
from factora.schemas.scoring import (
    BatchSimulationRequest, BatchSimulationResult, ScoreFailure, ScoreRequest, ScoreResult,
    SimulationRequest, SimulationResult,
)
from factora.services import scoring_service

logger = structlog.get_logger()
router = APIRouter(prefix="/v1/scores", tags=["scores"])

FAILURE_STATUS = {"UnknownModel": 404, "Timeout": 504}


def _failure_response(failure: ScoreFailure) -> JSONResponse:
    return JSONResponse(status_code=FAILURE_STATUS[failure.error], content=failure.model_dump(mode="json"))


@router.post(
    "/evaluate",
    response_model=ScoreResult,
    responses={404: {"model": ScoreFailure}, 504: {"model": ScoreFailure}},
    summary="Evaluate a score and risk band for a factor mapping",
)
def evaluate_score(
    request: ScoreRequest,
    settings: Settings = Depends(get_settings),
    factory: sessionmaker[Session] = Depends(snapshot_session_factory),
) -> Union[ScoreResult, JSONResponse]:
    try:
        model_id = resolve_model_id(request.model_id, settings)
    except UnknownModel as e:
        return _failure_response(ScoreFailure(error=e.code, message=e.message, retryable=False))

    outcome = scoring_service.score(
        model_id, request.factor_values, request.timeout_ms, session_factory=factory, settings=settings,
    )
    if isinstance(outcome, ScoreFailure):
        return _failure_response(outcome)
    return outcome


@router.post(
    "/simulate",
    response_model=SimulationResult,
    responses={404: {"model": ScoreFailure}, 504: {"model": ScoreFailure}},
    summary="Compare a baseline evaluation with one where some factor values are overridden",
)
def simulate_score(
    request: SimulationRequest,
    settings: Settings = Depends(get_settings),
    factory: sessionmaker[Session] = Depends(snapshot_session_factory),
) -> Union[SimulationResult, JSONResponse]:
    try:
        model_id = resolve_model_id(request.model_id, settings)
    except UnknownModel as e:
        return _failure_response(ScoreFailure(error=e.code, message=e.message, retryable=False))

    outcome = scoring_service.simulate(
        model_id, request.base_values, request.overrides, request.timeout_ms,
        session_factory=factory, settings=settings,
    )
    if isinstance(outcome, ScoreFailure):
        return _failure_response(outcome)
    return outcome


@router.post(
    "/simulate/batch",
    response_model=BatchSimulationResult,
    responses={404: {"model": ScoreFailure}, 504: {"model": ScoreFailure}},
    summary="Run several named override scenarios against one registry snapshot",
)
def simulate_batch(
    request: BatchSimulationRequest,
    settings: Settings = Depends(get_settings),
    factory: sessionmaker[Session] = Depends(snapshot_session_factory),
) -> Union[BatchSimulationResult, JSONResponse]:
    try:
        model_id = resolve_model_id(request.model_id, settings)
    except UnknownModel as e:
        return _failure_response(ScoreFailure(error=e.code, message=e.message, retryable=False))

    outcome = scoring_service.simulate_batch(
        model_id, request.base_values, request.scenarios, request.timeout_ms,
        session_factory=factory, settings=settings,
    )
    if isinstance(outcome, ScoreFailure):
        return _failure_response(outcome)
    return outcome
