"""
Personas, their transactions and their recorded credit scores.

POST/GET /v1/personas                      → create / list
GET/PATCH /v1/personas/{id}                → read / rename
POST/GET /v1/personas/{id}/transactions    → record / list (newest first)
POST/GET /v1/personas/{id}/scores          → evaluate + record / history
GET  /v1/personas/{id}/scores/trend        → monthly averages
"""
from __future__ import annotations

from typing import Optional
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from factora.api.deps import get_db, get_uow, resolve_model_id
from factora.core.config import Settings, get_settings
from factora.core.deadline import Deadline
from factora.schemas.persona import (
    CreditScoreOut, CreditScoreRequest, PersonaCreate, PersonaOut, PersonaRename,
    RecordedScore, ScoreTrend, TransactionCreate, TransactionOut,
)
from factora.services import credit_scores, persona_store
from factora.services.unit_of_work import UnitOfWork

logger = structlog.get_logger()
router = APIRouter(prefix="/v1/personas", tags=["personas"])


@router.post("", response_model=PersonaOut, status_code=201)
def create_persona(body: PersonaCreate, uow: UnitOfWork = Depends(get_uow)):
    persona = persona_store.create_persona(uow.session, body.display_name, body.external_ref)
    uow.commit()
    return persona


@router.get("", response_model=list[PersonaOut])
def list_personas(
    limit: int = Query(100, gt=0, le=1000),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    return persona_store.list_personas(db, limit=limit, offset=offset)


@router.get("/{persona_id}", response_model=PersonaOut)
def get_persona(persona_id: UUID, db: Session = Depends(get_db)):
    return persona_store.get_persona(db, persona_id)


@router.patch("/{persona_id}", response_model=PersonaOut)
def rename_persona(persona_id: UUID, body: PersonaRename, uow: UnitOfWork = Depends(get_uow)):
    persona = persona_store.rename_persona(uow.session, persona_id, body.display_name)
    uow.commit()
    return persona


# ── Transactions ──

@router.post("/{persona_id}/transactions", response_model=TransactionOut, status_code=201)
def record_transaction(persona_id: UUID, body: TransactionCreate, uow: UnitOfWork = Depends(get_uow)):
    tx = persona_store.record_transaction(
        uow.session, persona_id, body.amount, body.category, body.occurred_at, body.description,
    )
    uow.commit()
    return tx


@router.get("/{persona_id}/transactions", response_model=list[TransactionOut])
def list_transactions(
    persona_id: UUID,
    limit: int = Query(100, gt=0, le=1000),
    db: Session = Depends(get_db),
):
    return persona_store.list_transactions(db, persona_id, limit=limit)


# ── Credit scores ──

@router.post("/{persona_id}/scores", response_model=RecordedScore, status_code=201)
def record_score(
    persona_id: UUID,
    body: CreditScoreRequest,
    uow: UnitOfWork = Depends(get_uow),
    settings: Settings = Depends(get_settings),
):
    model_id = resolve_model_id(body.model_id, settings)
    deadline = Deadline(
        body.timeout_ms if body.timeout_ms is not None else settings.evaluation_timeout_ms, "evaluation",
    )
    record, result = credit_scores.compute_and_record(
        uow.session, persona_id, model_id, body.factor_values, deadline=deadline, settings=settings,
    )
    uow.commit()
    return RecordedScore(record=record, result=result)


@router.get("/{persona_id}/scores", response_model=list[CreditScoreOut])
def score_history(
    persona_id: UUID,
    model_id: Optional[UUID] = None,
    limit: int = Query(50, gt=0, le=500),
    db: Session = Depends(get_db),
):
    return credit_scores.history(db, persona_id, model_id=model_id, limit=limit)


@router.get("/{persona_id}/scores/trend", response_model=ScoreTrend)
def score_trend(
    persona_id: UUID,
    model_id: Optional[UUID] = None,
    months: int = Query(6, ge=1, le=60),
    db: Session = Depends(get_db),
):
    return credit_scores.trend(db, persona_id, model_id=model_id, months=months)
