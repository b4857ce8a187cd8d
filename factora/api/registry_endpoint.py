"""
Scoring Model Registry API — models, factors and risk bands.

Endpoints:
  GET  /v1/models                         → list models
  GET  /v1/models/{id}                    → model + factors + bands (one snapshot)
  POST /v1/models                         → create model
  PATCH /v1/models/{id}                   → rename / re-version
  PUT/DELETE /v1/models/{id}/factors/{key}  → upsert / remove factor
  PUT/DELETE /v1/models/{id}/bands/{band}   → upsert / remove band

Every change runs in one audited unit of work (X-Actor-Id required).
Overlapping bands are accepted; GET /v1/verification reports them.
"""
from __future__ import annotations

from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session, sessionmaker

from factora.api.deps import get_db, get_uow, snapshot_session_factory
from factora.schemas.registry import (
    BandUpsert, FactorUpsert, ModelCreate, ModelUpdate,
    RiskBandOut, ScoreFactorOut, ScoringModelOut,
)
from factora.services import model_registry
from factora.services.unit_of_work import UnitOfWork

logger = structlog.get_logger()
router = APIRouter(prefix="/v1/models", tags=["registry"])


class ModelDetail(BaseModel):
    model: ScoringModelOut
    factors: list[ScoreFactorOut]
    bands: list[RiskBandOut]


@router.get("", response_model=list[ScoringModelOut])
def list_models(db: Session = Depends(get_db)):
    return model_registry.list_models(db)


@router.get("/{model_id}", response_model=ModelDetail)
def get_model(model_id: UUID, factory: sessionmaker[Session] = Depends(snapshot_session_factory)):
    # the same read evaluation uses, so the detail view matches what gets scored
    with factory() as session, session.begin():
        snap = model_registry.snapshot(session, model_id)
    return ModelDetail(model=snap.model, factors=list(snap.factors), bands=list(snap.bands))


@router.post("", response_model=ScoringModelOut, status_code=201)
def create_model(body: ModelCreate, uow: UnitOfWork = Depends(get_uow)):
    model = model_registry.create_model(
        uow.session, name=body.name, version=body.version, description=body.description, model_id=body.id,
    )
    uow.commit()
    return model


@router.patch("/{model_id}", response_model=ScoringModelOut)
def update_model(model_id: UUID, body: ModelUpdate, uow: UnitOfWork = Depends(get_uow)):
    changes = body.model_dump(exclude_none=True)
    if not changes:
        raise HTTPException(400, "No fields to update")
    model = model_registry.update_model(uow.session, model_id, **changes)
    uow.commit()
    return model


@router.put("/{model_id}/factors/{factor_key}", response_model=ScoreFactorOut)
def upsert_factor(model_id: UUID, factor_key: str, body: FactorUpsert, uow: UnitOfWork = Depends(get_uow)):
    factor = model_registry.upsert_factor(uow.session, model_id, factor_key, body.weight, body.description)
    uow.commit()
    return factor


@router.delete("/{model_id}/factors/{factor_key}", status_code=204)
def remove_factor(model_id: UUID, factor_key: str, uow: UnitOfWork = Depends(get_uow)):
    if not model_registry.remove_factor(uow.session, model_id, factor_key):
        raise HTTPException(404, f"Factor {factor_key} not found in model {model_id}")
    uow.commit()


@router.put("/{model_id}/bands/{band}", response_model=RiskBandOut)
def upsert_band(model_id: UUID, band: str, body: BandUpsert, uow: UnitOfWork = Depends(get_uow)):
    row = model_registry.upsert_band(
        uow.session, model_id, band, body.min_score, body.max_score, body.recommendation,
    )
    uow.commit()
    return row


@router.delete("/{model_id}/bands/{band}", status_code=204)
def remove_band(model_id: UUID, band: str, uow: UnitOfWork = Depends(get_uow)):
    if not model_registry.remove_band(uow.session, model_id, band):
        raise HTTPException(404, f"Band {band} not found in model {model_id}")
    uow.commit()
