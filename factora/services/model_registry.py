"""
Scoring Model Registry — versioned weighted factors + risk bands per model.

Writes are idempotent upserts keyed on (model_id, factor_key) and
(model_id, band). They run inside a UnitOfWork session, so every row they
touch is captured in audit_log by the change-capture hooks. Each write locks
the parent model row (FOR UPDATE where supported) and bumps its updated_at,
so concurrent administrators serialize per model.

Overlapping bands are accepted on purpose: models are curated incrementally
and overlaps are reported by the verification service instead.
"""
from __future__ import annotations

import math
import uuid
from typing import Optional

import structlog
from sqlalchemy import select, text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from factora.core.deadline import Deadline
from factora.core.errors import InvalidRange, OperationTimeout, UnknownModel
from factora.models.registry import RiskBand, ScoreFactor, ScoringModel, utcnow
from factora.schemas.registry import (
    RegistrySnapshot, RiskBandOut, ScoreFactorOut, ScoringModelOut,
)

logger = structlog.get_logger()


def _load_model(session: Session, model_id, lock: bool = False, shared: bool = False) -> ScoringModel:
    stmt = select(ScoringModel).where(ScoringModel.id == model_id)
    if lock:
        stmt = stmt.with_for_update()
    elif shared:
        stmt = stmt.with_for_update(read=True)
    model = session.scalar(stmt)
    if model is None:
        raise UnknownModel(model_id)
    return model


def _band_order():
    return (RiskBand.min_score, RiskBand.max_score, RiskBand.id)


# ═══════════════════════════════════════════════════════════════
# Models
# ═══════════════════════════════════════════════════════════════

def create_model(
    session: Session,
    name: str,
    version: str,
    description: Optional[str] = None,
    model_id: Optional[uuid.UUID] = None,
) -> ScoringModelOut:
    now = utcnow()
    model = ScoringModel(
        id=model_id or uuid.uuid4(),
        name=name,
        version=version,
        description=description,
        created_at=now,
        updated_at=now,
    )
    session.add(model)
    session.flush()
    logger.info("scoring_model_created", model_id=str(model.id), name=name, version=version)
    return ScoringModelOut.model_validate(model)


def update_model(session: Session, model_id, **changes) -> ScoringModelOut:
    model = _load_model(session, model_id, lock=True)
    for field in ("name", "version", "description"):
        if field in changes and changes[field] is not None:
            setattr(model, field, changes[field])
    model.updated_at = utcnow()
    session.flush()
    return ScoringModelOut.model_validate(model)


def list_models(session: Session) -> list[ScoringModelOut]:
    rows = session.scalars(select(ScoringModel).order_by(ScoringModel.created_at, ScoringModel.name))
    return [ScoringModelOut.model_validate(m) for m in rows]


def get_model(session: Session, model_id) -> ScoringModelOut:
    return ScoringModelOut.model_validate(_load_model(session, model_id))


def get_active_model(session: Session, active_model_id) -> ScoringModelOut:
    """
    The active model is whatever id the caller threads through; the default
    comes from configuration at the API boundary, never from module state.
    """
    if active_model_id is None:
        raise UnknownModel("<no active model configured>")
    return get_model(session, active_model_id)


# ═══════════════════════════════════════════════════════════════
# Factors
# ═══════════════════════════════════════════════════════════════

def get_factors(session: Session, model_id) -> list[ScoreFactorOut]:
    _load_model(session, model_id)
    rows = session.scalars(
        select(ScoreFactor).where(ScoreFactor.model_id == model_id).order_by(ScoreFactor.factor_key)
    )
    return [ScoreFactorOut.model_validate(f) for f in rows]


def upsert_factor(
    session: Session,
    model_id,
    factor_key: str,
    weight: float,
    description: Optional[str] = None,
) -> ScoreFactorOut:
    if not factor_key:
        raise ValueError("factor_key is required")
    if not math.isfinite(weight):
        raise ValueError(f"weight for {factor_key} must be finite, got {weight}")

    model = _load_model(session, model_id, lock=True)
    now = utcnow()
    factor = session.scalar(
        select(ScoreFactor).where(ScoreFactor.model_id == model_id, ScoreFactor.factor_key == factor_key)
    )
    if factor is None:
        factor = ScoreFactor(
            model_id=model_id,
            factor_key=factor_key,
            weight=weight,
            description=description,
            created_at=now,
            updated_at=now,
        )
        session.add(factor)
        action = "created"
    else:
        factor.weight = weight
        factor.description = description
        factor.updated_at = now
        action = "updated"

    model.updated_at = now
    session.flush()
    logger.info("score_factor_upserted", model_id=str(model_id), factor_key=factor_key, weight=weight, action=action)
    return ScoreFactorOut.model_validate(factor)


def remove_factor(session: Session, model_id, factor_key: str) -> bool:
    model = _load_model(session, model_id, lock=True)
    factor = session.scalar(
        select(ScoreFactor).where(ScoreFactor.model_id == model_id, ScoreFactor.factor_key == factor_key)
    )
    if factor is None:
        return False
    session.delete(factor)
    model.updated_at = utcnow()
    session.flush()
    logger.info("score_factor_removed", model_id=str(model_id), factor_key=factor_key)
    return True


# ═══════════════════════════════════════════════════════════════
# Bands
# ═══════════════════════════════════════════════════════════════

def get_bands(session: Session, model_id) -> list[RiskBandOut]:
    """Ordered by (min_score, max_score, insertion order): the selection order."""
    _load_model(session, model_id)
    rows = session.scalars(select(RiskBand).where(RiskBand.model_id == model_id).order_by(*_band_order()))
    return [RiskBandOut.model_validate(b) for b in rows]


def upsert_band(
    session: Session,
    model_id,
    band: str,
    min_score: float,
    max_score: float,
    recommendation: str,
) -> RiskBandOut:
    if min_score > max_score:
        raise InvalidRange(band, min_score, max_score)
    if not band:
        raise ValueError("band label is required")

    model = _load_model(session, model_id, lock=True)
    now = utcnow()
    row = session.scalar(select(RiskBand).where(RiskBand.model_id == model_id, RiskBand.band == band))
    if row is None:
        row = RiskBand(
            model_id=model_id,
            band=band,
            min_score=min_score,
            max_score=max_score,
            recommendation=recommendation,
            created_at=now,
            updated_at=now,
        )
        session.add(row)
        action = "created"
    else:
        row.min_score = min_score
        row.max_score = max_score
        row.recommendation = recommendation
        row.updated_at = now
        action = "updated"

    model.updated_at = now
    session.flush()
    logger.info(
        "risk_band_upserted",
        model_id=str(model_id), band=band, min_score=min_score, max_score=max_score, action=action,
    )
    return RiskBandOut.model_validate(row)


def remove_band(session: Session, model_id, band: str) -> bool:
    model = _load_model(session, model_id, lock=True)
    row = session.scalar(select(RiskBand).where(RiskBand.model_id == model_id, RiskBand.band == band))
    if row is None:
        return False
    session.delete(row)
    model.updated_at = utcnow()
    session.flush()
    logger.info("risk_band_removed", model_id=str(model_id), band=band)
    return True


# ═══════════════════════════════════════════════════════════════
# Consistent snapshot for evaluation
# ═══════════════════════════════════════════════════════════════

def snapshot(session: Session, model_id, deadline: Optional[Deadline] = None) -> RegistrySnapshot:
    """
    Model, factors and bands read inside the session's current transaction.

    The model row is read FOR SHARE first. Every registry write holds
    FOR UPDATE on that row until commit, so no upsert can land between the
    factor and band reads, even at READ COMMITTED inside a unit of work.
    SQLite has no row locks; its BEGIN (see models.database) holds the
    shared lock on the whole file instead.
    """
    deadline = deadline or Deadline.unbounded("evaluation")
    deadline.check("snapshot")

    remaining = deadline.remaining_ms()
    if remaining is not None and session.get_bind().dialect.name == "postgresql":
        session.execute(text(f"SET LOCAL statement_timeout = {max(1, int(remaining))}"))

    try:
        model = _load_model(session, model_id, shared=True)
        factors = session.scalars(
            select(ScoreFactor).where(ScoreFactor.model_id == model_id).order_by(ScoreFactor.factor_key)
        ).all()
        bands = session.scalars(
            select(RiskBand).where(RiskBand.model_id == model_id).order_by(*_band_order())
        ).all()
    except OperationalError:
        if deadline.expired:
            raise OperationTimeout(deadline.operation, deadline.timeout_ms, "snapshot")
        raise

    deadline.check("snapshot")
    return RegistrySnapshot(
        model=ScoringModelOut.model_validate(model),
        factors=tuple(ScoreFactorOut.model_validate(f) for f in factors),
        bands=tuple(RiskBandOut.model_validate(b) for b in bands),
        read_at=utcnow(),
    )
