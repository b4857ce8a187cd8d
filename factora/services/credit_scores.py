"""
Credit score ledger: evaluate a persona against a model and keep the result.

The snapshot read and the CreditScore insert share the caller's unit of work,
so the persisted score, its explanation and its audit entry commit together.
The model row stays share-locked until then, so the score always reflects
one committed registry state.
"""
from __future__ import annotations

from collections import defaultdict
from datetime import date, datetime, timezone
from typing import Mapping, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.orm import Session

from factora.core.config import Settings
from factora.core.deadline import Deadline
from factora.core.errors import UnknownPersona
from factora.models.persona import CreditScore, Persona
from factora.models.registry import utcnow
from factora.schemas.persona import CreditScoreOut, ScoreTrend, TrendPoint
from factora.schemas.scoring import FactorValue, ScoreResult
from factora.services.scoring_service import evaluate_in_session

logger = structlog.get_logger()


def _month_start(ts: datetime) -> date:
    return date(ts.year, ts.month, 1)


def _shift_months(month: date, n: int) -> date:
    idx = month.year * 12 + (month.month - 1) + n
    return date(idx // 12, idx % 12 + 1, 1)


def compute_and_record(
    session: Session,
    persona_id,
    model_id,
    factor_values: Mapping[str, FactorValue],
    deadline: Optional[Deadline] = None,
    settings: Optional[Settings] = None,
) -> tuple[CreditScoreOut, ScoreResult]:
    """
    Raises UnknownPersona / UnknownModel / OperationTimeout; nothing is
    persisted in those cases.
    """
    if session.get(Persona, persona_id) is None:
        raise UnknownPersona(persona_id)

    result = evaluate_in_session(session, model_id, factor_values, deadline, settings)
    row = CreditScore(
        persona_id=persona_id,
        model_id=result.model_id,
        score=result.score,
        raw_score=result.raw_score,
        band=result.band.band if result.band else None,
        explanation=result.model_dump(mode="json"),
        computed_at=result.evaluated_at,
    )
    session.add(row)
    session.flush()

    logger.info(
        "credit_score_recorded",
        persona_id=str(persona_id),
        model_id=str(result.model_id),
        score=result.score,
        band=row.band,
    )
    return CreditScoreOut.model_validate(row), result


def history(session: Session, persona_id, model_id=None, limit: int = 50) -> list[CreditScoreOut]:
    """Newest first."""
    if session.get(Persona, persona_id) is None:
        raise UnknownPersona(persona_id)
    stmt = select(CreditScore).where(CreditScore.persona_id == persona_id)
    if model_id is not None:
        stmt = stmt.where(CreditScore.model_id == model_id)
    stmt = stmt.order_by(CreditScore.computed_at.desc(), CreditScore.id).limit(limit)
    return [CreditScoreOut.model_validate(r) for r in session.scalars(stmt)]


def trend(
    session: Session,
    persona_id,
    model_id=None,
    months: int = 6,
    now: Optional[datetime] = None,
) -> ScoreTrend:
    """
    Monthly average score over the last ``months`` calendar months including
    the current one, oldest first. Months without scores are omitted.
    """
    if months < 1:
        raise ValueError("months must be >= 1")
    if session.get(Persona, persona_id) is None:
        raise UnknownPersona(persona_id)

    now = now or utcnow()
    window_start = _shift_months(_month_start(now), -(months - 1))
    since = datetime(window_start.year, window_start.month, 1, tzinfo=timezone.utc)

    stmt = select(CreditScore.score, CreditScore.computed_at).where(
        CreditScore.persona_id == persona_id,
        CreditScore.computed_at >= since,
    )
    if model_id is not None:
        stmt = stmt.where(CreditScore.model_id == model_id)

    buckets: dict[date, list[float]] = defaultdict(list)
    for score, computed_at in session.execute(stmt):
        buckets[_month_start(computed_at)].append(score)

    points = [
        TrendPoint(month=month, average_score=round(sum(scores) / len(scores), 2), count=len(scores))
        for month, scores in sorted(buckets.items())
    ]
    return ScoreTrend(persona_id=persona_id, model_id=model_id, months=months, points=points)
