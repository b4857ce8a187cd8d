"""
Persona / transaction store. Every write goes through an audited session
(UnitOfWork), like the registry.
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional

import structlog
from sqlalchemy import select
from sqlalchemy.orm import Session

from factora.core.errors import UnknownPersona
from factora.models.persona import Persona, Transaction
from factora.models.registry import utcnow
from factora.schemas.persona import PersonaOut, TransactionOut

logger = structlog.get_logger()


def _load_persona(session: Session, persona_id) -> Persona:
    persona = session.get(Persona, persona_id)
    if persona is None:
        raise UnknownPersona(persona_id)
    return persona


def create_persona(session: Session, display_name: str, external_ref: Optional[str] = None) -> PersonaOut:
    now = utcnow()
    persona = Persona(display_name=display_name, external_ref=external_ref, created_at=now, updated_at=now)
    session.add(persona)
    session.flush()
    logger.info("persona_created", persona_id=str(persona.id), external_ref=external_ref)
    return PersonaOut.model_validate(persona)


def get_persona(session: Session, persona_id) -> PersonaOut:
    return PersonaOut.model_validate(_load_persona(session, persona_id))


def list_personas(session: Session, limit: int = 100, offset: int = 0) -> list[PersonaOut]:
    rows = session.scalars(
        select(Persona).order_by(Persona.created_at, Persona.display_name).limit(limit).offset(offset)
    )
    return [PersonaOut.model_validate(p) for p in rows]


def rename_persona(session: Session, persona_id, display_name: str) -> PersonaOut:
    persona = _load_persona(session, persona_id)
    persona.display_name = display_name
    persona.updated_at = utcnow()
    session.flush()
    return PersonaOut.model_validate(persona)


def record_transaction(
    session: Session,
    persona_id,
    amount: float,
    category: str,
    occurred_at: datetime,
    description: Optional[str] = None,
) -> TransactionOut:
    _load_persona(session, persona_id)
    tx = Transaction(
        persona_id=persona_id,
        amount=amount,
        category=category,
        description=description,
        occurred_at=occurred_at,
        created_at=utcnow(),
    )
    session.add(tx)
    session.flush()
    logger.info("transaction_recorded", persona_id=str(persona_id), category=category, amount=amount)
    return TransactionOut.model_validate(tx)


def list_transactions(session: Session, persona_id, limit: int = 100) -> list[TransactionOut]:
    """Newest first."""
    _load_persona(session, persona_id)
    rows = session.scalars(
        select(Transaction)
        .where(Transaction.persona_id == persona_id)
        .order_by(Transaction.occurred_at.desc(), Transaction.created_at.desc())
        .limit(limit)
    )
    return [TransactionOut.model_validate(t) for t in rows]
