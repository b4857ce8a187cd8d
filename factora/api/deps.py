"""
Shared FastAPI dependencies.

There is no authentication layer: the actor recorded in audit_log is whatever
the caller states in X-Actor-Id, which mutating endpoints require.
"""
from __future__ import annotations

from typing import Iterator, Optional
from uuid import UUID

from fastapi import Depends, Header, HTTPException, Request
from sqlalchemy.orm import Session, sessionmaker

from factora.core.config import Settings
from factora.core.errors import UnknownModel
from factora.models.database import get_session_factory, get_snapshot_session_factory
from factora.services.unit_of_work import UnitOfWork


def session_factory() -> sessionmaker[Session]:
    return get_session_factory()


def snapshot_session_factory() -> sessionmaker[Session]:
    return get_snapshot_session_factory()


def get_db(factory: sessionmaker[Session] = Depends(session_factory)) -> Iterator[Session]:
    """One read session per request."""
    with factory() as session:
        yield session


def client_info(request: Request) -> Optional[str]:
    host = request.client.host if request.client else None
    agent = request.headers.get("user-agent")
    parts = [p for p in (host, agent) if p]
    return " | ".join(parts) or None


def require_actor(x_actor_id: Optional[str] = Header(None)) -> str:
    if not x_actor_id or not x_actor_id.strip():
        raise HTTPException(status_code=400, detail="X-Actor-Id header is required for changes")
    return x_actor_id.strip()


def get_uow(
    request: Request,
    actor: str = Depends(require_actor),
    factory: sessionmaker[Session] = Depends(session_factory),
) -> Iterator[UnitOfWork]:
    """
    One audited unit of work per mutating request. Endpoints commit
    explicitly before returning; an exception rolls everything back.
    """
    with UnitOfWork(changed_by=actor, client_info=client_info(request), session_factory=factory) as uow:
        yield uow


def resolve_model_id(model_id: Optional[UUID], settings: Settings) -> UUID:
    """The only place the configured active model is applied."""
    resolved = model_id or settings.active_model_id
    if resolved is None:
        raise UnknownModel("<no active model configured>")
    return resolved
