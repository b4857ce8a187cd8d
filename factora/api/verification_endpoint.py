"""
GET /v1/verification → advisory infrastructure report (never blocks writes).

A deadline overrun answers 504 (Timeout) instead of a partial report.
"""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session, sessionmaker

from factora.api.deps import session_factory
from factora.core.config import Settings, get_settings
from factora.schemas.verification import VerificationReport
from factora.services.verification import verify_infrastructure

router = APIRouter(prefix="/v1/verification", tags=["verification"])


@router.get("", response_model=VerificationReport)
def run_verification(
    timeout_ms: Optional[int] = Query(None, gt=0),
    factory: sessionmaker[Session] = Depends(session_factory),
    settings: Settings = Depends(get_settings),
):
    return verify_infrastructure(timeout_ms=timeout_ms, session_factory=factory, settings=settings)
