"""
Audit trail API (read-only; there is no write, update or delete endpoint).

GET /v1/audit          → one keyset page + next_cursor
GET /v1/audit/stream   → every matching entry as NDJSON, fetched lazily
GET /v1/audit/summary  → counts by table / operation, actors, latest change
GET /v1/audit/{id}     → single entry
"""
from __future__ import annotations

from datetime import datetime
from typing import Iterator, Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session, sessionmaker

from factora.api.deps import get_db, session_factory
from factora.core.config import Settings, get_settings
from factora.schemas.audit import (
    AuditCursor, AuditFilter, AuditLogEntry, AuditOperation, AuditPage, AuditSummary,
)
from factora.services import audit_log

logger = structlog.get_logger()
router = APIRouter(prefix="/v1/audit", tags=["audit"])


def audit_filter(
    table_name: Optional[str] = None,
    operation: Optional[AuditOperation] = None,
    changed_by: Optional[str] = None,
    changed_from: Optional[datetime] = Query(None, description="Inclusive"),
    changed_to: Optional[datetime] = Query(None, description="Exclusive"),
) -> AuditFilter:
    return AuditFilter(
        table_name=table_name,
        operation=operation,
        changed_by=changed_by,
        changed_from=changed_from,
        changed_to=changed_to,
    )


@router.get("", response_model=AuditPage)
def list_audit_entries(
    filters: AuditFilter = Depends(audit_filter),
    cursor: Optional[str] = None,
    limit: Optional[int] = Query(None, gt=0),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    try:
        after = AuditCursor.decode(cursor) if cursor else None
    except ValueError as e:
        raise HTTPException(400, str(e))
    page_size = min(limit or settings.audit_page_size, settings.audit_page_max)
    return audit_log.page(db, filters, after, page_size)


@router.get("/stream", summary="All matching entries as newline-delimited JSON")
def stream_audit_entries(
    filters: AuditFilter = Depends(audit_filter),
    factory: sessionmaker[Session] = Depends(session_factory),
    settings: Settings = Depends(get_settings),
):
    def ndjson() -> Iterator[str]:
        # owns its session: the response body outlives request-scoped dependencies
        with factory() as session:
            count = 0
            for entry in audit_log.query(session, filters, page_size=settings.audit_page_size):
                count += 1
                yield entry.model_dump_json() + "\n"
        logger.info("audit_stream_complete", entries=count, table_name=filters.table_name)

    return StreamingResponse(ndjson(), media_type="application/x-ndjson")


@router.get("/summary", response_model=AuditSummary)
def audit_summary(db: Session = Depends(get_db)):
    return audit_log.summary(db)


@router.get("/{entry_id}", response_model=AuditLogEntry)
def get_audit_entry(entry_id: int, db: Session = Depends(get_db)):
    entry = audit_log.get_entry(db, entry_id)
    if entry is None:
        raise HTTPException(404, f"Audit entry {entry_id} not found")
    return entry
