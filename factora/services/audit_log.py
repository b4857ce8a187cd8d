"""
Audit Log Store — the only write path into audit_log.

record_change() runs on the connection of the mutation it audits, so both
live and die in one transaction. Reads are keyset-paginated on
(changed_at, id): query() is a lazy, restartable iterator; page() serves the
API one page at a time.

There is deliberately no update or delete function in this module.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Iterator, Optional

import structlog
from sqlalchemy import Connection, and_, func, insert, or_, select
from sqlalchemy.orm import Session

from factora.core.errors import AuditWriteFailure, InvalidAuditOperation
from factora.models.audit_log import AUDIT_OPERATIONS, AuditLog
from factora.schemas.audit import (
    AuditCursor, AuditFilter, AuditLogEntry, AuditOperation, AuditPage, AuditSummary,
)

logger = structlog.get_logger()

_table = AuditLog.__table__


def _utc(ts: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything written here is UTC
    return ts if ts.tzinfo is not None else ts.replace(tzinfo=timezone.utc)


def _validate(table_name: str, operation: str, old_data, new_data, changed_by: str) -> None:
    if operation not in AUDIT_OPERATIONS:
        raise InvalidAuditOperation(
            f"operation must be one of {', '.join(AUDIT_OPERATIONS)}, got {operation!r}",
            operation=operation,
        )
    if not table_name:
        raise InvalidAuditOperation("table_name is required")
    if not changed_by:
        raise InvalidAuditOperation("changed_by is required")
    if operation == "INSERT" and (old_data is not None or new_data is None):
        raise InvalidAuditOperation("INSERT requires new_data and no old_data", operation=operation)
    if operation == "DELETE" and (new_data is not None or old_data is None):
        raise InvalidAuditOperation("DELETE requires old_data and no new_data", operation=operation)
    if operation == "UPDATE" and (old_data is None or new_data is None):
        raise InvalidAuditOperation("UPDATE requires both old_data and new_data", operation=operation)


def record_change(
    connection: Connection,
    table_name: str,
    operation: str,
    old_data: Optional[dict],
    new_data: Optional[dict],
    changed_by: str,
    client_info: Optional[str] = None,
) -> AuditLogEntry:
    """
    Append one entry on the caller's connection and return it.
    Never commits: the surrounding unit of work owns the transaction.
    """
    if isinstance(operation, AuditOperation):
        operation = operation.value
    _validate(table_name, operation, old_data, new_data, changed_by)

    changed_at = datetime.now(timezone.utc)
    values = {
        "table_name": table_name,
        "operation": operation,
        "old_data": old_data,
        "new_data": new_data,
        "changed_by": changed_by,
        "changed_at": changed_at,
        "client_info": client_info,
    }
    result = connection.execute(insert(_table).values(**values))
    entry_id = result.inserted_primary_key[0]
    if entry_id is None:
        raise AuditWriteFailure(f"audit_log insert for {table_name} returned no id", table_name=table_name)

    logger.debug("audit_entry_recorded", entry_id=entry_id, table_name=table_name, operation=operation)
    return AuditLogEntry(id=entry_id, **values)


# ═══════════════════════════════════════════════════════════════
# Reads
# ═══════════════════════════════════════════════════════════════

def _to_entry(row: AuditLog) -> AuditLogEntry:
    return AuditLogEntry(
        id=row.id,
        table_name=row.table_name,
        operation=row.operation,
        old_data=row.old_data,
        new_data=row.new_data,
        changed_by=row.changed_by,
        changed_at=_utc(row.changed_at),
        client_info=row.client_info,
    )


def _filtered(filters: AuditFilter):
    stmt = select(AuditLog)
    if filters.table_name:
        stmt = stmt.where(AuditLog.table_name == filters.table_name)
    if filters.operation:
        stmt = stmt.where(AuditLog.operation == filters.operation.value)
    if filters.changed_by:
        stmt = stmt.where(AuditLog.changed_by == filters.changed_by)
    if filters.changed_from:
        stmt = stmt.where(AuditLog.changed_at >= filters.changed_from)
    if filters.changed_to:
        stmt = stmt.where(AuditLog.changed_at < filters.changed_to)
    return stmt


def _fetch_page(
    session: Session, filters: AuditFilter, after: Optional[AuditCursor], limit: int,
) -> list[AuditLogEntry]:
    stmt = _filtered(filters)
    if after is not None:
        stmt = stmt.where(or_(
            AuditLog.changed_at > after.changed_at,
            and_(AuditLog.changed_at == after.changed_at, AuditLog.id > after.id),
        ))
    stmt = stmt.order_by(AuditLog.changed_at, AuditLog.id).limit(limit)
    return [_to_entry(row) for row in session.scalars(stmt)]


def query(
    session: Session,
    filters: Optional[AuditFilter] = None,
    page_size: int = 500,
    after: Optional[AuditCursor] = None,
) -> Iterator[AuditLogEntry]:
    """
    Lazily yield matching entries ordered by changed_at ascending.

    Pages are fetched on demand; to resume an interrupted scan pass
    ``after=AuditCursor.after(last_entry_seen)``.
    """
    filters = filters or AuditFilter()
    cursor = after
    while True:
        batch = _fetch_page(session, filters, cursor, page_size)
        yield from batch
        if len(batch) < page_size:
            return
        cursor = AuditCursor.after(batch[-1])


def page(
    session: Session,
    filters: Optional[AuditFilter] = None,
    cursor: Optional[AuditCursor] = None,
    limit: int = 500,
) -> AuditPage:
    filters = filters or AuditFilter()
    # one extra row tells us whether another page exists
    rows = _fetch_page(session, filters, cursor, limit + 1)
    entries = rows[:limit]
    next_cursor = AuditCursor.after(entries[-1]).encode() if len(rows) > limit else None
    return AuditPage(entries=entries, next_cursor=next_cursor)


def get_entry(session: Session, entry_id: int) -> Optional[AuditLogEntry]:
    row = session.get(AuditLog, entry_id)
    return _to_entry(row) if row is not None else None


def summary(session: Session, now: Optional[datetime] = None) -> AuditSummary:
    now = now or datetime.now(timezone.utc)
    total = session.scalar(select(func.count()).select_from(AuditLog)) or 0
    recent = session.scalar(
        select(func.count()).select_from(AuditLog).where(AuditLog.changed_at >= now - timedelta(days=30))
    ) or 0
    by_table = dict(session.execute(
        select(AuditLog.table_name, func.count()).group_by(AuditLog.table_name)
    ).all())
    by_operation = dict(session.execute(
        select(AuditLog.operation, func.count()).group_by(AuditLog.operation)
    ).all())
    actors = session.scalar(select(func.count(func.distinct(AuditLog.changed_by)))) or 0
    latest = session.scalar(select(func.max(AuditLog.changed_at)))

    return AuditSummary(
        total_entries=total,
        entries_last_30d=recent,
        by_table=by_table,
        by_operation=by_operation,
        distinct_actors=actors,
        latest_change_at=_utc(latest) if latest is not None else None,
    )
