"""
Row-level change capture for tracked tables.

Every ORM entity that mixes in ``Audited`` gets an audit_log row appended on
the *same connection* (hence the same transaction) whenever the flush
inserts, updates or deletes it. This is the Python counterpart of the
per-table audit triggers: no committed mutation of a tracked table can exist
without its audit entry, and an audit failure aborts the flush.

The actor comes from ``session.info["changed_by"]`` (set by UnitOfWork);
a flush of a tracked entity without an actor is refused.
"""
from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal

import structlog
from sqlalchemy import event, inspect
from sqlalchemy.orm import object_session

from factora.core.errors import AuditWriteFailure

logger = structlog.get_logger()


class Audited:
    """Mixin marking an entity as a tracked table."""


def _json_safe(value):
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    return value


def row_snapshot(target, previous: bool = False) -> dict:
    """
    Column-name → JSON-safe value for one row.
    previous=True reconstructs the pre-flush values from attribute history.
    """
    state = inspect(target)
    snapshot = {}
    for attr in state.mapper.column_attrs:
        value = getattr(target, attr.key)
        if previous:
            history = state.attrs[attr.key].history
            if history.deleted:
                value = history.deleted[0]
            elif history.unchanged:
                value = history.unchanged[0]
        snapshot[attr.columns[0].name] = _json_safe(value)
    return snapshot


def _has_column_changes(target) -> bool:
    state = inspect(target)
    return any(state.attrs[a.key].history.has_changes() for a in state.mapper.column_attrs)


def _capture(operation: str, connection, target) -> None:
    from factora.services import audit_log

    table_name = target.__table__.name
    session = object_session(target)
    info = session.info if session is not None else {}
    changed_by = info.get("changed_by")
    if not changed_by:
        logger.error("audit_actor_missing", table_name=table_name, operation=operation)
        raise AuditWriteFailure(
            f"Refusing {operation} on {table_name}: no actor bound to the unit of work",
            table_name=table_name,
        )

    if operation == "INSERT":
        old_data, new_data = None, row_snapshot(target)
    elif operation == "UPDATE":
        old_data, new_data = row_snapshot(target, previous=True), row_snapshot(target)
    else:
        old_data, new_data = row_snapshot(target, previous=True), None

    try:
        audit_log.record_change(
            connection,
            table_name=table_name,
            operation=operation,
            old_data=old_data,
            new_data=new_data,
            changed_by=changed_by,
            client_info=info.get("client_info"),
        )
    except AuditWriteFailure:
        raise
    except Exception as e:
        logger.error("audit_write_failed", table_name=table_name, operation=operation, error=str(e))
        raise AuditWriteFailure(
            f"Audit write for {operation} on {table_name} failed: {e}",
            table_name=table_name,
        ) from e


@event.listens_for(Audited, "after_insert", propagate=True)
def _after_insert(mapper, connection, target):
    _capture("INSERT", connection, target)


@event.listens_for(Audited, "after_update", propagate=True)
def _after_update(mapper, connection, target):
    # after_update also fires for dirty objects with no net column change
    if _has_column_changes(target):
        _capture("UPDATE", connection, target)


@event.listens_for(Audited, "after_delete", propagate=True)
def _after_delete(mapper, connection, target):
    _capture("DELETE", connection, target)
