"""
Audit trail payloads.

Entries handed out by the audit store are frozen value objects: there is no
way to alter old_data / new_data / changed_at through them.
"""
from __future__ import annotations

import base64
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class AuditOperation(str, Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class AuditLogEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    table_name: str
    operation: AuditOperation
    old_data: Optional[dict[str, Any]] = None
    new_data: Optional[dict[str, Any]] = None
    changed_by: str
    changed_at: datetime
    client_info: Optional[str] = None


class AuditCursor(BaseModel):
    """Keyset position (changed_at, id); encoded as an opaque token for API callers."""
    model_config = ConfigDict(frozen=True)

    changed_at: datetime
    id: int

    @classmethod
    def after(cls, entry: AuditLogEntry) -> "AuditCursor":
        return cls(changed_at=entry.changed_at, id=entry.id)

    def encode(self) -> str:
        raw = f"{self.changed_at.isoformat()}|{self.id}".encode("utf-8")
        return base64.urlsafe_b64encode(raw).decode("ascii")

    @classmethod
    def decode(cls, token: str) -> "AuditCursor":
        try:
            raw = base64.urlsafe_b64decode(token.encode("ascii")).decode("utf-8")
            changed_at, entry_id = raw.rsplit("|", 1)
            ts = datetime.fromisoformat(changed_at)
        except ValueError as e:
            raise ValueError(f"Malformed audit cursor: {token!r}") from e
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=timezone.utc)
        return cls(changed_at=ts, id=int(entry_id))


class AuditFilter(BaseModel):
    table_name: Optional[str] = None
    operation: Optional[AuditOperation] = None
    changed_by: Optional[str] = None
    changed_from: Optional[datetime] = Field(None, description="Inclusive lower bound on changed_at")
    changed_to: Optional[datetime] = Field(None, description="Exclusive upper bound on changed_at")


class AuditPage(BaseModel):
    entries: list[AuditLogEntry]
    next_cursor: Optional[str] = Field(None, description="Pass back as ?cursor= to continue; null when exhausted")


class AuditSummary(BaseModel):
    total_entries: int
    entries_last_30d: int
    by_table: dict[str, int]
    by_operation: dict[str, int]
    distinct_actors: int
    latest_change_at: Optional[datetime] = None
