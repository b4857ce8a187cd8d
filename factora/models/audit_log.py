"""
Append-only audit ledger.
Schema: audit_log — columns are exactly the ones the compliance claim relies on.

Immutability is enforced at three levels:
  1. no update/delete path in factora.services.audit_log
  2. ORM guards below (flushes and ORM bulk statements touching audit_log)
  3. database triggers rejecting UPDATE / DELETE (PostgreSQL + SQLite)
"""
from sqlalchemy import (
    DDL, BigInteger, CheckConstraint, Column, DateTime, Integer, JSON, String, Text, event,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Session

from factora.core.errors import AuditImmutable
from factora.models.database import Base

AUDIT_OPERATIONS = ("INSERT", "UPDATE", "DELETE")

AUDIT_COLUMNS = (
    "id", "table_name", "operation", "old_data", "new_data",
    "changed_by", "changed_at", "client_info",
)

Snapshot = JSON(none_as_null=True).with_variant(JSONB(none_as_null=True), "postgresql")


class AuditLog(Base):
    __tablename__ = "audit_log"
    __table_args__ = (
        CheckConstraint(
            "operation IN ('INSERT', 'UPDATE', 'DELETE')",
            name="ck_audit_log_operation",
        ),
    )

    # BIGSERIAL on PostgreSQL; SQLite only autoincrements INTEGER PRIMARY KEY
    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    table_name = Column(String(100), nullable=False, index=True)
    operation = Column(String(6), nullable=False, index=True)
    old_data = Column(Snapshot, nullable=True)
    new_data = Column(Snapshot, nullable=True)
    changed_by = Column(String(200), nullable=False, index=True)
    changed_at = Column(DateTime(timezone=True), nullable=False, index=True)
    client_info = Column(Text, nullable=True)

    def __repr__(self):
        return f"<AuditLog {self.id} {self.operation} {self.table_name} by={self.changed_by}>"


# ── ORM guards ──

@event.listens_for(AuditLog, "before_update")
def _reject_update(mapper, connection, target):
    raise AuditImmutable(f"audit_log entry {target.id} is immutable (UPDATE rejected)", entry_id=target.id)


@event.listens_for(AuditLog, "before_delete")
def _reject_delete(mapper, connection, target):
    raise AuditImmutable(f"audit_log entry {target.id} is immutable (DELETE rejected)", entry_id=target.id)


@event.listens_for(Session, "do_orm_execute")
def _reject_bulk_statements(orm_execute_state):
    if not (orm_execute_state.is_update or orm_execute_state.is_delete):
        return
    mapper = orm_execute_state.bind_mapper
    if mapper is not None and mapper.class_ is AuditLog:
        raise AuditImmutable("audit_log is append-only (bulk UPDATE/DELETE rejected)")


# ── Database triggers ──

PG_IMMUTABILITY_DDL = """
CREATE OR REPLACE FUNCTION audit_log_reject_mutation() RETURNS trigger AS $$
BEGIN
    RAISE EXCEPTION USING MESSAGE = 'audit_log is append-only (' || TG_OP || ' rejected)';
END;
$$ LANGUAGE plpgsql;

CREATE TRIGGER audit_log_append_only
    BEFORE UPDATE OR DELETE ON audit_log
    FOR EACH ROW EXECUTE FUNCTION audit_log_reject_mutation();

CREATE TRIGGER audit_log_no_truncate
    BEFORE TRUNCATE ON audit_log
    FOR EACH STATEMENT EXECUTE FUNCTION audit_log_reject_mutation();
"""

PG_IMMUTABILITY_DROP = """
DROP TRIGGER IF EXISTS audit_log_no_truncate ON audit_log;
DROP TRIGGER IF EXISTS audit_log_append_only ON audit_log;
DROP FUNCTION IF EXISTS audit_log_reject_mutation();
"""

SQLITE_IMMUTABILITY_DDL = (
    """
    CREATE TRIGGER audit_log_no_update BEFORE UPDATE ON audit_log
    BEGIN SELECT RAISE(ABORT, 'audit_log is append-only (UPDATE rejected)'); END
    """,
    """
    CREATE TRIGGER audit_log_no_delete BEFORE DELETE ON audit_log
    BEGIN SELECT RAISE(ABORT, 'audit_log is append-only (DELETE rejected)'); END
    """,
)

event.listen(
    AuditLog.__table__, "after_create",
    DDL(PG_IMMUTABILITY_DDL).execute_if(dialect="postgresql"),
)
for _statement in SQLITE_IMMUTABILITY_DDL:
    event.listen(
        AuditLog.__table__, "after_create",
        DDL(_statement).execute_if(dialect="sqlite"),
    )
