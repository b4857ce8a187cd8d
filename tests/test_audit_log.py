"""
Audit trail: change capture, atomicity, immutability, keyset reads.
"""
from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError
from sqlalchemy import delete, select, text, update
from sqlalchemy.exc import DBAPIError

from factora.core.errors import AuditImmutable, AuditWriteFailure, InvalidAuditOperation
from factora.models.audit_log import AuditLog
from factora.models.registry import ScoreFactor
from factora.schemas.audit import AuditCursor, AuditFilter, AuditOperation
from factora.services import audit_log, model_registry
from factora.services.unit_of_work import UnitOfWork


def _entries(session_factory, **filters):
    with session_factory() as s:
        return list(audit_log.query(s, AuditFilter(**filters)))


class TestChangeCapture:

    def test_insert_update_delete_are_each_recorded(self, uow, session_factory, simple_model):
        with uow(actor="ops@factora") as u:
            model_registry.upsert_factor(u.session, simple_model, "micro_active", 0.09)
        with uow(actor="ops@factora") as u:
            model_registry.upsert_factor(u.session, simple_model, "micro_active", 0.11)
        with uow(actor="ops@factora") as u:
            model_registry.remove_factor(u.session, simple_model, "micro_active")

        entries = [
            e for e in _entries(session_factory, table_name="score_factors", changed_by="ops@factora")
            if (e.new_data or e.old_data)["factor_key"] == "micro_active"
        ]
        assert [e.operation for e in entries] == [AuditOperation.INSERT, AuditOperation.UPDATE, AuditOperation.DELETE]

        insert, change, removal = entries
        assert insert.old_data is None and insert.new_data["weight"] == 0.09
        assert change.old_data["weight"] == 0.09 and change.new_data["weight"] == 0.11
        assert removal.old_data["weight"] == 0.11 and removal.new_data is None
        assert all(e.client_info == "pytest" for e in entries)

    def test_registry_write_also_audits_model_bump(self, uow, session_factory, simple_model):
        with uow() as u:
            model_registry.upsert_band(u.session, simple_model, "E", 1001, 1100, "Extra")
        updates = _entries(session_factory, table_name="scoring_models", operation=AuditOperation.UPDATE)
        assert updates
        assert updates[-1].new_data["id"] == str(simple_model)

    def test_flush_without_actor_is_refused(self, session_factory, simple_model):
        with session_factory() as s:
            s.add(ScoreFactor(model_id=simple_model, factor_key="orphan", weight=1.0))
            with pytest.raises(AuditWriteFailure):
                s.flush()
            s.rollback()

    def test_unit_of_work_requires_actor(self, session_factory):
        with pytest.raises(ValueError):
            UnitOfWork(changed_by="", session_factory=session_factory)


class TestAtomicity:

    def test_failed_audit_write_rolls_back_the_mutation(self, uow, session_factory, simple_model, monkeypatch):
        with session_factory() as s:
            before_entries = len(list(audit_log.query(s)))
            before_weights = {f.factor_key: f.weight for f in model_registry.get_factors(s, simple_model)}

        def _broken(*args, **kwargs):
            raise RuntimeError("audit store unavailable")

        monkeypatch.setattr(audit_log, "record_change", _broken)

        with pytest.raises(AuditWriteFailure):
            with uow() as u:
                model_registry.upsert_factor(u.session, simple_model, "tx_6m_count", 0.99)

        monkeypatch.undo()
        with session_factory() as s:
            after_weights = {f.factor_key: f.weight for f in model_registry.get_factors(s, simple_model)}
            assert after_weights == before_weights
            assert len(list(audit_log.query(s))) == before_entries

    def test_failure_after_mutation_in_same_unit_rolls_back_everything(self, uow, session_factory, simple_model):
        with pytest.raises(RuntimeError):
            with uow() as u:
                model_registry.upsert_factor(u.session, simple_model, "late_payer", -0.2)
                raise RuntimeError("caller failed after the write")

        with session_factory() as s:
            keys = [f.factor_key for f in model_registry.get_factors(s, simple_model)]
        assert "late_payer" not in keys
        assert not [
            e for e in _entries(session_factory, table_name="score_factors")
            if (e.new_data or {}).get("factor_key") == "late_payer"
        ]


class TestImmutability:

    def test_orm_update_of_entry_is_rejected(self, uow, simple_model):
        with pytest.raises(AuditImmutable):
            with uow() as u:
                row = u.session.scalars(select(AuditLog).limit(1)).one()
                row.changed_by = "someone-else"
                u.session.flush()

    def test_orm_delete_of_entry_is_rejected(self, uow, simple_model):
        with pytest.raises(AuditImmutable):
            with uow() as u:
                row = u.session.scalars(select(AuditLog).limit(1)).one()
                u.session.delete(row)
                u.session.flush()

    def test_bulk_update_and_delete_are_rejected(self, session_factory, simple_model):
        with session_factory() as s:
            with pytest.raises(AuditImmutable):
                s.execute(update(AuditLog).values(new_data=None))
            with pytest.raises(AuditImmutable):
                s.execute(delete(AuditLog))

    def test_database_trigger_rejects_raw_sql(self, engine, simple_model):
        with engine.connect() as conn:
            with pytest.raises(DBAPIError, match="append-only"):
                conn.execute(text("UPDATE audit_log SET changed_at = '2000-01-01 00:00:00'"))
            conn.rollback()
            with pytest.raises(DBAPIError, match="append-only"):
                conn.execute(text("DELETE FROM audit_log"))
            conn.rollback()

    def test_returned_entries_are_frozen(self, session_factory, simple_model):
        entry = _entries(session_factory)[0]
        with pytest.raises(ValidationError):
            entry.changed_by = "tampered"


class TestRecordChangeValidation:

    @pytest.mark.parametrize("operation", ["UPSERT", "insert", "", "TRUNCATE"])
    def test_unknown_operation_is_rejected(self, session_factory, operation):
        with session_factory() as s:
            with pytest.raises(InvalidAuditOperation):
                audit_log.record_change(s.connection(), "score_factors", operation, None, {"a": 1}, "tester")

    def test_snapshot_shape_must_match_operation(self, session_factory):
        with session_factory() as s:
            with pytest.raises(InvalidAuditOperation):
                audit_log.record_change(s.connection(), "score_factors", "DELETE", None, {"a": 1}, "tester")
            with pytest.raises(InvalidAuditOperation):
                audit_log.record_change(s.connection(), "score_factors", "UPDATE", {"a": 1}, None, "tester")

    def test_direct_record_change_returns_entry(self, session_factory):
        with session_factory() as s:
            entry = audit_log.record_change(
                s.connection(), "manual_table", AuditOperation.INSERT, None, {"k": "v"}, "tester", "cli",
            )
            assert entry.id > 0
            assert audit_log.get_entry(s, entry.id).new_data == {"k": "v"}
            s.rollback()


class TestQuery:

    def _write_entries(self, session_factory, count: int, start: datetime):
        with session_factory() as s:
            for i in range(count):
                s.execute(AuditLog.__table__.insert().values(
                    table_name="personas" if i % 2 else "transactions",
                    operation="INSERT",
                    old_data=None,
                    new_data={"n": i},
                    changed_by=f"user{i % 3}",
                    changed_at=start + timedelta(minutes=i),
                ))
            s.commit()

    def test_query_is_ordered_and_lazy_across_pages(self, session_factory):
        start = datetime(2026, 1, 1, tzinfo=timezone.utc)
        self._write_entries(session_factory, 25, start)
        with session_factory() as s:
            entries = list(audit_log.query(s, page_size=7))
        assert [e.new_data["n"] for e in entries] == list(range(25))

    def test_query_restarts_after_cursor(self, session_factory):
        start = datetime(2026, 1, 1, tzinfo=timezone.utc)
        self._write_entries(session_factory, 10, start)
        with session_factory() as s:
            first = list(audit_log.query(s, page_size=4))[:3]
            rest = list(audit_log.query(s, page_size=4, after=AuditCursor.after(first[-1])))
        assert [e.new_data["n"] for e in rest] == list(range(3, 10))

    def test_ties_on_changed_at_are_broken_by_id(self, session_factory):
        same = datetime(2026, 2, 1, tzinfo=timezone.utc)
        with session_factory() as s:
            for i in range(5):
                s.execute(AuditLog.__table__.insert().values(
                    table_name="personas", operation="INSERT", new_data={"n": i},
                    changed_by="tie", changed_at=same,
                ))
            s.commit()
        with session_factory() as s:
            entries = list(audit_log.query(s, AuditFilter(changed_by="tie"), page_size=2))
        assert [e.new_data["n"] for e in entries] == [0, 1, 2, 3, 4]

    def test_filters_combine(self, session_factory):
        start = datetime(2026, 1, 1, tzinfo=timezone.utc)
        self._write_entries(session_factory, 12, start)
        entries = _entries(
            session_factory,
            table_name="personas",
            changed_from=start + timedelta(minutes=3),
            changed_to=start + timedelta(minutes=9),
        )
        assert [e.new_data["n"] for e in entries] == [3, 5, 7]

    def test_page_cursor_round_trip(self, session_factory):
        start = datetime(2026, 1, 1, tzinfo=timezone.utc)
        self._write_entries(session_factory, 5, start)
        seen = []
        cursor = None
        with session_factory() as s:
            while True:
                page = audit_log.page(s, cursor=cursor, limit=2)
                seen.extend(e.new_data["n"] for e in page.entries)
                if page.next_cursor is None:
                    break
                cursor = AuditCursor.decode(page.next_cursor)
        assert seen == [0, 1, 2, 3, 4]

    def test_malformed_cursor(self):
        with pytest.raises(ValueError):
            AuditCursor.decode("not-a-cursor")

    def test_summary(self, session_factory):
        now = datetime(2026, 3, 1, tzinfo=timezone.utc)
        self._write_entries(session_factory, 6, now - timedelta(days=60))
        self._write_entries(session_factory, 4, now - timedelta(days=1))
        with session_factory() as s:
            summary = audit_log.summary(s, now=now)
        assert summary.total_entries == 10
        assert summary.entries_last_30d == 4
        assert summary.by_operation == {"INSERT": 10}
        assert summary.by_table == {"personas": 5, "transactions": 5}
        assert summary.distinct_actors == 3
        assert summary.latest_change_at == now - timedelta(days=1) + timedelta(minutes=3)
