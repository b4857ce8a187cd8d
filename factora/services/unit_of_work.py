"""
Unit of work: one transaction holding domain mutations and their audit rows.

    with UnitOfWork(changed_by="ops@factora", client_info="10.1.2.3") as uow:
        model_registry.upsert_factor(uow.session, model_id, "tx_6m_count", 0.05)

A clean exit commits; any exception rolls everything back. Commit failures
surface as AuditWriteFailure: the mutation/audit pair is all-or-nothing.
"""
from __future__ import annotations

from typing import Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from factora.core.errors import AuditImmutable, AuditWriteFailure
from factora.models.database import get_session_factory

logger = structlog.get_logger()


class UnitOfWork:

    def __init__(
        self,
        changed_by: str,
        client_info: Optional[str] = None,
        session_factory: Optional[sessionmaker[Session]] = None,
    ):
        if not changed_by:
            raise ValueError("changed_by is required for an audited unit of work")
        self.changed_by = changed_by
        self.client_info = client_info
        self._session_factory = session_factory
        self.session: Optional[Session] = None
        self._done = False

    def __enter__(self) -> "UnitOfWork":
        factory = self._session_factory or get_session_factory()
        self.session = factory()
        self.session.info["changed_by"] = self.changed_by
        self.session.info["client_info"] = self.client_info
        self._done = False
        return self

    def commit(self) -> None:
        try:
            self.session.commit()
        except (AuditWriteFailure, AuditImmutable):
            self.session.rollback()
            raise
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error("unit_of_work_commit_failed", changed_by=self.changed_by, error=str(e))
            raise AuditWriteFailure(f"Unit of work could not commit: {e}") from e
        finally:
            self._done = True

    def rollback(self) -> None:
        self.session.rollback()
        self._done = True

    def __exit__(self, exc_type, exc, tb):
        try:
            if exc_type is not None:
                self.session.rollback()
            elif not self._done:
                self.commit()
        finally:
            self.session.close()
        return False
