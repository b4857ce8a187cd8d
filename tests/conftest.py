"""
Shared fixtures: an in-memory SQLite database per test, built from the ORM
metadata (including the audit_log immutability triggers).
"""
import uuid

import pytest
from sqlalchemy.orm import sessionmaker

from factora.core.config import Settings
from factora.models import audit_log, persona, registry  # noqa: F401  (populate Base.metadata)
from factora.models.database import Base, make_engine
from factora.services import model_registry
from factora.services.unit_of_work import UnitOfWork

ACTOR = "analyst@factora.test"


@pytest.fixture
def engine():
    engine = make_engine("sqlite://")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def settings():
    return Settings(_env_file=None, database_url="sqlite://", app_env="test")


@pytest.fixture
def uow(session_factory):
    """Factory for audited units of work bound to the test database."""
    def _uow(actor: str = ACTOR, client_info: str = "pytest") -> UnitOfWork:
        return UnitOfWork(changed_by=actor, client_info=client_info, session_factory=session_factory)
    return _uow


@pytest.fixture
def simple_model(uow) -> uuid.UUID:
    """Two factors, bands A-D over 0-1000 with integer edges."""
    with uow() as u:
        model = model_registry.create_model(u.session, name="Simple", version="1.0")
        model_registry.upsert_factor(u.session, model.id, "tx_6m_count", 0.05)
        model_registry.upsert_factor(u.session, model.id, "days_since_last_tx", -0.10)
        model_registry.upsert_band(u.session, model.id, "A", 800, 1000, "Premium")
        model_registry.upsert_band(u.session, model.id, "B", 650, 799, "Standard")
        model_registry.upsert_band(u.session, model.id, "C", 450, 649, "Basic")
        model_registry.upsert_band(u.session, model.id, "D", 0, 449, "Limited")
    return model.id
