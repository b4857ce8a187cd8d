"""
Engine / session wiring.

Sessions are synchronous: every operation in the core is a short unit of work
run on FastAPI's worker thread pool (or from a batch job), not a coroutine.

Two session factories are exposed:
  - get_session_factory()           → read/write units of work
  - get_snapshot_session_factory()  → consistent-snapshot reads for evaluation
                                      (REPEATABLE READ on PostgreSQL)

pysqlite only emits BEGIN ahead of DML, so two SELECTs in one "transaction"
can straddle another connection's commit. SQLite engines therefore take over
transaction control and emit BEGIN themselves.
"""
from __future__ import annotations

from functools import lru_cache

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import StaticPool

from factora.core.config import get_settings


class Base(DeclarativeBase):
    pass


def _emit_sqlite_begin(engine: Engine) -> None:
    @event.listens_for(engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN")


def make_engine(database_url: str) -> Engine:
    if database_url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in database_url or database_url in ("sqlite://", "sqlite+pysqlite://"):
            # one shared connection, otherwise every checkout sees an empty DB
            kwargs["poolclass"] = StaticPool
        engine = create_engine(database_url, **kwargs)
        _emit_sqlite_begin(engine)
        return engine
    return create_engine(database_url, pool_pre_ping=True)


def snapshot_bind(engine: Engine) -> Engine:
    if engine.dialect.name == "postgresql":
        return engine.execution_options(isolation_level="REPEATABLE READ")
    return engine


@lru_cache
def get_engine() -> Engine:
    return make_engine(get_settings().database_url)


@lru_cache
def get_session_factory() -> sessionmaker[Session]:
    return sessionmaker(bind=get_engine(), expire_on_commit=False)


@lru_cache
def get_snapshot_session_factory() -> sessionmaker[Session]:
    return sessionmaker(bind=snapshot_bind(get_engine()), expire_on_commit=False)
