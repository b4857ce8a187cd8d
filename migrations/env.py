"""Alembic migration environment.

The database URL comes from the application settings (DATABASE_URL), so
migrations and the service always target the same database:
    postgresql+psycopg2://...   (production)
    sqlite:///./factora.db      (local)
"""
from logging.config import fileConfig

from sqlalchemy import engine_from_config, pool
from alembic import context

from factora.core.config import get_settings
from factora.models.database import Base
from factora.models import audit_log, persona, registry  # noqa: F401  (populate Base.metadata)

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

config.set_main_option("sqlalchemy.url", get_settings().database_url)

target_metadata = Base.metadata


def run_migrations_online() -> None:
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            render_as_batch=connection.dialect.name == "sqlite",
        )
        with context.begin_transaction():
            context.run_migrations()


run_migrations_online()
