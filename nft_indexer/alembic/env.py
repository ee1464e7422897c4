from __future__ import annotations

from alembic import context
from sqlalchemy import engine_from_config, pool

from nft_indexer.app.config import settings
from nft_indexer.app.infrastructure.db.db_base import BaseDB
from nft_indexer.app.infrastructure.db.models.domain import (  # noqa: F401  (register tables)
    collections,
    owners,
    tokens,
    transfers,
)

config = context.config
config.set_main_option("sqlalchemy.url", settings.sync_database_url)

target_metadata = BaseDB.metadata


def run_migrations_offline() -> None:
    context.configure(
        url=settings.sync_database_url,
        target_metadata=target_metadata,
        literal_binds=True,
        include_schemas=True,
    )
    with context.begin_transaction():
        context.run_migrations()


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
            include_schemas=True,
        )
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
