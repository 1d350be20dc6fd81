"""Alembic environment for the points engine.

Migrations are hand-written raw SQL. The ORM mirrors are registered on
Base.metadata only so `alembic check` can flag drift between the two.
"""

import asyncio
from logging.config import fileConfig

from alembic import context
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import create_async_engine

import src.pe_checkin.infrastructure.db_models  # noqa: F401
import src.pe_gateway.user.db_models  # noqa: F401
import src.pe_pdv.infrastructure.db_models  # noqa: F401
import src.pe_points.infrastructure.db_models  # noqa: F401
from config.settings import settings
from src.pe_common.database import Base

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def run_migrations_offline() -> None:
    """Emit SQL to stdout without a database connection."""
    context.configure(
        url=settings.DATABASE_URL,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection: Connection) -> None:
    # CHECK constraints, triggers and partial indexes live only in the SQL
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        compare_server_default=False,
    )
    with context.begin_transaction():
        context.run_migrations()


async def run_async_migrations() -> None:
    connectable = create_async_engine(settings.DATABASE_URL)
    async with connectable.connect() as connection:
        await connection.run_sync(do_run_migrations)
    await connectable.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_async_migrations())
