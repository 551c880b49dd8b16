import asyncio
from logging.config import fileConfig

from alembic import context
from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import create_async_engine

from payment_intake import models  # noqa: F401
from payment_intake.config import Settings
from payment_intake.database import Base

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)


def migration_url() -> str:
    """DATABASE_URL (read the same way the service reads it) unless alembic -x url=... is given."""
    return context.get_x_argument(as_dictionary=True).get("url") or Settings.from_env().database_url


def configure(**kwargs) -> None:
    context.configure(target_metadata=Base.metadata, compare_type=True, **kwargs)


def migrate(connection: Connection) -> None:
    configure(connection=connection)
    with context.begin_transaction():
        context.run_migrations()


async def migrate_online() -> None:
    engine = create_async_engine(migration_url(), poolclass=pool.NullPool)
    try:
        async with engine.connect() as connection:
            await connection.run_sync(migrate)
    finally:
        await engine.dispose()


if context.is_offline_mode():
    configure(url=migration_url(), literal_binds=True, dialect_opts={"paramstyle": "named"})
    with context.begin_transaction():
        context.run_migrations()
else:
    asyncio.run(migrate_online())
