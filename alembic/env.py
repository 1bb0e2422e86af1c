import asyncio
from logging.config import fileConfig

from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config

from alembic import context

# Import all models so Alembic can autogenerate migrations
from bidmarket.database import Base, _CONNECT_ARGS, _DB_URL  # noqa: F401
import bidmarket.models  # noqa: F401

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata

# Hosted Postgres providers create tutorial tables; autogenerate must not drop them
_EXCLUDE_TABLES = {"playing_with_neon"}


def include_object(object, name, type_, reflected, compare_to):
    """Return False for any table that should be invisible to Alembic."""
    if type_ == "table" and name in _EXCLUDE_TABLES:
        return False
    return True


# Same cleaned URL and connect args as the application engine, so
# alembic.ini's placeholder is never used at runtime.
config.set_main_option("sqlalchemy.url", _DB_URL)


def run_migrations_offline() -> None:
    context.configure(
        url=_DB_URL,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        include_object=include_object,
    )
    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection: Connection) -> None:
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        include_object=include_object,
    )
    with context.begin_transaction():
        context.run_migrations()


async def run_async_migrations() -> None:
    connectable = async_engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
        connect_args=_CONNECT_ARGS,
    )
    async with connectable.connect() as connection:
        await connection.run_sync(do_run_migrations)
    await connectable.dispose()


def run_migrations_online() -> None:
    asyncio.run(run_async_migrations())


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
