from logging.config import fileConfig
from alembic import context
from dotenv import load_dotenv
import os

load_dotenv()

from config import get_sync_engine
from models import Base

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata

# Tables created by PostgreSQL extensions, never managed here
EXTERNAL_TABLES = {"spatial_ref_sys"}


def sync_database_url() -> str:
    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        raise ValueError("DATABASE_URL environment variable is required for migrations")
    return database_url.replace("postgresql+asyncpg://", "postgresql://").split("?")[0]


def include_object(object, name, type_, reflected, compare_to):
    """Autogenerate only diffs tables that the models declare"""
    if type_ == "table":
        return name not in EXTERNAL_TABLES and (not reflected or name in target_metadata.tables)
    return True


def run_migrations_offline() -> None:
    """Emit SQL for the marketplace schema without a live connection."""
    context.configure(
        url=sync_database_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        include_object=include_object,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Apply migrations through the psycopg2 engine from config."""
    with get_sync_engine().connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
            compare_server_default=True,
            include_object=include_object,
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
