from __future__ import annotations

import os
import sys
from logging.config import fileConfig
from pathlib import Path

from alembic import context
from sqlalchemy.engine import Connection, Engine
from dotenv import load_dotenv

# Ensure project root is on path and load environment variables
ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))
load_dotenv(ROOT_DIR / ".env")

from skillraffle.db.engine import DEFAULT_SQLITE_URL, make_engine  # noqa: E402
from skillraffle.db.utils import compare_column_type, resolve_sqlite_url  # noqa: E402
from skillraffle.models import Base  # noqa: E402,F401 - import populates metadata
from skillraffle.models.types import Uint256, UTCDateTime  # noqa: E402

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def _configured_database_url() -> str:
    env_url = os.getenv("DB_URL")
    if env_url:
        return resolve_sqlite_url(env_url, ROOT_DIR)
    return DEFAULT_SQLITE_URL


DATABASE_URL = _configured_database_url()

# Percent signs need to be escaped due to ConfigParser interpolation rules.
config.set_main_option("sqlalchemy.url", DATABASE_URL.replace("%", "%%"))


def _render_item(type_: str, obj, autogen_context):
    """Render the settlement column types through the package module.

    Generated revisions then import ``skillraffle.models.types`` instead of
    falling back to the underlying ``String``/``DateTime`` impl.
    """

    if type_ == "type" and isinstance(obj, (Uint256, UTCDateTime)):
        autogen_context.imports.add("import skillraffle.models.types")
        return f"skillraffle.models.types.{type(obj).__name__}()"
    return False


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode."""

    context.configure(
        url=DATABASE_URL,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=compare_column_type,
        compare_server_default=True,
        render_item=_render_item,
    )

    with context.begin_transaction():
        context.run_migrations()


def _engine() -> Engine:
    return make_engine(database_url=DATABASE_URL)


def run_migrations_online() -> None:
    """Run migrations in 'online' mode."""

    connectable: Engine | Connection = _engine()

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=compare_column_type,
            compare_server_default=True,
            render_item=_render_item,
            render_as_batch=connection.engine.dialect.name == "sqlite",
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
