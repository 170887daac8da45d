"""Alembic environment for the policy clause schema.

The database URL comes from application settings, never from alembic.ini.
"""

from logging.config import fileConfig

from alembic import context

from policyrag.config import get_settings
from policyrag.db.engine import create_engine_from_settings
from policyrag.db.models import Base

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def run_migrations_offline() -> None:
    """Emit SQL to stdout without connecting."""
    engine = create_engine_from_settings(get_settings())
    context.configure(
        url=engine.url.render_as_string(hide_password=False),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Apply migrations over a sync connection (async drivers are normalized away)."""
    connectable = create_engine_from_settings(get_settings())

    with connectable.connect() as connection:
        context.configure(connection=connection, target_metadata=target_metadata)

        with context.begin_transaction():
            context.run_migrations()

    connectable.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
