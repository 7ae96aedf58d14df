"""Alembic environment for the ledger_entry and ledger_position schema."""
# pylint: disable=no-member,invalid-name,wrong-import-order

from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

from app.config import config_load_database_url

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name, disable_existing_loggers=False)

config.set_main_option("sqlalchemy.url", config_load_database_url())

# Revisions are hand-written op.* scripts; there is no ORM metadata to autogenerate from.
target_metadata = None


def env_configure_context(**options) -> None:
    """Apply ledger migration options shared by offline and online runs.

    Args:
        **options: Mode-specific `context.configure` arguments.

    Returns:
        None: Alembic context is configured as side effect.
    """

    context.configure(
        target_metadata=target_metadata,
        compare_type=True,
        transaction_per_migration=True,
        **options,
    )


def run_migrations_offline() -> None:
    """Render ledger migrations as SQL without a database connection."""

    env_configure_context(
        url=config.get_main_option("sqlalchemy.url"),
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Apply ledger migrations over a short-lived unpooled connection."""

    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        env_configure_context(connection=connection)

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
