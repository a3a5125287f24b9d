from logging.config import fileConfig

from alembic import context

from core.settings import Settings
from db.session import build_engine, load_entities

settings = Settings()  # It's okay to create settings here since this is a CLI tool

# this is the Alembic Config object
config = context.config

# Interpret the config file for Python logging
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# An explicit URL (set by scripts/init_db.py) wins over the environment
if not config.get_main_option("sqlalchemy.url"):
    # ConfigParser treats % as interpolation
    config.set_main_option("sqlalchemy.url", settings.db.url_string.replace("%", "%%"))

# Metadata of the entities module named by DB_ENTITIES_PATH
target_metadata = load_entities(settings.db).metadata


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode."""
    url = config.get_main_option("sqlalchemy.url")
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
        compare_server_default=True,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations in 'online' mode."""
    connectable = settings.db.model_copy(
        update={"URL": config.get_main_option("sqlalchemy.url")}
    )

    with build_engine(connectable, echo=settings.DEBUG).connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
            compare_server_default=True,
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
