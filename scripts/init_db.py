#!/usr/bin/env python3
"""
Database initialization script: waits for the database, then upgrades the
schema to head. Run it before any backfill that depends on new columns.
"""

import sys
import os
import time

# Add the project root to the Python path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from alembic import command  # noqa: E402
from alembic.config import Config  # noqa: E402
from sqlalchemy import text  # noqa: E402
from sqlalchemy.exc import OperationalError  # noqa: E402

from core.settings import Settings  # noqa: E402
from db.session import build_engine  # noqa: E402


def wait_for_db(settings: Settings, max_attempts=30, delay=2):
    """Wait for database to be ready."""
    for attempt in range(max_attempts):
        engine = build_engine(settings.db)
        try:
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            print(f"✅ Database ready after {attempt + 1} attempts")
            return True
        except OperationalError:
            print(f"⏳ Database not ready, attempt {attempt + 1}/{max_attempts}...")
            time.sleep(delay)
        finally:
            engine.dispose()

    print(f"❌ Database not ready after {max_attempts} attempts")
    return False


def alembic_config(settings: Settings) -> Config:
    """Alembic config pointing at DB_MIGRATIONS_PATH and the configured database."""
    config = Config()
    config.set_main_option("script_location", settings.db.MIGRATIONS_PATH)
    config.set_main_option(
        "sqlalchemy.url", settings.db.url_string.replace("%", "%%")
    )
    return config


def run_migrations(settings: Settings, revision: str = "head"):
    """Upgrade the schema to ``revision``."""
    try:
        print("🔄 Running database migrations...")
        command.upgrade(alembic_config(settings), revision)
        print("✅ Migrations completed successfully")
        return True
    except Exception as e:
        print(f"❌ Error running migrations: {e}")
        return False


def main() -> int:
    settings = Settings()
    if not wait_for_db(settings):
        return 1
    if not run_migrations(settings):
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
