import importlib
from collections.abc import Generator
from contextlib import contextmanager

from fastapi import Depends
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

import core.sqlalchemy_logging  # noqa: F401
from core.dependencies import get_settings
from core.settings import DatabaseSettings, Settings

# Global engine singleton
_engine = None

SessionLocal = sessionmaker(autocommit=False, autoflush=False)


def reset_engines():
    """Reset global engine singleton. Used for testing."""
    global _engine
    if _engine:
        _engine.dispose()
        _engine = None


def build_engine(db_settings: DatabaseSettings, **kwargs):
    """Create a SQLAlchemy engine for the configured database."""
    url = db_settings.sqlalchemy_url
    if db_settings.is_sqlite:
        # SQLite fallback for tests
        return create_engine(
            url,
            future=True,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            **kwargs,
        )
    return create_engine(
        url,
        future=True,
        poolclass=QueuePool,
        pool_pre_ping=True,  # Verify connections before use
        **kwargs,
    )


def get_engine(settings: Settings = Depends(get_settings)):
    """Get or create the application's engine."""
    global _engine
    if _engine is None:
        _engine = build_engine(settings.db)
    return _engine


def get_db(settings: Settings = Depends(get_settings)):
    engine = get_engine(settings)
    SessionLocal.configure(bind=engine)
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def load_entities(db_settings: DatabaseSettings):
    """Import the entities module named by ENTITIES_PATH and return its Base."""
    module = importlib.import_module(db_settings.ENTITIES_PATH)
    return module.Base


def init_db(settings: Settings) -> None:
    """Initialize database tables."""
    engine = get_engine(settings)
    load_entities(settings.db).metadata.create_all(engine)


# Context manager for manual session management
@contextmanager
def manual_session(engine) -> Generator[Session, None, None]:
    """One transaction: commit on success, roll back and re-raise on error."""
    factory = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    with factory() as session:
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
