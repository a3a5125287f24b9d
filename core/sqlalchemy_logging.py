"""Configure SQLAlchemy logging before any database connections are made."""

import logging
import os

SQLALCHEMY_LOGGERS = (
    "sqlalchemy",
    "sqlalchemy.engine",
    "sqlalchemy.pool",
    "sqlalchemy.orm",
    "sqlalchemy.dialects",
)


def configure_sqlalchemy_logging(level: str | None = None) -> None:
    """Silence SQLAlchemy unless SQLALCHEMY_LOG_LEVEL asks for more."""
    level = (level or os.getenv("SQLALCHEMY_LOG_LEVEL", "ERROR")).upper()
    for name in SQLALCHEMY_LOGGERS:
        logging.getLogger(name).setLevel(level)


configure_sqlalchemy_logging()
