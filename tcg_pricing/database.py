"""
Database connection module.
"""

import logging
from functools import lru_cache

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine

from tcg_pricing.tables import metadata

logger = logging.getLogger(__name__)


def create_db_engine(database_url: str, echo: bool = False) -> Engine:
    """
    Create a SQLAlchemy engine for DATABASE_URL.

    Works with postgresql:// URLs (psycopg2) in production and sqlite://
    URLs for local runs and tests.
    """
    logger.info("Creating database engine for: %s", database_url.split("@")[-1])
    engine = create_engine(database_url, echo=echo, pool_pre_ping=True)

    @event.listens_for(engine, "connect")
    def on_connect(dbapi_conn, connection_record):
        logger.debug("Database connection established")

    return engine


@lru_cache()
def get_engine(database_url: str) -> Engine:
    """Return a process-wide engine for a URL, creating it on first use."""
    return create_db_engine(database_url)


def init_db(engine: Engine) -> None:
    """Create all known tables if they don't exist (idempotent)."""
    metadata.create_all(engine)
    logger.info("Database schema initialized")
