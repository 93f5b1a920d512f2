"""
Database connection and session management for the durable cache tier.
"""
import logging
import os

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from market_intel.core.models import Base

logger = logging.getLogger(__name__)


def build_engine(database_url: str) -> Engine:
    """
    Create an engine for the cache store.

    SQLite gets special handling: in-memory databases share one connection
    (StaticPool) so every session sees the same tables, and file databases
    have their parent directory created.
    """
    url = make_url(database_url)

    if url.get_backend_name() == "sqlite":
        database = url.database
        if not database or database == ":memory:":
            return create_engine(
                database_url,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        directory = os.path.dirname(os.path.abspath(database))
        os.makedirs(directory, exist_ok=True)
        return create_engine(
            database_url, connect_args={"check_same_thread": False}
        )

    return create_engine(database_url, pool_pre_ping=True)


def create_tables(engine: Engine) -> None:
    """
    Create cache tables if they don't exist.

    Idempotent - safe to call multiple times.
    """
    logger.info("Creating cache tables if they don't exist...")
    Base.metadata.create_all(bind=engine)
    logger.info("Cache tables ready")


def get_session_factory(engine: Engine) -> sessionmaker:
    """Session factory bound to the given engine."""
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)
