"""
Durable cache tier backed by SQLAlchemy.

Entries survive process restarts; the in-memory tier in
market_intel.core.cache sits in front of this store.
"""
import logging
from typing import Optional

from sqlalchemy import func
from sqlalchemy.engine import Engine

from market_intel.core.database import build_engine, create_tables, get_session_factory
from market_intel.core.models import CacheEntryRecord

logger = logging.getLogger(__name__)


class CacheStore:
    """
    Synchronous key/value store over the cache_entries table.

    Values must be JSON-serializable. Expiry is decided by the caller;
    the store only persists stored_at and ttl.
    """

    def __init__(self, database_url: Optional[str] = None, engine: Optional[Engine] = None):
        if engine is None:
            if not database_url:
                raise ValueError("CacheStore needs a database_url or an engine")
            engine = build_engine(database_url)
        self.engine = engine
        create_tables(self.engine)
        self._session_factory = get_session_factory(self.engine)

    def load(self, key: str) -> Optional[CacheEntryRecord]:
        """Fetch the raw row for a key, or None."""
        with self._session_factory() as session:
            row = session.get(CacheEntryRecord, key)
            if row is not None:
                session.expunge(row)
            return row

    def save(
        self,
        key: str,
        namespace: str,
        outcome_kind: str,
        data,
        stored_at: float,
        ttl: float,
    ) -> None:
        """Insert or replace the row for a key."""
        with self._session_factory() as session:
            session.merge(
                CacheEntryRecord(
                    key=key,
                    namespace=namespace,
                    outcome_kind=outcome_kind,
                    data=data,
                    stored_at=stored_at,
                    ttl=ttl,
                )
            )
            session.commit()

    def delete(self, key: str) -> bool:
        with self._session_factory() as session:
            deleted = (
                session.query(CacheEntryRecord)
                .filter(CacheEntryRecord.key == key)
                .delete(synchronize_session=False)
            )
            session.commit()
            return deleted > 0

    def clear(self, namespace: Optional[str] = None) -> int:
        """Delete all rows, or only one adapter's namespace."""
        with self._session_factory() as session:
            query = session.query(CacheEntryRecord)
            if namespace:
                query = query.filter(CacheEntryRecord.namespace == namespace)
            deleted = query.delete(synchronize_session=False)
            session.commit()
            logger.info(f"Cleared {deleted} durable cache entries (namespace={namespace})")
            return deleted

    def purge_expired(self, now: float) -> int:
        """Delete rows whose TTL has elapsed at `now`."""
        with self._session_factory() as session:
            deleted = (
                session.query(CacheEntryRecord)
                .filter(CacheEntryRecord.stored_at + CacheEntryRecord.ttl <= now)
                .delete(synchronize_session=False)
            )
            session.commit()
            return deleted

    def count(self) -> int:
        with self._session_factory() as session:
            return session.query(func.count(CacheEntryRecord.key)).scalar() or 0

    def close(self) -> None:
        """Release pooled connections."""
        self.engine.dispose()
