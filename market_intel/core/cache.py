"""
Two-tier cache for adapter outcomes.

Provides:
- In-memory tier with per-entry TTL (asyncio-safe)
- Optional durable tier (SQLAlchemy, see cache_store.py)
- Separate TTL policies for success, empty and error outcomes
- Deterministic, provider-namespaced key generation

Usage:
    cache = CacheManager.from_settings()
    key = build_cache_key("imf", "IFS", "A.US.NGDP_R_XDC", "2015", "2023")
    entry = await cache.get(key)
    if entry is None:
        ...
        await cache.set(key, data, outcome_kind=OutcomeKind.SUCCESS)
"""
import asyncio
import hashlib
import json
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError

from market_intel.core.cache_store import CacheStore
from market_intel.core.config import Settings, get_settings
from market_intel.core.schemas import CacheStatus, OutcomeKind

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    """A single cache entry with value and metadata."""
    data: Any
    stored_at: float
    ttl: float  # Time-to-live in seconds
    outcome_kind: OutcomeKind = OutcomeKind.SUCCESS
    hits: int = 0

    @property
    def expires_at(self) -> float:
        """Get expiration timestamp."""
        return self.stored_at + self.ttl

    def is_expired(self, now: float) -> bool:
        """Check if entry has expired at `now`."""
        return now >= self.expires_at


def build_cache_key(
    source_id: str,
    dataflow_id: str,
    dimension_key: str = "",
    start_period: Optional[str] = None,
    end_period: Optional[str] = None,
    **extra: Any,
) -> str:
    """
    Generate a deterministic cache key from request parameters.

    The source id is kept in clear as a namespace prefix so two adapters
    can never produce the same key.

    Returns:
        Key of the form "<source_id>:<md5 hex>"
    """
    key_data = {
        "dataflow": dataflow_id,
        "key": dimension_key or "",
        "start": start_period,
        "end": end_period,
    }
    if extra:
        key_data["extra"] = {k: extra[k] for k in sorted(extra)}
    key_str = json.dumps(key_data, sort_keys=True, default=str)
    key_hash = hashlib.md5(key_str.encode()).hexdigest()
    return f"{source_id}:{key_hash}"


def namespace_of(key: str) -> str:
    return key.split(":", 1)[0]


class CacheManager:
    """
    In-memory tier in front of an optional durable store.

    Safe for concurrent async readers and writers. Entries expire by TTL
    only; there is no size-based eviction. Expired keys that are never
    read again are swept from both tiers every `sweep_interval` seconds,
    piggybacked on writes.
    """

    def __init__(
        self,
        ttl_success: float = 3600.0,
        ttl_empty: float = 300.0,
        ttl_error: float = 60.0,
        store: Optional[CacheStore] = None,
        clock: Callable[[], float] = time.time,
        sweep_interval: float = 300.0,
    ):
        """
        Initialize the cache.

        Args:
            ttl_success: TTL for outcomes that returned data
            ttl_empty: TTL for well-formed outcomes with zero observations
            ttl_error: TTL for failed fetches
            store: Durable tier (None = memory only)
            clock: Returns the current time in epoch seconds
            sweep_interval: Seconds between sweeps of expired entries
        """
        self._ttls: Dict[OutcomeKind, float] = {
            OutcomeKind.SUCCESS: ttl_success,
            OutcomeKind.EMPTY: ttl_empty,
            OutcomeKind.ERROR: ttl_error,
        }
        self.store = store
        self.clock = clock
        self.sweep_interval = sweep_interval

        self._cache: Dict[str, CacheEntry] = {}
        self._lock = asyncio.Lock()
        self._last_refreshed: Optional[float] = None
        self._last_sweep: float = clock()

        # Statistics
        self._stats = {
            "hits": 0,
            "misses": 0,
            "sets": 0,
            "evictions": 0,
        }

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        clock: Callable[[], float] = time.time,
    ) -> "CacheManager":
        settings = settings or get_settings()
        store = None
        if settings.cache_database_url:
            store = CacheStore(settings.cache_database_url)
        return cls(
            ttl_success=settings.cache_ttl_success_seconds,
            ttl_empty=settings.cache_ttl_empty_seconds,
            ttl_error=settings.cache_ttl_error_seconds,
            store=store,
            clock=clock,
            sweep_interval=settings.cache_sweep_interval_seconds,
        )

    def ttl_for(self, outcome_kind: OutcomeKind) -> float:
        return self._ttls[OutcomeKind(outcome_kind)]

    async def get(self, key: str) -> Optional[CacheEntry]:
        """
        Get an unexpired entry from the memory tier, then the durable tier.

        Durable hits are promoted to memory. Expired entries are removed
        from both tiers.

        Returns:
            CacheEntry or None on miss
        """
        async with self._lock:
            now = self.clock()
            entry = self._cache.get(key)

            if entry is not None and entry.is_expired(now):
                del self._cache[key]
                self._store_delete(key)
                entry = None
            elif entry is None:
                entry = self._store_load(key, now)
                if entry is not None:
                    self._cache[key] = entry

            if entry is None:
                self._stats["misses"] += 1
                return None

            entry.hits += 1
            self._stats["hits"] += 1
            logger.debug(f"Cache hit for {key} ({entry.outcome_kind.value})")
            return entry

    async def set(
        self,
        key: str,
        data: Any,
        ttl: Optional[float] = None,
        outcome_kind: OutcomeKind = OutcomeKind.SUCCESS,
    ) -> CacheEntry:
        """
        Store a value.

        Args:
            key: Cache key (see build_cache_key)
            data: JSON-serializable value
            ttl: Time-to-live in seconds (None = policy TTL for outcome_kind)
            outcome_kind: success, empty or error
        """
        outcome_kind = OutcomeKind(outcome_kind)
        if ttl is None:
            ttl = self.ttl_for(outcome_kind)

        async with self._lock:
            now = self.clock()
            entry = CacheEntry(data=data, stored_at=now, ttl=ttl, outcome_kind=outcome_kind)
            self._cache[key] = entry
            self._store_save(key, entry)
            self._stats["sets"] += 1
            self._last_refreshed = now
            if now - self._last_sweep >= self.sweep_interval:
                self._sweep(now)
            return entry

    async def purge_expired(self) -> int:
        """
        Drop every expired entry from both tiers now.

        Returns:
            Number of memory entries removed
        """
        async with self._lock:
            return self._sweep(self.clock())

    async def delete(self, key: str) -> bool:
        """Administratively remove one key from both tiers."""
        async with self._lock:
            removed = self._cache.pop(key, None) is not None
            return self._store_delete(key) or removed

    async def clear(self, namespace: Optional[str] = None) -> int:
        """
        Administratively clear the cache, or one adapter's namespace.

        Returns:
            Number of memory entries cleared
        """
        async with self._lock:
            if namespace:
                keys = [k for k in self._cache if namespace_of(k) == namespace]
            else:
                keys = list(self._cache)
            for k in keys:
                del self._cache[k]
            if self.store is not None:
                try:
                    self.store.clear(namespace)
                except SQLAlchemyError as e:
                    logger.warning(f"Durable cache clear failed: {e}")
            logger.info(f"Cleared {len(keys)} cache entries (namespace={namespace})")
            return len(keys)

    async def status(self) -> CacheStatus:
        """Get cache statistics."""
        async with self._lock:
            durable_size = None
            if self.store is not None:
                try:
                    durable_size = self.store.count()
                except SQLAlchemyError as e:
                    logger.warning(f"Durable cache count failed: {e}")
            last = None
            if self._last_refreshed is not None:
                last = datetime.fromtimestamp(self._last_refreshed, tz=timezone.utc)
            return CacheStatus(
                hits=self._stats["hits"],
                misses=self._stats["misses"],
                sets=self._stats["sets"],
                size=len(self._cache),
                durable_size=durable_size,
                last_refreshed=last,
            )

    async def close(self) -> None:
        """Drop the memory tier and release the durable store."""
        async with self._lock:
            self._cache.clear()
            if self.store is not None:
                self.store.close()

    def _sweep(self, now: float) -> int:
        # Caller holds the lock
        stale = [k for k, e in self._cache.items() if e.is_expired(now)]
        for k in stale:
            del self._cache[k]
        durable = 0
        if self.store is not None:
            try:
                durable = self.store.purge_expired(now)
            except SQLAlchemyError as e:
                logger.warning(f"Durable cache sweep failed: {e}")
        self._last_sweep = now
        self._stats["evictions"] += len(stale)
        if stale or durable:
            logger.info(f"Swept {len(stale)} expired memory entries and {durable} durable rows")
        return len(stale)

    # ------------------------------------------------------------------
    # Durable tier helpers. Store failures degrade to memory-only.
    # ------------------------------------------------------------------

    def _store_load(self, key: str, now: float) -> Optional[CacheEntry]:
        if self.store is None:
            return None
        try:
            row = self.store.load(key)
            if row is None:
                return None
            entry = CacheEntry(
                data=row.data,
                stored_at=row.stored_at,
                ttl=row.ttl,
                outcome_kind=OutcomeKind(row.outcome_kind),
            )
            if entry.is_expired(now):
                self.store.delete(key)
                return None
            return entry
        except SQLAlchemyError as e:
            logger.warning(f"Durable cache read failed for {key}: {e}")
            return None

    def _store_save(self, key: str, entry: CacheEntry) -> None:
        if self.store is None:
            return
        try:
            self.store.save(
                key=key,
                namespace=namespace_of(key),
                outcome_kind=entry.outcome_kind.value,
                data=entry.data,
                stored_at=entry.stored_at,
                ttl=entry.ttl,
            )
        except SQLAlchemyError as e:
            logger.warning(f"Durable cache write failed for {key}: {e}")

    def _store_delete(self, key: str) -> bool:
        if self.store is None:
            return False
        try:
            return self.store.delete(key)
        except SQLAlchemyError as e:
            logger.warning(f"Durable cache delete failed for {key}: {e}")
            return False
