"""Categorization cache with per-account TTL, Redis-backed or in-memory."""

import json
import os
import threading
from collections import Counter
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple
import redis
from pydantic import ValidationError
from sales_blitz.constants import CacheState
from sales_blitz.models.categorization import CategorizationCacheEntry
from sales_blitz.utils.errors import CacheError
from sales_blitz.utils.logging import get_logger
from sales_blitz.utils.metrics import cache_lookups

logger = get_logger(__name__)

KEY_PREFIX = "blitz"


def cache_key(organization_id: str, account_id: str) -> str:
    return f"{KEY_PREFIX}:{organization_id}:{account_id}:categorization"


class InMemoryCategorizationStore:
    """Process-local store; each write replaces the whole entry under a lock"""

    def __init__(self):
        self._entries: Dict[Tuple[str, str], CategorizationCacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, organization_id: str, account_id: str) -> Optional[CategorizationCacheEntry]:
        with self._lock:
            return self._entries.get((organization_id, account_id))

    def put(self, entry: CategorizationCacheEntry) -> None:
        with self._lock:
            self._entries[(entry.organization_id, entry.account_id)] = entry

    def delete_organization(self, organization_id: str) -> int:
        with self._lock:
            keys = [k for k in self._entries if k[0] == organization_id]
            for key in keys:
                del self._entries[key]
            return len(keys)

    def list_organization(self, organization_id: str) -> List[CategorizationCacheEntry]:
        with self._lock:
            return [e for k, e in self._entries.items() if k[0] == organization_id]


class RedisCategorizationStore:
    """One JSON value per account; SET is atomic so concurrent writers resolve last-writer-wins"""

    def __init__(self, client):
        self.client = client

    def get(self, organization_id: str, account_id: str) -> Optional[CategorizationCacheEntry]:
        try:
            value = self.client.get(cache_key(organization_id, account_id))
        except redis.RedisError as e:
            raise CacheError(f"Failed to read categorization: {e}")

        if not value:
            return None

        try:
            return CategorizationCacheEntry(**json.loads(value))
        except (json.JSONDecodeError, TypeError, ValidationError) as e:
            logger.warning(f"Discarding unreadable cache entry: {e}",
                           organization_id=organization_id, account_id=account_id)
            return None

    def put(self, entry: CategorizationCacheEntry) -> None:
        try:
            self.client.set(cache_key(entry.organization_id, entry.account_id), entry.model_dump_json())
        except redis.RedisError as e:
            raise CacheError(f"Failed to write categorization: {e}")

    def _organization_keys(self, organization_id: str) -> List[str]:
        return list(self.client.scan_iter(match=f"{KEY_PREFIX}:{organization_id}:*:categorization"))

    def delete_organization(self, organization_id: str) -> int:
        try:
            keys = self._organization_keys(organization_id)
            if not keys:
                return 0
            return int(self.client.delete(*keys))
        except redis.RedisError as e:
            raise CacheError(f"Failed to invalidate organization: {e}")

    def list_organization(self, organization_id: str) -> List[CategorizationCacheEntry]:
        entries = []
        try:
            for key in self._organization_keys(organization_id):
                value = self.client.get(key)
                if value:
                    try:
                        entries.append(CategorizationCacheEntry(**json.loads(value)))
                    except (json.JSONDecodeError, TypeError, ValidationError):
                        continue
        except redis.RedisError as e:
            raise CacheError(f"Failed to list categorizations: {e}")
        return entries


class CategorizationCache:
    """
    TTL policy over a categorization store.

    Staleness is evaluated lazily on read: nothing expires entries in the
    background. An account being recategorized in this process reports
    RECATEGORIZING until its result is written or abandoned.
    """

    def __init__(self, ttl: timedelta, store=None):
        self.ttl = ttl
        self.store = store or InMemoryCategorizationStore()
        # Overlapping runs may recategorize the same account; count them
        self._in_flight: Counter = Counter()
        self._in_flight_lock = threading.Lock()

    def lookup(self, organization_id: str, account_id: str,
               now: datetime) -> Tuple[CacheState, Optional[CategorizationCacheEntry]]:
        """
        Read an entry and classify its cache state.

        Returns:
            (state, entry) where entry is None for UNCATEGORIZED
        """
        with self._in_flight_lock:
            in_flight = (organization_id, account_id) in self._in_flight

        entry = self.store.get(organization_id, account_id)

        if in_flight:
            return CacheState.RECATEGORIZING, entry

        if entry is None:
            cache_lookups.labels(result="miss").inc()
            return CacheState.UNCATEGORIZED, None

        if entry.is_valid(now, self.ttl):
            cache_lookups.labels(result="hit").inc()
            return CacheState.CACHED_VALID, entry

        cache_lookups.labels(result="stale").inc()
        return CacheState.CACHED_STALE, entry

    def get_state(self, organization_id: str, account_id: str, now: datetime) -> CacheState:
        state, _ = self.lookup(organization_id, account_id, now)
        return state

    def begin_recategorization(self, organization_id: str, account_id: str) -> None:
        with self._in_flight_lock:
            self._in_flight[(organization_id, account_id)] += 1

    def end_recategorization(self, organization_id: str, account_id: str) -> None:
        with self._in_flight_lock:
            key = (organization_id, account_id)
            self._in_flight[key] -= 1
            if self._in_flight[key] <= 0:
                del self._in_flight[key]

    def put(self, entry: CategorizationCacheEntry) -> None:
        """Write one account's entry; last writer wins"""
        self.store.put(entry)

    def invalidate_organization(self, organization_id: str) -> int:
        """Drop every entry of an organization regardless of age"""
        removed = self.store.delete_organization(organization_id)
        logger.info("Invalidated categorization cache", organization_id=organization_id, removed=removed)
        return removed

    def entries(self, organization_id: str) -> List[CategorizationCacheEntry]:
        return self.store.list_organization(organization_id)


def create_redis_client():
    """
    Connect to Redis from REDIS_HOST (host:port) and REDIS_DB.

    Returns:
        Connected client, or None if Redis is unreachable
    """
    try:
        redis_host, redis_port = os.getenv("REDIS_HOST", "localhost:6379").split(':')
        client = redis.Redis(
            host=redis_host,
            port=int(redis_port),
            db=int(os.getenv("REDIS_DB", 0)),
            decode_responses=True,
            socket_keepalive=True,
            socket_connect_timeout=5
        )
        client.ping()  # Test connection
        logger.info("Connected to Redis", host=redis_host, port=redis_port)
        return client
    except (redis.RedisError, ValueError) as e:
        logger.warning(f"Redis connection failed, falling back to in-memory: {e}")
        return None


def create_categorization_cache(ttl: timedelta, backend: str = "memory") -> CategorizationCache:
    """
    Build the cache for the configured backend.

    Args:
        ttl: Entry time-to-live
        backend: "redis" or "memory"

    Returns:
        CategorizationCache (in-memory when Redis is unreachable)
    """
    if backend == "redis":
        client = create_redis_client()
        if client is not None:
            return CategorizationCache(ttl, RedisCategorizationStore(client))
    elif backend != "memory":
        logger.warning(f"Unknown cache backend '{backend}', using in-memory")
    else:
        logger.info("Using in-memory categorization cache")

    return CategorizationCache(ttl, InMemoryCategorizationStore())
