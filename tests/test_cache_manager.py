"""Tests for the categorization cache and its backends"""

import json
from datetime import datetime, timedelta, timezone
from fnmatch import fnmatch
from unittest.mock import patch
import pytest
import redis
from sales_blitz.constants import BlitzCategory, CacheState
from sales_blitz.models.categorization import CategorizationCacheEntry
from sales_blitz.orchestrator.cache_manager import (
    CategorizationCache,
    InMemoryCategorizationStore,
    RedisCategorizationStore,
    cache_key,
    create_categorization_cache,
)
from sales_blitz.utils.errors import CacheError

TTL = timedelta(days=30)
NOW = datetime(2025, 12, 1, 9, 0, 0)


class FakeRedis:
    """Just enough of the redis client for the categorization store"""

    def __init__(self, fail=False):
        self.data = {}
        self.fail = fail

    def _check(self):
        if self.fail:
            raise redis.ConnectionError("connection refused")

    def get(self, key):
        self._check()
        return self.data.get(key)

    def set(self, key, value):
        self._check()
        self.data[key] = value
        return True

    def delete(self, *keys):
        self._check()
        removed = 0
        for key in keys:
            if self.data.pop(key, None) is not None:
                removed += 1
        return removed

    def scan_iter(self, match="*"):
        self._check()
        return iter([k for k in list(self.data) if fnmatch(k, match)])


def make_entry(account_id="acc_001", org="org_a", age_days=1.0, category=BlitzCategory.LARGE_LOSS):
    return CategorizationCacheEntry(
        organization_id=org,
        account_id=account_id,
        category=category,
        categorized_at=NOW - timedelta(days=age_days),
        confidence=0.85,
        reasoning="Baseline collapsed.",
    )


@pytest.fixture(params=["memory", "redis"])
def cache(request):
    store = InMemoryCategorizationStore() if request.param == "memory" else RedisCategorizationStore(FakeRedis())
    return CategorizationCache(TTL, store)


def test_missing_entry_is_uncategorized(cache):
    state, entry = cache.lookup("org_a", "acc_001", NOW)

    assert state == CacheState.UNCATEGORIZED
    assert entry is None


def test_entry_within_ttl_is_valid(cache):
    cache.put(make_entry(age_days=29))

    state, entry = cache.lookup("org_a", "acc_001", NOW)

    assert state == CacheState.CACHED_VALID
    assert entry.category == BlitzCategory.LARGE_LOSS
    assert entry.reasoning == "Baseline collapsed."


def test_entry_past_ttl_is_stale(cache):
    cache.put(make_entry(age_days=31))

    assert cache.get_state("org_a", "acc_001", NOW) == CacheState.CACHED_STALE


def test_entry_exactly_at_ttl_is_stale(cache):
    cache.put(make_entry(age_days=30))

    assert cache.get_state("org_a", "acc_001", NOW) == CacheState.CACHED_STALE


def test_in_flight_account_reports_recategorizing(cache):
    cache.put(make_entry(age_days=31))
    cache.begin_recategorization("org_a", "acc_001")

    assert cache.get_state("org_a", "acc_001", NOW) == CacheState.RECATEGORIZING

    cache.put(make_entry(age_days=0))
    cache.end_recategorization("org_a", "acc_001")

    assert cache.get_state("org_a", "acc_001", NOW) == CacheState.CACHED_VALID


def test_overlapping_recategorizations_are_counted(cache):
    cache.put(make_entry(age_days=31))
    cache.begin_recategorization("org_a", "acc_001")
    cache.begin_recategorization("org_a", "acc_001")
    cache.end_recategorization("org_a", "acc_001")

    assert cache.get_state("org_a", "acc_001", NOW) == CacheState.RECATEGORIZING

    cache.end_recategorization("org_a", "acc_001")

    assert cache.get_state("org_a", "acc_001", NOW) == CacheState.CACHED_STALE


def test_unmatched_end_does_not_mask_next_recategorization(cache):
    cache.end_recategorization("org_a", "acc_001")
    cache.begin_recategorization("org_a", "acc_001")

    assert cache.get_state("org_a", "acc_001", NOW) == CacheState.RECATEGORIZING


def test_offset_timestamps_compare_against_local_clock():
    local_now = datetime.now().replace(microsecond=0)
    client = FakeRedis()
    entry = make_entry().model_copy(update={'categorized_at': local_now})
    payload = entry.model_dump(mode='json')
    payload['categorized_at'] = local_now.astimezone(timezone.utc).isoformat()
    client.data[cache_key("org_a", "acc_001")] = json.dumps(payload)
    cache = CategorizationCache(TTL, RedisCategorizationStore(client))

    state, stored = cache.lookup("org_a", "acc_001", local_now + timedelta(days=1))

    assert state == CacheState.CACHED_VALID
    assert stored.categorized_at == local_now
    assert stored.categorized_at.tzinfo is None
    assert cache.get_state("org_a", "acc_001", local_now + timedelta(days=31)) == CacheState.CACHED_STALE


def test_last_writer_wins(cache):
    cache.put(make_entry(category=BlitzCategory.LARGE_LOSS))
    cache.put(make_entry(category=BlitzCategory.SMALL_ACTIVE))

    _, entry = cache.lookup("org_a", "acc_001", NOW)

    assert entry.category == BlitzCategory.SMALL_ACTIVE


def test_invalidate_organization_is_scoped(cache):
    cache.put(make_entry("acc_001", age_days=1))
    cache.put(make_entry("acc_002", age_days=1))
    cache.put(make_entry("acc_001", org="org_b", age_days=1))

    removed = cache.invalidate_organization("org_a")

    assert removed == 2
    assert cache.get_state("org_a", "acc_001", NOW) == CacheState.UNCATEGORIZED
    assert cache.get_state("org_a", "acc_002", NOW) == CacheState.UNCATEGORIZED
    assert cache.get_state("org_b", "acc_001", NOW) == CacheState.CACHED_VALID
    assert cache.entries("org_a") == []
    assert len(cache.entries("org_b")) == 1


def test_redis_keys_are_namespaced():
    client = FakeRedis()
    store = RedisCategorizationStore(client)

    store.put(make_entry())

    assert list(client.data) == [cache_key("org_a", "acc_001")]
    assert cache_key("org_a", "acc_001") == "blitz:org_a:acc_001:categorization"


def test_redis_corrupt_entry_is_a_miss():
    client = FakeRedis()
    client.data[cache_key("org_a", "acc_001")] = "{not json"
    cache = CategorizationCache(TTL, RedisCategorizationStore(client))

    assert cache.get_state("org_a", "acc_001", NOW) == CacheState.UNCATEGORIZED


def test_redis_failures_raise_cache_error():
    store = RedisCategorizationStore(FakeRedis(fail=True))

    with pytest.raises(CacheError):
        store.get("org_a", "acc_001")
    with pytest.raises(CacheError):
        store.put(make_entry())
    with pytest.raises(CacheError):
        store.delete_organization("org_a")


def test_unreachable_redis_falls_back_to_memory():
    with patch('sales_blitz.orchestrator.cache_manager.create_redis_client', return_value=None):
        cache = create_categorization_cache(TTL, backend="redis")

    assert isinstance(cache.store, InMemoryCategorizationStore)


def test_redis_backend_when_reachable():
    with patch('sales_blitz.orchestrator.cache_manager.create_redis_client', return_value=FakeRedis()):
        cache = create_categorization_cache(TTL, backend="redis")

    assert isinstance(cache.store, RedisCategorizationStore)


def test_default_backend_is_memory():
    assert isinstance(create_categorization_cache(TTL).store, InMemoryCategorizationStore)
