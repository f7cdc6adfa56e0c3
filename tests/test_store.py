"""Unit tests for the cache backends."""

import json
from unittest.mock import AsyncMock

import pytest
import redis.exceptions as redis_exc

from rewind_stats.cache.store import MemoryCacheStore, RedisCacheStore, build_cache_store
from rewind_stats.errors import CacheBackendUnavailable


@pytest.mark.asyncio
class TestMemoryCacheStore:
  """In-process TTL store."""

  async def test_set_then_get(self):
    """Test a stored value comes back."""
    store = MemoryCacheStore()
    await store.set("k", {"a": [1, 2]}, 60)

    assert await store.get("k") == {"a": [1, 2]}
    assert "k" in store
    assert len(store) == 1

  async def test_missing_key(self):
    """Test a missing key reads as None."""
    assert await MemoryCacheStore().get("nope") is None

  async def test_expired_entry_is_dropped(self):
    """Test an entry past its TTL reads as a miss and is evicted."""
    store = MemoryCacheStore()
    await store.set("k", 1, -1)

    assert await store.get("k") is None
    assert "k" not in store

  async def test_unread_expired_keys_are_swept_on_write(self):
    """Test expired entries nobody reads again do not pile up."""
    store = MemoryCacheStore()
    for i in range(1000):
      await store.set(f"k{i}", i, 0)
    await store.set("fresh", 1, 60)

    assert len(store) == 1
    assert "fresh" in store

  async def test_overwritten_key_survives_old_expiry(self):
    """Test a key rewritten with a longer TTL is not evicted by its old deadline."""
    store = MemoryCacheStore()
    await store.set("k", 1, 0)
    await store.set("k", 2, 60)
    await store.set("other", 3, 60)

    assert await store.get("k") == 2
    assert len(store) == 2

  async def test_delete_is_idempotent(self):
    """Test deleting twice, or deleting nothing, is fine."""
    store = MemoryCacheStore()
    await store.set("k", 1, 60)
    await store.delete("k")
    await store.delete("k")
    await store.delete("never-set")

    assert await store.get("k") is None

  async def test_ping(self):
    """Test the in-process store is always reachable."""
    assert await MemoryCacheStore().ping() is True


def _redis():
  client = AsyncMock()
  client.get.return_value = None
  return client


@pytest.mark.asyncio
class TestRedisCacheStore:
  """Redis store with a mocked client."""

  async def test_get_decodes_json(self):
    """Test values are stored as JSON text."""
    client = _redis()
    client.get.return_value = json.dumps({"totalGames": 3})
    store = RedisCacheStore(client=client)

    assert await store.get("k") == {"totalGames": 3}
    client.get.assert_awaited_once_with("k")

  async def test_get_miss(self):
    """Test a missing key reads as None."""
    assert await RedisCacheStore(client=_redis()).get("k") is None

  async def test_set_uses_expiry(self):
    """Test set writes JSON with the TTL as EX."""
    client = _redis()
    store = RedisCacheStore(client=client)
    await store.set("k", ["a", "b"], 300)

    client.set.assert_awaited_once_with("k", json.dumps(["a", "b"]), ex=300)

  async def test_connection_error_on_get(self):
    """Test an unreachable server raises CacheBackendUnavailable."""
    client = _redis()
    client.get.side_effect = redis_exc.ConnectionError("refused")
    store = RedisCacheStore(client=client)

    with pytest.raises(CacheBackendUnavailable):
      await store.get("k")

  async def test_connection_error_on_set(self):
    """Test a failed write raises CacheBackendUnavailable."""
    client = _redis()
    client.set.side_effect = redis_exc.TimeoutError("slow")

    with pytest.raises(CacheBackendUnavailable):
      await RedisCacheStore(client=client).set("k", 1, 10)

  async def test_connection_error_on_delete(self):
    """Test a failed delete raises CacheBackendUnavailable."""
    client = _redis()
    client.delete.side_effect = redis_exc.ConnectionError("refused")

    with pytest.raises(CacheBackendUnavailable):
      await RedisCacheStore(client=client).delete("k")

  async def test_undecodable_value_is_dropped(self):
    """Test a corrupt entry reads as a miss and is deleted."""
    client = _redis()
    client.get.return_value = "{not json"
    store = RedisCacheStore(client=client)

    assert await store.get("k") is None
    client.delete.assert_awaited_once_with("k")

  async def test_wrong_type_is_dropped(self):
    """Test a key holding a non-string value reads as a miss."""
    client = _redis()
    client.get.side_effect = redis_exc.ResponseError("WRONGTYPE")
    store = RedisCacheStore(client=client)

    assert await store.get("k") is None
    client.delete.assert_awaited_once_with("k")

  async def test_ping_failure(self):
    """Test ping surfaces backend outages."""
    client = _redis()
    client.ping.side_effect = redis_exc.ConnectionError("refused")

    with pytest.raises(CacheBackendUnavailable):
      await RedisCacheStore(client=client).ping()

  async def test_close(self):
    """Test close releases the connection pool."""
    client = _redis()
    await RedisCacheStore(client=client).close()
    client.aclose.assert_awaited_once()


class TestBuildCacheStore:
  """Backend selection from configuration."""

  def test_no_url_uses_memory(self):
    """Test no REDIS_URL falls back to the in-process store."""
    assert isinstance(build_cache_store(None), MemoryCacheStore)
    assert isinstance(build_cache_store(""), MemoryCacheStore)

  def test_url_uses_redis(self):
    """Test a REDIS_URL selects Redis without connecting yet."""
    assert isinstance(build_cache_store("redis://localhost:6379/0"), RedisCacheStore)
