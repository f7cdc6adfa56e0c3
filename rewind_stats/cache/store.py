import heapq
import json
import logging
import time
from typing import Any, Dict, List, Optional, Protocol, Tuple

import redis.asyncio as aioredis
import redis.exceptions as redis_exc

from rewind_stats.errors import CacheBackendUnavailable

log = logging.getLogger(__name__)


class CacheStore(Protocol):
  async def get(self, key: str) -> Any: ...
  async def set(self, key: str, value: Any, ttl: int) -> None: ...
  async def delete(self, key: str) -> None: ...
  async def ping(self) -> bool: ...


# ----------------------------
# In-process TTL cache
# ----------------------------
class MemoryCacheStore:
  """
  Per-process store. Values must be JSON-shaped (dict/list/str/number).

  Every write first evicts whatever has expired, so keys nobody reads
  again do not pile up.
  """

  def __init__(self):
    self._m: Dict[str, Tuple[float, Any]] = {}
    # min-heap of (expires_at, key); entries for overwritten keys go stale
    self._expiry: List[Tuple[float, str]] = []

  async def get(self, key: str) -> Any:
    v = self._m.get(key)
    if not v:
      return None
    exp, payload = v
    if exp <= time.time():
      self._m.pop(key, None)
      return None
    return payload

  async def set(self, key: str, value: Any, ttl: int) -> None:
    now = time.time()
    self._sweep(now)
    exp = now + ttl
    self._m[key] = (exp, value)
    heapq.heappush(self._expiry, (exp, key))

  def _sweep(self, now: float) -> int:
    n = 0
    while self._expiry and self._expiry[0][0] <= now:
      exp, key = heapq.heappop(self._expiry)
      v = self._m.get(key)
      if v is not None and v[0] == exp:
        del self._m[key]
        n += 1
    return n

  async def delete(self, key: str) -> None:
    self._m.pop(key, None)

  async def ping(self) -> bool:
    return True

  def __len__(self) -> int:
    return len(self._m)

  def __contains__(self, key: str) -> bool:
    return key in self._m


# ----------------------------
# Redis
# ----------------------------
class RedisCacheStore:
  """JSON values in Redis with a per-key expiry (SET ... EX ttl)."""

  def __init__(self, url: str = "", client: Optional[Any] = None):
    self._redis = client if client is not None else aioredis.from_url(
        url, encoding="utf-8", decode_responses=True
    )

  async def get(self, key: str) -> Any:
    try:
      raw = await self._redis.get(key)
    except redis_exc.ResponseError:
      # wrong type under this key: treat as stale
      await self.delete(key)
      return None
    except redis_exc.RedisError as e:
      raise CacheBackendUnavailable(f"redis get {key} failed: {e}") from e
    if raw is None:
      return None
    try:
      return json.loads(raw)
    except (TypeError, ValueError):
      log.warning("Dropping undecodable cache entry %s", key)
      await self.delete(key)
      return None

  async def set(self, key: str, value: Any, ttl: int) -> None:
    data = json.dumps(value)
    try:
      await self._redis.set(key, data, ex=ttl)
    except redis_exc.RedisError as e:
      raise CacheBackendUnavailable(f"redis set {key} failed: {e}") from e

  async def delete(self, key: str) -> None:
    try:
      await self._redis.delete(key)
    except redis_exc.RedisError as e:
      raise CacheBackendUnavailable(f"redis delete {key} failed: {e}") from e

  async def ping(self) -> bool:
    try:
      return bool(await self._redis.ping())
    except redis_exc.RedisError as e:
      raise CacheBackendUnavailable(f"redis ping failed: {e}") from e

  async def close(self) -> None:
    await self._redis.aclose()


def build_cache_store(redis_url: Optional[str] = None) -> CacheStore:
  if redis_url:
    log.info("Using Redis cache backend")
    return RedisCacheStore(redis_url)
  log.info("REDIS_URL not set, using in-memory cache backend")
  return MemoryCacheStore()
