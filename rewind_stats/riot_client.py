# rewind_stats/riot_client.py
import asyncio
import logging
import time
from urllib.parse import quote, urlencode
from typing import Optional, Any, List

import httpx

from rewind_stats.config import RIOT_API_KEY, REGIONAL
from rewind_stats.errors import NotFound, UpstreamUnavailable
from rewind_stats.models import MatchRecord
from rewind_stats.util.inflight import InFlight

log = logging.getLogger(__name__)

MAX_ATTEMPTS = 4

# ----------------------------
# Global async token bucket (100 req / 120s ~= 0.83 rps → use 0.80 for buffer)
# ----------------------------
class _AsyncTokenBucket:
  def __init__(self, rate_per_sec: float, capacity: int):
    self.rate = rate_per_sec
    self.capacity = capacity
    self.tokens = capacity
    self.updated = time.monotonic()
    self.lock = asyncio.Lock()

  async def acquire(self):
    while True:
      async with self.lock:
        now = time.monotonic()
        elapsed = now - self.updated
        self.updated = now
        self.tokens = min(self.capacity, self.tokens + elapsed * self.rate)
        if self.tokens >= 1.0:
          self.tokens -= 1.0
          return
      # sleep outside lock to let others progress
      await asyncio.sleep(0.2)


class RiotClient:
  """
  Match source backed by the Riot API.

  Identical concurrent GETs are coalesced into one upstream request.
  404 raises NotFound; rate limiting, 5xx and transport errors that
  survive the retries raise UpstreamUnavailable.
  """

  def __init__(self, api_key: Optional[str] = None, *, bucket: Optional[_AsyncTokenBucket] = None,
               transport: Optional[httpx.AsyncBaseTransport] = None):
    self.api_key = api_key if api_key is not None else RIOT_API_KEY
    self._client: Optional[httpx.AsyncClient] = None
    # 0.80 rps, allow small bursts up to 20 tokens
    self._bucket = bucket or _AsyncTokenBucket(rate_per_sec=0.80, capacity=20)
    self._inflight = InFlight()
    self._transport = transport

  async def __aenter__(self):
    limits = httpx.Limits(max_keepalive_connections=10, max_connections=20)
    # Small connect timeout; generous read timeout because match bodies are a bit larger
    self._client = httpx.AsyncClient(timeout=httpx.Timeout(15.0, connect=5.0), limits=limits,
                                     transport=self._transport)
    return self

  async def __aexit__(self, *exc):
    if self._client:
      await self._client.aclose()

  @staticmethod
  def _norm_region(region: str) -> str:
    r = (region or "").lower()
    if r not in REGIONAL:
      raise ValueError(f"region must be one of: {', '.join(REGIONAL)}")
    return r

  async def _get(self, url: str, *, params: dict | None = None) -> Any:
    if not self.api_key:
      raise RuntimeError("Missing RIOT_API_KEY env var")
    key = url if not params else f"{url}?{urlencode(sorted(params.items()))}"
    return await self._inflight.run(key, lambda: self._fetch(url, params))

  async def _fetch(self, url: str, params: dict | None) -> Any:
    """
    GET with:
      - global token bucket pacing,
      - Retry-After for 429, backoff for 5xx and transport errors,
      - error kinds the cache layer can tell apart.
    """
    if self._client is None:
      raise RuntimeError("RiotClient must be used as an async context manager")
    headers = {"X-Riot-Token": self.api_key}
    for attempt in range(1, MAX_ATTEMPTS + 1):
      last = attempt == MAX_ATTEMPTS
      await self._bucket.acquire()
      try:
        r = await self._client.get(url, headers=headers, params=params)
      except httpx.TransportError as e:
        if last:
          raise UpstreamUnavailable(f"network error for {url}: {e}") from e
        log.warning("Network error, retrying (%s/%s): %s", attempt, MAX_ATTEMPTS, e)
        await asyncio.sleep(0.5 * attempt)
        continue

      if r.status_code == 404:
        raise NotFound(url)
      if r.status_code == 429:
        if last:
          raise UpstreamUnavailable(f"rate limited after {MAX_ATTEMPTS} attempts: {url}")
        retry = int(r.headers.get("Retry-After", "2"))
        log.warning("429 rate limited, retrying after %ss (%s/%s)", retry, attempt, MAX_ATTEMPTS)
        await asyncio.sleep(max(1, retry))
        continue
      if r.status_code >= 500:
        if last:
          raise UpstreamUnavailable(f"upstream {r.status_code} for {url}")
        log.warning("Server error %s, retrying (%s/%s)", r.status_code, attempt, MAX_ATTEMPTS)
        await asyncio.sleep(0.5 * attempt)
        continue
      if r.status_code >= 400:
        # 400/401/403: bad key or request, retrying will not help
        raise UpstreamUnavailable(f"upstream {r.status_code} for {url}")
      return r.json()
    raise UpstreamUnavailable(f"failed after {MAX_ATTEMPTS} attempts: {url}")

  # -------- Account / PUUID via REGIONAL --------
  async def puuid_by_riot_id(self, region: str, game_name: str, tag_line: str) -> str:
    reg = self._norm_region(region)
    url = f"https://{reg}.api.riotgames.com/riot/account/v1/accounts/by-riot-id/{quote(game_name)}/{quote(tag_line)}"
    data = await self._get(url)
    return data["puuid"]

  # -------- Match IDs via REGIONAL --------
  async def list_match_ids(
      self,
      puuid: str,
      region: str,
      queue: str = "all",
      type_: str = "all",
      *,
      start: int = 0,
      count: int = 20,
      start_time: int | None = None,
      end_time: int | None = None,
  ) -> List[str]:
    """Newest first, as returned by match-v5. start_time/end_time are epoch seconds."""
    reg = self._norm_region(region)
    url = f"https://{reg}.api.riotgames.com/lol/match/v5/matches/by-puuid/{quote(puuid)}/ids"
    params: dict = {"start": start, "count": count}
    if queue != "all":
      params["queue"] = int(queue)
    if type_ != "all":
      params["type"] = type_
    if start_time is not None:
      params["startTime"] = start_time
    if end_time is not None:
      params["endTime"] = end_time
    data = await self._get(url, params=params)
    return [mid for mid in data if isinstance(mid, str)] if isinstance(data, list) else []

  # -------- Match detail via REGIONAL --------
  async def fetch_match_detail(self, match_id: str, region: str) -> MatchRecord:
    reg = self._norm_region(region)
    url = f"https://{reg}.api.riotgames.com/lol/match/v5/matches/{quote(match_id)}"
    return MatchRecord.from_riot(await self._get(url))
