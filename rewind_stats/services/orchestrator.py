import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, List, NamedTuple, Optional, Protocol, Sequence, Tuple

from pydantic import ValidationError

from rewind_stats.cache.keys import KeySpace, match_ids_key, match_key, scene_key, summary_key
from rewind_stats.cache.store import CacheStore
from rewind_stats.config import (
  DEFAULT_SEASON, FETCH_CONCURRENCY, MATCH_COUNT, MATCH_IDS_TTL, MATCH_PAGE_SIZE, MATCH_TTL,
  SCENE_TTL, SEASON_TIMES, SUMMARY_TTL,
)
from rewind_stats.errors import CacheBackendUnavailable, MalformedRecord, NotFound, UpstreamUnavailable
from rewind_stats.models import MatchRecord, PlayerStatsSummary, ScenePayload
from rewind_stats.services.aggregate import aggregate_player_stats
from rewind_stats.services.scenes import compute_scene
from rewind_stats.util.inflight import InFlight

log = logging.getLogger(__name__)


class MatchFetcher(Protocol):
  async def list_match_ids(self, puuid: str, region: str, queue: str = "all", type_: str = "all",
                           *, start: int = 0, count: int = 20, start_time: Optional[int] = None,
                           end_time: Optional[int] = None) -> List[str]: ...
  async def fetch_match_detail(self, match_id: str, region: str) -> MatchRecord: ...


class InvalidationResult(NamedTuple):
  targeted: List[str]
  failed: List[str]

  @property
  def cleared(self) -> List[str]:
    failed = set(self.failed)
    return [k for k in self.targeted if k not in failed]


class LoadedMatches(NamedTuple):
  matches: List[MatchRecord]
  # False when some details could not be fetched; such results are served but not cached
  complete: bool


def _iso_ms(iso: str) -> int:
  return int(datetime.fromisoformat(iso.replace("Z", "+00:00")).timestamp() * 1000)

def season_window(season: str, season_times: Dict[str, Tuple[str, str]] = SEASON_TIMES) -> Tuple[int, int]:
  lo, hi = season_times[season]
  return _iso_ms(lo), _iso_ms(hi)

def order_newest_first(indexed: Sequence[Tuple[int, MatchRecord]]) -> List[MatchRecord]:
  """Sort by creation time, newest first; ties keep the upstream id-list position."""
  return [m for _, m in sorted(indexed, key=lambda t: (-t[1].gameCreation, t[0]))]


class StatsOrchestrator:
  """
  Serves player summaries and scenes from the cache, recomputing on miss.

  Everything derived from one player's matches (match-id lists, summaries,
  scenes) lives under keys that KeySpace can regenerate from the puuid
  alone, which is what makes invalidate_all complete.
  """

  def __init__(
      self,
      fetcher: MatchFetcher,
      store: CacheStore,
      *,
      key_space: Optional[KeySpace] = None,
      concurrency: int = FETCH_CONCURRENCY,
      match_count: int = MATCH_COUNT,
      page_size: int = MATCH_PAGE_SIZE,
      ttls: Optional[Dict[str, int]] = None,
      season_times: Dict[str, Tuple[str, str]] = SEASON_TIMES,
  ):
    self.fetcher = fetcher
    self.store = store
    self.key_space = key_space or KeySpace.default()
    self.match_count = match_count
    self.page_size = page_size
    self.ttls = {"match": MATCH_TTL, "match_ids": MATCH_IDS_TTL,
                 "summary": SUMMARY_TTL, "scene": SCENE_TTL, **(ttls or {})}
    self.season_times = season_times
    self._sem = asyncio.Semaphore(concurrency)
    self._inflight = InFlight()         # summaries and scenes
    self._match_inflight = InFlight()   # single match details
    # per player, only while something is computing for them: how many
    # computations run, and the generation invalidate_all bumped to.
    # A computation started under an older generation must not write back.
    self._active: Dict[str, int] = {}
    self._gen: Dict[str, int] = {}

  # ----------------------------
  # Cache access (backend failures degrade to "no cache")
  # ----------------------------
  async def _cache_get(self, key: str) -> Any:
    try:
      return await self.store.get(key)
    except CacheBackendUnavailable as e:
      log.warning("Cache backend unavailable on get, recomputing: %s", e)
      return None

  async def _cache_set(self, key: str, value: Any, ttl: int) -> None:
    try:
      await self.store.set(key, value, ttl)
    except CacheBackendUnavailable as e:
      log.warning("Cache backend unavailable on set, result not cached: %s", e)

  async def _cache_set_if_current(self, puuid: str, gen: int, key: str, value: Any, ttl: int) -> None:
    if self._gen.get(puuid, 0) != gen:
      log.info("Dropping stale write to %s (invalidated while computing)", key)
      return
    await self._cache_set(key, value, ttl)

  def _begin(self, puuid: str) -> int:
    self._active[puuid] = self._active.get(puuid, 0) + 1
    return self._gen.get(puuid, 0)

  def _end(self, puuid: str) -> None:
    n = self._active.get(puuid, 0) - 1
    if n > 0:
      self._active[puuid] = n
      return
    self._active.pop(puuid, None)
    self._gen.pop(puuid, None)

  # ----------------------------
  # Summaries
  # ----------------------------
  async def get_or_compute(self, puuid: str, region: str, queue: str = "all",
                           type_: str = "all", season: str = DEFAULT_SEASON) -> PlayerStatsSummary:
    self.key_space.check(region, queue, type_, season)
    key = summary_key(puuid, region, queue, type_, season)
    hit = await self._cache_get(key)
    if hit is not None:
      try:
        summary = PlayerStatsSummary.model_validate(hit)
        log.debug("Summary cache hit %s", key)
        return summary
      except ValidationError:
        log.warning("Unreadable cached summary under %s, recomputing", key)
    log.debug("Summary cache miss %s", key)
    return await self._inflight.run(
        key, lambda: self._compute_summary(key, puuid, region, queue, type_, season)
    )

  async def _compute_summary(self, key: str, puuid: str, region: str, queue: str,
                             type_: str, season: str) -> PlayerStatsSummary:
    gen = self._begin(puuid)
    try:
      loaded = await self._load_matches(puuid, region, queue, type_, season, gen)
      summary = aggregate_player_stats(puuid, loaded.matches)
      if loaded.complete:
        await self._cache_set_if_current(puuid, gen, key, summary.model_dump(mode="json"), self.ttls["summary"])
      else:
        log.warning("Serving partial summary for %s (%d games), not cached", key, summary.totalGames)
    finally:
      self._end(puuid)
    log.info("Computed summary for %s (%d games) -> %s", puuid, summary.totalGames, key)
    return summary

  # ----------------------------
  # Scenes
  # ----------------------------
  async def get_scene(self, puuid: str, scene_id: str, region: str,
                      season: str = DEFAULT_SEASON) -> ScenePayload:
    if scene_id not in self.key_space.scene_ids:
      raise ValueError(f"scene must be one of: {', '.join(self.key_space.scene_ids)}")
    self.key_space.check(region, "all", "all", season)
    key = scene_key(puuid, scene_id, season)
    hit = await self._cache_get(key)
    if hit is not None:
      try:
        return ScenePayload.model_validate(hit)
      except ValidationError:
        log.warning("Unreadable cached scene under %s, recomputing", key)
    return await self._inflight.run(
        key, lambda: self._compute_scene(key, puuid, scene_id, region, season)
    )

  async def _compute_scene(self, key: str, puuid: str, scene_id: str, region: str, season: str) -> ScenePayload:
    gen = self._begin(puuid)
    try:
      loaded = await self._load_matches(puuid, region, "all", "all", season, gen)
      payload = compute_scene(scene_id, puuid, loaded.matches)
      if loaded.complete:
        await self._cache_set_if_current(puuid, gen, key, payload.model_dump(mode="json"), self.ttls["scene"])
      else:
        log.warning("Serving partial scene %s, not cached", key)
    finally:
      self._end(puuid)
    return payload

  # ----------------------------
  # Match loading
  # ----------------------------
  async def load_matches(self, puuid: str, region: str, queue: str = "all",
                         type_: str = "all", season: str = DEFAULT_SEASON) -> List[MatchRecord]:
    """Matches for one dimension tuple, newest first, restricted to the season window."""
    self.key_space.check(region, queue, type_, season)
    gen = self._begin(puuid)
    try:
      return (await self._load_matches(puuid, region, queue, type_, season, gen)).matches
    finally:
      self._end(puuid)

  async def _load_matches(self, puuid: str, region: str, queue: str, type_: str,
                          season: str, gen: int) -> LoadedMatches:
    ids = await self._match_ids(puuid, region, queue, type_, season, gen)
    if not ids:
      return LoadedMatches([], True)

    results = await asyncio.gather(*[self._match(region, mid) for mid in ids], return_exceptions=True)

    indexed: List[Tuple[int, MatchRecord]] = []
    unavailable: List[str] = []
    for i, (mid, r) in enumerate(zip(ids, results)):
      if isinstance(r, UpstreamUnavailable):
        unavailable.append(mid)
      elif isinstance(r, (NotFound, MalformedRecord)):
        log.warning("Skipping match %s: %s", mid, r)
      elif isinstance(r, BaseException):
        raise r
      else:
        indexed.append((i, r))

    if unavailable:
      if not indexed:
        raise UpstreamUnavailable(f"no match details could be fetched ({len(unavailable)} of {len(ids)} unavailable, first: {unavailable[0]})")
      log.warning("%d of %d match details unavailable for %s (first: %s)",
                  len(unavailable), len(ids), puuid, unavailable[0])

    lo, hi = season_window(season, self.season_times)
    ordered = order_newest_first(indexed)
    # gameCreation 0 means unknown; keep those rather than guess
    matches = [m for m in ordered if not m.gameCreation or lo <= m.gameCreation < hi]
    return LoadedMatches(matches, not unavailable)

  async def _match_ids(self, puuid: str, region: str, queue: str, type_: str,
                       season: str, gen: int) -> List[str]:
    key = match_ids_key(puuid, region, queue, type_, season)
    hit = await self._cache_get(key)
    if isinstance(hit, list):
      return hit

    lo, hi = season_window(season, self.season_times)
    ids: List[str] = []
    start = 0
    # page through the season window (match-v5 takes epoch seconds)
    while len(ids) < self.match_count:
      want = min(self.page_size, self.match_count - len(ids))
      page = await self.fetcher.list_match_ids(
          puuid, region, queue, type_, start=start, count=want,
          start_time=lo // 1000, end_time=hi // 1000,
      )
      ids.extend(page)
      if len(page) < want:
        break
      start += len(page)

    # drop duplicates, keep upstream order
    ids = list(dict.fromkeys(ids))
    await self._cache_set_if_current(puuid, gen, key, ids, self.ttls["match_ids"])
    return ids

  async def _match(self, region: str, match_id: str) -> MatchRecord:
    key = match_key(region, match_id)
    hit = await self._cache_get(key)
    if hit is not None:
      try:
        return MatchRecord.model_validate(hit)
      except ValidationError:
        log.warning("Unreadable cached match under %s, refetching", key)
    return await self._match_inflight.run(key, lambda: self._fetch_match(key, region, match_id))

  async def _fetch_match(self, key: str, region: str, match_id: str) -> MatchRecord:
    async with self._sem:
      record = await self.fetcher.fetch_match_detail(match_id, region)
    await self._cache_set(key, record.model_dump(mode="json"), self.ttls["match"])
    return record

  # ----------------------------
  # Invalidation
  # ----------------------------
  async def invalidate_all(self, puuid: str) -> InvalidationResult:
    """
    Delete every per-player key in the key space. Keeps going past
    individual delete failures and reports them.
    """
    if puuid in self._active:
      self._gen[puuid] = self._gen.get(puuid, 0) + 1
    keys = self.key_space.player_keys(puuid)
    self._inflight.forget(keys)

    results = await asyncio.gather(*[self.store.delete(k) for k in keys], return_exceptions=True)
    failed = []
    for k, r in zip(keys, results):
      if isinstance(r, Exception):
        log.debug("Delete %s failed: %s", k, r)
        failed.append(k)
    if failed:
      log.warning("Invalidation for %s: %d of %d deletes failed", puuid, len(failed), len(keys))
    log.info("Cleared %d cache keys for %s", len(keys) - len(failed), puuid)
    return InvalidationResult(targeted=keys, failed=failed)
