"""
Cache key derivation.

Keys are `namespace:component:component...`. Each component is
percent-encoded, so ':' never occurs inside one and two different input
tuples can never produce the same key.

Per-player namespaces (all purged together by invalidation):
  match-ids:{puuid}:{region}:{queue}:{type}:{season}
  summary:{puuid}:{region}:{queue}:{type}:{season}
  scene:{puuid}:{scene}:{season}
Shared namespace (immutable raw records, TTL only):
  match:{region}:{matchId}
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, List, Tuple
from urllib.parse import quote

from rewind_stats.config import DEFAULT_SEASON, KEY_SPACE

SEP = ":"


def _part(value) -> str:
  return quote(str(value), safe="")


def _key(namespace: str, *parts) -> str:
  return SEP.join([namespace, *(_part(p) for p in parts)])


def match_ids_key(puuid: str, region: str, queue: str, type_: str, season: str) -> str:
  return _key("match-ids", puuid, region, queue, type_, season)


def summary_key(puuid: str, region: str, queue: str, type_: str, season: str) -> str:
  return _key("summary", puuid, region, queue, type_, season)


def scene_key(puuid: str, scene_id: str, season: str = DEFAULT_SEASON) -> str:
  return _key("scene", puuid, scene_id, season)


def match_key(region: str, match_id: str) -> str:
  return _key("match", region, match_id)


@dataclass(frozen=True)
class KeySpace:
  """The closed vocabularies every per-player key is drawn from."""
  regions: Tuple[str, ...]
  queue_filters: Tuple[str, ...]
  type_filters: Tuple[str, ...]
  seasons: Tuple[str, ...]
  scene_ids: Tuple[str, ...]

  @classmethod
  def default(cls) -> "KeySpace":
    return cls(**{k: tuple(v) for k, v in KEY_SPACE.items()})

  def dimensions(self) -> Iterator[Tuple[str, str, str]]:
    for region in self.regions:
      for queue in self.queue_filters:
        for type_ in self.type_filters:
          yield region, queue, type_

  def check(self, region: str, queue: str, type_: str, season: str) -> None:
    if region not in self.regions:
      raise ValueError(f"region must be one of: {', '.join(self.regions)}")
    if queue not in self.queue_filters:
      raise ValueError(f"queue must be one of: {', '.join(self.queue_filters)}")
    if type_ not in self.type_filters:
      raise ValueError(f"type must be one of: {', '.join(self.type_filters)}")
    if season not in self.seasons:
      raise ValueError(f"season must be one of: {', '.join(self.seasons)}")

  def player_keys(self, puuid: str) -> List[str]:
    """Every cache key that holds data derived from this player's matches."""
    keys: List[str] = []
    for region, queue, type_ in self.dimensions():
      for season in self.seasons:
        keys.append(match_ids_key(puuid, region, queue, type_, season))
        keys.append(summary_key(puuid, region, queue, type_, season))
    for scene in self.scene_ids:
      for season in self.seasons:
        keys.append(scene_key(puuid, scene, season))
    return keys
