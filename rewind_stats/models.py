import logging
from typing import Any, Dict, List, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from rewind_stats.errors import MalformedRecord

log = logging.getLogger(__name__)

_COUNTERS = (
  "kills", "deaths", "assists",
  "wardsPlaced", "wardsKilled", "goldEarned",
  "totalMinionsKilled", "neutralMinionsKilled",
  "totalDamageDealtToChampions", "visionScore",
)


class ParticipantRecord(BaseModel):
  model_config = ConfigDict(frozen=True)

  puuid: str
  championName: str
  teamId: int = 0
  kills: int = Field(ge=0)
  deaths: int = Field(ge=0)
  assists: int = Field(ge=0)
  wardsPlaced: int = Field(default=0, ge=0)
  wardsKilled: int = Field(default=0, ge=0)
  goldEarned: int = Field(default=0, ge=0)
  totalMinionsKilled: int = Field(default=0, ge=0)
  neutralMinionsKilled: int = Field(default=0, ge=0)
  totalDamageDealtToChampions: int = Field(default=0, ge=0)
  visionScore: int = Field(default=0, ge=0)
  win: bool


class MatchRecord(BaseModel):
  model_config = ConfigDict(frozen=True)

  matchId: str
  gameDuration: int = Field(default=0, ge=0)
  gameMode: str = ""
  queueId: int = -1
  gameCreation: int = 0
  participants: Tuple[ParticipantRecord, ...] = ()

  @classmethod
  def from_riot(cls, payload: Dict[str, Any]) -> "MatchRecord":
    """
    Build a record from a match-v5 payload ({metadata, info}).

    Participants that fail validation are dropped; a payload without a
    match id or info block raises MalformedRecord.
    """
    if not isinstance(payload, dict):
      raise MalformedRecord("match payload is not an object")
    match_id = (payload.get("metadata") or {}).get("matchId")
    info = payload.get("info")
    if not match_id or not isinstance(info, dict):
      raise MalformedRecord(f"match payload missing metadata.matchId or info ({match_id})")

    parts: List[ParticipantRecord] = []
    for raw in info.get("participants") or []:
      try:
        parts.append(ParticipantRecord.model_validate(_participant_fields(raw)))
      except (ValidationError, TypeError, AttributeError) as e:
        log.warning("Skipping malformed participant in %s: %s", match_id, e)

    try:
      return cls(
          matchId=match_id,
          gameDuration=info.get("gameDuration") or 0,
          gameMode=info.get("gameMode") or "",
          queueId=info.get("queueId", -1),
          gameCreation=info.get("gameCreation") or 0,
          participants=tuple(parts),
      )
    except ValidationError as e:
      raise MalformedRecord(f"match {match_id} has invalid info: {e}") from e


def _participant_fields(raw: Dict[str, Any]) -> Dict[str, Any]:
  out = {
    "puuid": raw.get("puuid"),
    "championName": raw.get("championName"),
    "teamId": raw.get("teamId", 0),
    "win": raw.get("win"),
  }
  for k in _COUNTERS:
    if k in raw:
      out[k] = raw[k]
  return out


class CharacterStats(BaseModel):
  model_config = ConfigDict(frozen=True)

  championName: str
  games: int = 0
  wins: int = 0
  winRate: float = 0.0
  avgKDA: float = 0.0


class PlayerStatsSummary(BaseModel):
  model_config = ConfigDict(frozen=True)

  puuid: str
  totalGames: int = 0
  wins: int = 0
  losses: int = 0
  winRate: float = 0.0
  avgKDA: float = 0.0
  avgKills: float = 0.0
  avgDeaths: float = 0.0
  avgAssists: float = 0.0
  avgDamagePerMinute: float = 0.0
  avgVisionScore: float = 0.0
  avgWardsPlaced: float = 0.0
  avgWardsKilled: float = 0.0
  avgMinionsKilled: float = 0.0
  avgGoldPerMinute: float = 0.0
  recentForm: Tuple[bool, ...] = ()
  championStats: Tuple[CharacterStats, ...] = ()


class SceneMetric(BaseModel):
  label: str
  value: float | str
  unit: str = ""


class SceneInsight(BaseModel):
  summary: str
  details: List[str] = []
  action: str = ""
  metrics: List[SceneMetric] = []
  vizData: Dict[str, Any] = Field(default_factory=dict)


class ScenePayload(BaseModel):
  sceneId: str
  label: str
  vizKind: str
  gamesAnalyzed: int = 0
  insight: SceneInsight


class ClearCacheResponse(BaseModel):
  success: bool
  message: str
  keysCleared: List[str] = []
  failedKeys: List[str] = []
