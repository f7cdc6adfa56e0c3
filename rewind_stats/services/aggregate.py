from collections import defaultdict
from typing import Dict, Iterable, List, Optional

from rewind_stats.models import CharacterStats, MatchRecord, ParticipantRecord, PlayerStatsSummary

RECENT_FORM_SIZE = 10

# ----------------------------
# Helpers
# ----------------------------
def _avg(total: float, n: int) -> float:
  return total / n if n > 0 else 0.0

def _kda(avg_k: float, avg_d: float, avg_a: float) -> float:
  return (avg_k + avg_a) / max(avg_d, 1.0)

def _per_minute(stat: int, duration_sec: int) -> float:
  minutes = duration_sec / 60
  return stat / minutes if minutes > 0 else 0.0

def find_participant(match: MatchRecord, puuid: str) -> Optional[ParticipantRecord]:
  return next((p for p in match.participants if p.puuid == puuid), None)

def empty_summary(puuid: str) -> PlayerStatsSummary:
  return PlayerStatsSummary(puuid=puuid)

# ----------------------------
# Player summary
# ----------------------------
def aggregate_player_stats(puuid: str, matches: Iterable[MatchRecord]) -> PlayerStatsSummary:
  """
  Fold matches (newest first) into one summary in a single pass.

  Matches without a row for the player are skipped. Damage and gold rates
  are averaged per game using each game's own duration, so long games do
  not dominate. No games at all gives the empty summary.
  """
  total = {"games": 0, "wins": 0, "k": 0, "d": 0, "a": 0,
           "dpm": 0.0, "gpm": 0.0, "vision": 0, "wards": 0, "wards_killed": 0, "cs": 0}
  recent: List[bool] = []
  per: Dict[str, Dict[str, int]] = defaultdict(lambda: {"games": 0, "wins": 0, "k": 0, "d": 0, "a": 0})

  for m in matches:
    you = find_participant(m, puuid)
    if not you:
      continue

    total["games"] += 1
    total["wins"] += 1 if you.win else 0
    total["k"] += you.kills
    total["d"] += you.deaths
    total["a"] += you.assists
    total["dpm"] += _per_minute(you.totalDamageDealtToChampions, m.gameDuration)
    total["gpm"] += _per_minute(you.goldEarned, m.gameDuration)
    total["vision"] += you.visionScore
    total["wards"] += you.wardsPlaced
    total["wards_killed"] += you.wardsKilled
    total["cs"] += you.totalMinionsKilled + you.neutralMinionsKilled

    if len(recent) < RECENT_FORM_SIZE:
      recent.append(you.win)

    r = per[you.championName]
    r["games"] += 1
    r["wins"] += 1 if you.win else 0
    r["k"] += you.kills
    r["d"] += you.deaths
    r["a"] += you.assists

  n = total["games"]
  if n == 0:
    return empty_summary(puuid)

  avg_k = _avg(total["k"], n)
  avg_d = _avg(total["d"], n)
  avg_a = _avg(total["a"], n)

  return PlayerStatsSummary(
      puuid=puuid,
      totalGames=n,
      wins=total["wins"],
      losses=n - total["wins"],
      winRate=total["wins"] / n,
      avgKDA=_kda(avg_k, avg_d, avg_a),
      avgKills=avg_k,
      avgDeaths=avg_d,
      avgAssists=avg_a,
      avgDamagePerMinute=_avg(total["dpm"], n),
      avgVisionScore=_avg(total["vision"], n),
      avgWardsPlaced=_avg(total["wards"], n),
      avgWardsKilled=_avg(total["wards_killed"], n),
      avgMinionsKilled=_avg(total["cs"], n),
      avgGoldPerMinute=_avg(total["gpm"], n),
      recentForm=tuple(recent),
      championStats=tuple(_champion_rows(per)),
  )

def _champion_rows(per: Dict[str, Dict[str, int]]) -> List[CharacterStats]:
  rows = []
  for champ, r in per.items():
    g = r["games"]
    rows.append(CharacterStats(
        championName=champ,
        games=g,
        wins=r["wins"],
        winRate=_avg(r["wins"], g),
        avgKDA=_kda(_avg(r["k"], g), _avg(r["d"], g), _avg(r["a"], g)),
    ))
  rows.sort(key=lambda c: (-c.games, c.championName))
  return rows
