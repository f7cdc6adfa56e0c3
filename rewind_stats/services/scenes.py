"""
Named views over a player's match history.

Every scene is a pure function of (puuid, matches newest first) and is
cached on its own key next to the summary, so it has to be purged with it.
"""
from collections import Counter, defaultdict
from datetime import datetime, timezone
from typing import Callable, Dict, List, NamedTuple, Sequence, Tuple

from rewind_stats.config import RANKED_QUEUES
from rewind_stats.models import MatchRecord, ParticipantRecord, SceneInsight, SceneMetric, ScenePayload
from rewind_stats.services.aggregate import aggregate_player_stats, find_participant

ARAM_QUEUE = 450

# name -> (label, target, higher_is_better)
BENCHMARKS = {
  "deaths": ("Deaths / game", 5.0, False),
  "vision": ("Vision / min", 1.0, True),
  "cs": ("CS / min", 6.0, True),
  "winrate": ("Win rate", 0.5, True),
  "kda": ("KDA", 2.5, True),
}


class SceneDefinition(NamedTuple):
  label: str
  viz_kind: str
  compute: Callable[[str, Sequence[MatchRecord]], ScenePayload]


def _rows(puuid: str, matches: Sequence[MatchRecord]) -> List[Tuple[MatchRecord, ParticipantRecord]]:
  out = []
  for m in matches:
    you = find_participant(m, puuid)
    if you:
      out.append((m, you))
  return out

def _minutes(m: MatchRecord) -> float:
  return m.gameDuration / 60

def _pct(x: float) -> str:
  return f"{x*100:.1f}%"

def _payload(scene_id: str, games: int, insight: SceneInsight) -> ScenePayload:
  d = SCENES[scene_id]
  return ScenePayload(sceneId=scene_id, label=d.label, vizKind=d.viz_kind,
                      gamesAnalyzed=games, insight=insight)

def _empty(scene_id: str, what: str = "games") -> ScenePayload:
  return _payload(scene_id, 0, SceneInsight(
      summary=f"No {what} found for this period.",
      action="Play a few games and check back.",
  ))

def _team_share(m: MatchRecord, you: ParticipantRecord, field: str) -> float:
  team_total = sum(getattr(p, field) for p in m.participants if p.teamId == you.teamId)
  return getattr(you, field) / team_total if team_total > 0 else 0.0

def _record_scene(scene_id: str, puuid: str, matches: Sequence[MatchRecord], what: str) -> ScenePayload:
  s = aggregate_player_stats(puuid, matches)
  if s.totalGames == 0:
    return _empty(scene_id, what)
  top = s.championStats[0]
  return _payload(scene_id, s.totalGames, SceneInsight(
      summary=f"{s.totalGames} {what}: {s.wins}W {s.losses}L ({_pct(s.winRate)}).",
      details=[
        f"Average KDA {s.avgKDA:.2f}",
        f"Most played: {top.championName} ({top.games} games, {_pct(top.winRate)})",
      ],
      metrics=[
        SceneMetric(label="Games", value=s.totalGames),
        SceneMetric(label="Win rate", value=round(s.winRate, 4)),
        SceneMetric(label="KDA", value=round(s.avgKDA, 2)),
      ],
      vizData={"recentForm": list(s.recentForm)},
  ))

# ----------------------------
# Scenes
# ----------------------------
def year_in_motion(puuid: str, matches: Sequence[MatchRecord]) -> ScenePayload:
  rows = _rows(puuid, matches)
  if not rows:
    return _empty("year_in_motion")
  months: Dict[str, Dict[str, float]] = defaultdict(lambda: {"games": 0, "hours": 0.0})
  for m, _ in rows:
    if not m.gameCreation:
      continue
    month = datetime.fromtimestamp(m.gameCreation / 1000, tz=timezone.utc).strftime("%Y-%m")
    months[month]["games"] += 1
    months[month]["hours"] += m.gameDuration / 3600
  hours = sum(m.gameDuration for m, _ in rows) / 3600
  busiest = max(sorted(months.items()), key=lambda kv: kv[1]["games"])[0] if months else None
  details = [f"Busiest month: {busiest} ({int(months[busiest]['games'])} games)"] if busiest else []
  return _payload("year_in_motion", len(rows), SceneInsight(
      summary=f"{len(rows)} games and {hours:.1f} hours on the Rift.",
      details=details,
      metrics=[SceneMetric(label="Games", value=len(rows)),
               SceneMetric(label="Hours", value=round(hours, 1), unit="h")],
      vizData={"months": {k: {"games": int(v["games"]), "hours": round(v["hours"], 2)}
                          for k, v in sorted(months.items())}},
  ))

def signature_champion(puuid: str, matches: Sequence[MatchRecord]) -> ScenePayload:
  s = aggregate_player_stats(puuid, matches)
  if not s.championStats:
    return _empty("signature_champion")
  top = s.championStats[0]
  return _payload("signature_champion", s.totalGames, SceneInsight(
      summary=f"{top.championName} is your signature pick: {top.games} of {s.totalGames} games.",
      details=[f"{_pct(top.winRate)} win rate", f"{top.avgKDA:.2f} KDA"],
      metrics=[SceneMetric(label="Games", value=top.games),
               SceneMetric(label="Win rate", value=round(top.winRate, 4)),
               SceneMetric(label="KDA", value=round(top.avgKDA, 2))],
      vizData={"pool": [c.model_dump() for c in s.championStats[:5]]},
  ))

def _share_scene(scene_id: str, field: str, noun: str, puuid: str, matches: Sequence[MatchRecord]) -> ScenePayload:
  rows = _rows(puuid, matches)
  if not rows:
    return _empty(scene_id)
  shares = [_team_share(m, you, field) for m, you in rows]
  avg = sum(shares) / len(shares)
  best_i = max(range(len(shares)), key=lambda i: shares[i])
  best_m, best_you = rows[best_i]
  return _payload(scene_id, len(rows), SceneInsight(
      summary=f"You took {_pct(avg)} of your team's {noun} on average.",
      details=[f"Peak: {_pct(shares[best_i])} on {best_you.championName} ({best_m.matchId})"],
      metrics=[SceneMetric(label=f"Avg {noun} share", value=round(avg, 4))],
      vizData={"series": [round(x, 4) for x in shares]},
  ))

def damage_share(puuid: str, matches: Sequence[MatchRecord]) -> ScenePayload:
  return _share_scene("damage_share", "totalDamageDealtToChampions", "champion damage", puuid, matches)

def gold_share(puuid: str, matches: Sequence[MatchRecord]) -> ScenePayload:
  return _share_scene("gold_share", "goldEarned", "gold", puuid, matches)

def vision_score(puuid: str, matches: Sequence[MatchRecord]) -> ScenePayload:
  rows = _rows(puuid, matches)
  if not rows:
    return _empty("vision_score")
  n = len(rows)
  per_min = [you.visionScore / _minutes(m) if m.gameDuration > 0 else 0.0 for m, you in rows]
  best_m, best_you = max(rows, key=lambda r: r[1].visionScore)
  return _payload("vision_score", n, SceneInsight(
      summary=f"{sum(per_min) / n:.2f} vision score per minute across {n} games.",
      details=[
        f"{sum(y.wardsPlaced for _, y in rows) / n:.1f} wards placed, "
        f"{sum(y.wardsKilled for _, y in rows) / n:.1f} cleared per game",
        f"Best: {best_you.visionScore} vision on {best_you.championName} ({best_m.matchId})",
      ],
      metrics=[SceneMetric(label="Vision / game", value=round(sum(y.visionScore for _, y in rows) / n, 1)),
               SceneMetric(label="Vision / min", value=round(sum(per_min) / n, 2))],
      vizData={"series": [round(x, 2) for x in per_min]},
  ))

def growth_over_time(puuid: str, matches: Sequence[MatchRecord]) -> ScenePayload:
  rows = _rows(puuid, matches)
  if len(rows) < 2:
    return _empty("growth_over_time", "trend (need at least 2 games)")
  half = len(rows) // 2
  # newest first: the tail is the earlier half
  newer = aggregate_player_stats(puuid, [m for m, _ in rows[:half]])
  older = aggregate_player_stats(puuid, [m for m, _ in rows[half:]])
  delta_wr = newer.winRate - older.winRate
  delta_kda = newer.avgKDA - older.avgKDA
  trend = "up" if delta_wr > 0 else ("down" if delta_wr < 0 else "stable")
  return _payload("growth_over_time", len(rows), SceneInsight(
      summary=f"Win rate went from {_pct(older.winRate)} to {_pct(newer.winRate)}.",
      details=[f"KDA {older.avgKDA:.2f} -> {newer.avgKDA:.2f}"],
      metrics=[SceneMetric(label="Win rate change", value=round(delta_wr, 4)),
               SceneMetric(label="KDA change", value=round(delta_kda, 2))],
      vizData={"trend": trend,
               "older": {"winRate": older.winRate, "kda": older.avgKDA, "games": older.totalGames},
               "newer": {"winRate": newer.winRate, "kda": newer.avgKDA, "games": newer.totalGames}},
  ))

def _gaps(puuid: str, matches: Sequence[MatchRecord]) -> Tuple[int, List[Tuple[str, float, float]]]:
  """(games, [(benchmark, value, target)]) for every benchmark the player misses, worst first."""
  rows = _rows(puuid, matches)
  if not rows:
    return 0, []
  s = aggregate_player_stats(puuid, [m for m, _ in rows])
  minutes = sum(_minutes(m) for m, _ in rows)
  values = {
    "deaths": s.avgDeaths,
    "vision": sum(y.visionScore for _, y in rows) / minutes if minutes > 0 else 0.0,
    "cs": sum(y.totalMinionsKilled + y.neutralMinionsKilled for _, y in rows) / minutes if minutes > 0 else 0.0,
    "winrate": s.winRate,
    "kda": s.avgKDA,
  }
  misses = []
  for name, (_, target, higher) in BENCHMARKS.items():
    v = values[name]
    gap = (target - v) / target if higher else (v - target) / target
    if gap > 0:
      misses.append((gap, name, v, target))
  misses.sort(key=lambda t: (-t[0], t[1]))
  return len(rows), [(name, v, target) for _, name, v, target in misses]

def weaknesses(puuid: str, matches: Sequence[MatchRecord]) -> ScenePayload:
  games, misses = _gaps(puuid, matches)
  if games == 0:
    return _empty("weaknesses")
  if not misses:
    return _payload("weaknesses", games, SceneInsight(
        summary="Every benchmark met. Keep it up.",
        action="Push the standard: raise your targets by 10%."))
  return _payload("weaknesses", games, SceneInsight(
      summary=f"{len(misses)} area(s) below benchmark, biggest gap: {BENCHMARKS[misses[0][0]][0]}.",
      details=[f"{BENCHMARKS[n][0]}: {v:.2f} (target {t:.2f})" for n, v, t in misses],
      metrics=[SceneMetric(label=BENCHMARKS[n][0], value=round(v, 2)) for n, v, _ in misses],
      vizData={"gaps": [{"area": n, "value": round(v, 4), "target": t} for n, v, t in misses]},
  ))

def aram(puuid: str, matches: Sequence[MatchRecord]) -> ScenePayload:
  subset = [m for m in matches if m.queueId == ARAM_QUEUE or m.gameMode == "ARAM"]
  return _record_scene("aram", puuid, subset, "ARAM games")

def ranked_stats(puuid: str, matches: Sequence[MatchRecord]) -> ScenePayload:
  subset = [m for m in matches if m.queueId in RANKED_QUEUES]
  payload = _record_scene("ranked_stats", puuid, subset, "ranked games")
  if payload.gamesAnalyzed:
    split = Counter("solo" if m.queueId == 420 else "flex" for m in subset if find_participant(m, puuid))
    payload.insight.vizData["queues"] = dict(sorted(split.items()))
  return payload

def path_forward(puuid: str, matches: Sequence[MatchRecord]) -> ScenePayload:
  games, misses = _gaps(puuid, matches)
  if games == 0:
    return _empty("path_forward")
  focus = []
  for name, v, target in misses[:3]:
    label, _, higher = BENCHMARKS[name]
    op = ">=" if higher else "<="
    focus.append(f"{label} {op} {target:g} over the next 10 games (now {v:.2f})")
  if not focus:
    focus = ["Hold every benchmark for the next 20 games"]
  return _payload("path_forward", games, SceneInsight(
      summary="Three targets for the road ahead." if len(focus) == 3 else "Your next targets.",
      details=focus,
      action=focus[0],
  ))


SCENES: Dict[str, SceneDefinition] = {
  "year_in_motion": SceneDefinition("Year in Motion", "heatmap", year_in_motion),
  "signature_champion": SceneDefinition("Signature Champion", "radar", signature_champion),
  "damage_share": SceneDefinition("Damage Share", "bar", damage_share),
  "gold_share": SceneDefinition("Gold Share", "line", gold_share),
  "vision_score": SceneDefinition("Vision Score", "bar", vision_score),
  "growth_over_time": SceneDefinition("Growth Over Time", "line", growth_over_time),
  "weaknesses": SceneDefinition("Areas for Growth", "bar", weaknesses),
  "aram": SceneDefinition("ARAM Adventures", "infographic", aram),
  "ranked_stats": SceneDefinition("Ranked Journey", "highlight", ranked_stats),
  "path_forward": SceneDefinition("Path Forward", "highlight", path_forward),
}

def compute_scene(scene_id: str, puuid: str, matches: Sequence[MatchRecord]) -> ScenePayload:
  d = SCENES.get(scene_id)
  if d is None:
    raise ValueError(f"scene must be one of: {', '.join(SCENES)}")
  return d.compute(puuid, matches)
