from typing import Optional

from fastapi import APIRouter, HTTPException, Query, Request

from rewind_stats.config import DEFAULT_SEASON, QUEUES
from rewind_stats.models import PlayerStatsSummary
from rewind_stats.services.orchestrator import StatsOrchestrator

router = APIRouter(prefix="/api", tags=["stats"])


def orchestrator(request: Request) -> StatsOrchestrator:
  return request.app.state.orchestrator


def queue_filter(queue: str) -> str:
  """Accept UI mode names (solo, flex, aram) as well as queue ids."""
  ids = QUEUES.get(queue.lower())
  return str(ids[0]) if ids and len(ids) == 1 else queue


async def resolve_puuid(request: Request, region: str, puuid: Optional[str], riotId: Optional[str]) -> str:
  if puuid:
    return puuid
  if not riotId:
    raise HTTPException(400, "puuid or riotId is required")
  riot_id = riotId.replace("%23", "#")
  if "#" not in riot_id:
    raise HTTPException(400, "riotId must be formatted as Name#TAG (e.g., MK1Paris#NA1)")
  name, tag = riot_id.split("#", 1)
  try:
    return await orchestrator(request).fetcher.puuid_by_riot_id(region, name, tag)
  except ValueError as e:
    raise HTTPException(400, str(e))


@router.get("/stats", response_model=PlayerStatsSummary)
async def player_stats(
    request: Request,
    region: str,
    puuid: Optional[str] = None,
    riotId: Optional[str] = None,
    queue: str = "all",
    type_: str = Query("all", alias="type"),
    season: str = DEFAULT_SEASON,
):
  """
  Example:
    /api/stats?region=americas&riotId=MK1Paris%23NA1&queue=420&type=ranked
  """
  pid = await resolve_puuid(request, region, puuid, riotId)
  try:
    return await orchestrator(request).get_or_compute(pid, region, queue_filter(queue), type_, season)
  except ValueError as e:
    raise HTTPException(400, str(e))
