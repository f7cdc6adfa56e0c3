from typing import Optional

from fastapi import APIRouter, HTTPException, Request

from rewind_stats.config import DEFAULT_SEASON
from rewind_stats.models import ScenePayload
from rewind_stats.routes.stats import orchestrator, resolve_puuid
from rewind_stats.services.scenes import SCENES

router = APIRouter(prefix="/api", tags=["scenes"])


@router.get("/scenes")
async def list_scenes():
  return [{"id": sid, "label": d.label, "vizKind": d.viz_kind} for sid, d in SCENES.items()]


@router.get("/scenes/{scene_id}", response_model=ScenePayload)
async def scene(
    request: Request,
    scene_id: str,
    region: str,
    puuid: Optional[str] = None,
    riotId: Optional[str] = None,
    season: str = DEFAULT_SEASON,
):
  pid = await resolve_puuid(request, region, puuid, riotId)
  try:
    return await orchestrator(request).get_scene(pid, scene_id, region, season)
  except ValueError as e:
    raise HTTPException(400, str(e))
