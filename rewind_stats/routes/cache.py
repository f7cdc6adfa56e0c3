from fastapi import APIRouter, HTTPException, Request

from rewind_stats.models import ClearCacheResponse
from rewind_stats.routes.stats import orchestrator

router = APIRouter(prefix="/api", tags=["cache"])


@router.api_route("/clear-cache", methods=["GET", "POST"], response_model=ClearCacheResponse)
async def clear_cache(request: Request, puuid: str = ""):
  """Purge every summary, scene and match-id list cached for a player."""
  if not puuid:
    raise HTTPException(400, "PUUID is required")
  result = await orchestrator(request).invalidate_all(puuid)
  cleared = result.cleared
  msg = f"Cleared {len(cleared)} cache keys"
  if result.failed:
    msg += f", {len(result.failed)} failed"
  return ClearCacheResponse(
      success=not result.failed,
      message=msg,
      keysCleared=cleared,
      failedKeys=result.failed,
  )
