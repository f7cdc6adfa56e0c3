import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse

from rewind_stats.cache.store import RedisCacheStore, build_cache_store
from rewind_stats.config import LOG_LEVEL, REDIS_URL
from rewind_stats.errors import NotFound, UpstreamUnavailable
from rewind_stats.logging_config import setup_logging
from rewind_stats.riot_client import RiotClient
from rewind_stats.routes.cache import router as cache_router
from rewind_stats.routes.scenes import router as scenes_router
from rewind_stats.routes.stats import router as stats_router
from rewind_stats.services.orchestrator import StatsOrchestrator

log = logging.getLogger(__name__)


def create_app(orchestrator: Optional[StatsOrchestrator] = None) -> FastAPI:
  @asynccontextmanager
  async def lifespan(app: FastAPI):
    if orchestrator is not None:
      app.state.orchestrator = orchestrator
      yield
      return
    store = build_cache_store(REDIS_URL)
    async with RiotClient() as rc:
      app.state.orchestrator = StatsOrchestrator(rc, store)
      yield
    if isinstance(store, RedisCacheStore):
      await store.close()

  app = FastAPI(title="Rift Rewind Stats", lifespan=lifespan)

  #health check
  @app.get("/api/health", response_class=PlainTextResponse)
  async def health():
    return "ok"

  @app.exception_handler(NotFound)
  async def not_found(request: Request, exc: NotFound):
    return JSONResponse({"detail": f"Not found: {exc}"}, status_code=404)

  @app.exception_handler(UpstreamUnavailable)
  async def upstream_unavailable(request: Request, exc: UpstreamUnavailable):
    log.warning("Upstream unavailable for %s: %s", request.url.path, exc)
    return JSONResponse({"detail": "Riot API unavailable, retry later"}, status_code=503,
                        headers={"Retry-After": "5"})

  #register API routes
  app.include_router(stats_router)
  app.include_router(scenes_router)
  app.include_router(cache_router)
  return app


setup_logging(LOG_LEVEL)
app = create_app()
