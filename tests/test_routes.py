"""HTTP tests for the API routes over a fake match source."""

import pytest
from fastapi.testclient import TestClient

from rewind_stats.cache.keys import summary_key
from rewind_stats.cache.store import MemoryCacheStore
from rewind_stats.config import DEFAULT_SEASON, SCENE_IDS
from rewind_stats.errors import UpstreamUnavailable
from rewind_stats.main import create_app
from rewind_stats.services.orchestrator import StatsOrchestrator
from tests.factories import ME, FakeFetcher, three_matches


@pytest.fixture
def fetcher():
  matches = three_matches()
  return FakeFetcher(default_ids=[m.matchId for m in matches], details={m.matchId: m for m in matches})


@pytest.fixture
def store():
  return MemoryCacheStore()


@pytest.fixture
def client(fetcher, store):
  with TestClient(create_app(StatsOrchestrator(fetcher, store))) as c:
    yield c


class TestStatsRoute:
  """GET /api/stats."""

  def test_health(self, client):
    """Test the health check."""
    r = client.get("/api/health")
    assert r.status_code == 200
    assert r.text == "ok"

  def test_stats_by_puuid(self, client, store):
    """Test a summary is returned and cached."""
    r = client.get("/api/stats", params={"region": "americas", "puuid": ME})

    assert r.status_code == 200
    body = r.json()
    assert body["totalGames"] == 3
    assert body["recentForm"] == [True, False, True]
    assert body["championStats"][0]["championName"] == "Ahri"
    assert summary_key(ME, "americas", "all", "all", DEFAULT_SEASON) in store

  def test_stats_by_riot_id(self, client):
    """Test a Riot id is resolved to a puuid first."""
    r = client.get("/api/stats", params={"region": "americas", "riotId": "MK1Paris#NA1"})
    assert r.status_code == 200
    assert r.json()["puuid"] == ME

  def test_type_filter_alias(self, client, fetcher):
    """Test the type query parameter reaches the source."""
    r = client.get("/api/stats", params={"region": "americas", "puuid": ME, "queue": "420", "type": "ranked"})
    assert r.status_code == 200
    assert fetcher.list_calls[0][2:4] == ("420", "ranked")

  def test_queue_mode_name(self, client, fetcher):
    """Test UI mode names map to queue ids."""
    r = client.get("/api/stats", params={"region": "americas", "puuid": ME, "queue": "flex"})
    assert r.status_code == 200
    assert fetcher.list_calls[0][2] == "440"

  def test_player_required(self, client):
    """Test a request without a player is rejected."""
    assert client.get("/api/stats", params={"region": "americas"}).status_code == 400

  def test_bad_riot_id(self, client):
    """Test a Riot id without a tag is rejected."""
    r = client.get("/api/stats", params={"region": "americas", "riotId": "NoTag"})
    assert r.status_code == 400

  def test_bad_dimension(self, client):
    """Test an unknown queue is a client error."""
    r = client.get("/api/stats", params={"region": "americas", "puuid": ME, "queue": "999"})
    assert r.status_code == 400

  def test_unknown_player(self, client):
    """Test an unknown Riot id maps to 404."""
    r = client.get("/api/stats", params={"region": "americas", "riotId": "Ghost#NA1"})
    assert r.status_code == 404

  def test_upstream_unavailable(self, client, fetcher):
    """Test an outage with no match data at all maps to 503 with Retry-After."""
    for mid in list(fetcher.details):
      fetcher.details[mid] = UpstreamUnavailable("503")
    r = client.get("/api/stats", params={"region": "americas", "puuid": ME})

    assert r.status_code == 503
    assert r.headers["Retry-After"] == "5"

  def test_partial_outage_still_answers(self, client, fetcher, store):
    """Test a partly reachable history is served but not cached."""
    fetcher.details["NA1_2"] = UpstreamUnavailable("503")
    r = client.get("/api/stats", params={"region": "americas", "puuid": ME})

    assert r.status_code == 200
    assert r.json()["totalGames"] == 2
    assert summary_key(ME, "americas", "all", "all", DEFAULT_SEASON) not in store


class TestScenesRoute:
  """GET /api/scenes and /api/scenes/{id}."""

  def test_catalogue(self, client):
    """Test the scene list follows the configured order."""
    r = client.get("/api/scenes")
    assert r.status_code == 200
    assert [s["id"] for s in r.json()] == list(SCENE_IDS)

  def test_scene(self, client):
    """Test one scene is computed for a player."""
    r = client.get("/api/scenes/signature_champion", params={"region": "americas", "puuid": ME})

    assert r.status_code == 200
    body = r.json()
    assert body["sceneId"] == "signature_champion"
    assert body["gamesAnalyzed"] == 3

  def test_unknown_scene(self, client):
    """Test an unknown scene id is rejected."""
    r = client.get("/api/scenes/credits", params={"region": "americas", "puuid": ME})
    assert r.status_code == 400


class TestClearCacheRoute:
  """GET/POST /api/clear-cache."""

  def test_clear_cache(self, client, store):
    """Test every per-player key is reported cleared and the summary is gone."""
    client.get("/api/stats", params={"region": "americas", "puuid": ME})
    r = client.post("/api/clear-cache", params={"puuid": ME})

    assert r.status_code == 200
    body = r.json()
    assert body["success"] is True
    assert len(body["keysCleared"]) == 148
    assert body["failedKeys"] == []
    assert body["message"] == "Cleared 148 cache keys"
    assert summary_key(ME, "americas", "all", "all", DEFAULT_SEASON) not in store

  def test_clear_cache_get(self, client):
    """Test the GET form is accepted too."""
    assert client.get("/api/clear-cache", params={"puuid": ME}).status_code == 200

  def test_puuid_required(self, client):
    """Test clearing without a puuid is rejected."""
    assert client.post("/api/clear-cache").status_code == 400
