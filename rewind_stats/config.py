import os
from dotenv import load_dotenv

load_dotenv()

# checked lazily by RiotClient so the cache layer can run without a key
RIOT_API_KEY = os.getenv("RIOT_API_KEY")
REDIS_URL = os.getenv("REDIS_URL") or None
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

REGIONAL = {
  "americas": "americas.api.riotgames.com",
  "europe":   "europe.api.riotgames.com",
  "asia":     "asia.api.riotgames.com",
  "sea":      "sea.api.riotgames.com",
}

#UI-game mode
QUEUES = {
  "solo": [420],
  "flex": [440],
  "normal": [400, 430],
  "aram": [450],
  "clash": [700],
}

RANKED_QUEUES = (420, 440)

SCENE_IDS = (
  "year_in_motion",
  "signature_champion",
  "damage_share",
  "gold_share",
  "vision_score",
  "growth_over_time",
  "weaknesses",
  "aram",
  "ranked_stats",
  "path_forward",
)

SEASON_TIMES = {
  # (start_iso, end_iso), end exclusive
  "2024": ("2024-01-10T00:00:00Z", "2025-01-09T00:00:00Z"),
  "2025": ("2025-01-09T00:00:00Z", "2026-01-08T00:00:00Z"),
}
DEFAULT_SEASON = os.getenv("DEFAULT_SEASON", "2025")

# every dimension a per-player cache key can take; invalidation walks all of it
KEY_SPACE = {
  "regions": tuple(REGIONAL),
  "queue_filters": ("all", "420", "440", "450"),
  "type_filters": ("all", "ranked"),
  "seasons": tuple(SEASON_TIMES),
  "scene_ids": SCENE_IDS,
}

# TTLs (seconds) per namespace
MATCH_TTL = int(os.getenv("MATCH_TTL", str(7 * 24 * 3600)))   # match history is immutable
MATCH_IDS_TTL = int(os.getenv("MATCH_IDS_TTL", "3600"))
SUMMARY_TTL = int(os.getenv("SUMMARY_TTL", "300"))
SCENE_TTL = int(os.getenv("SCENE_TTL", "3600"))

FETCH_CONCURRENCY = int(os.getenv("FETCH_CONCURRENCY", "8"))
# most recent matches per summary, paged out of the season window
MATCH_COUNT = int(os.getenv("MATCH_COUNT", "20"))
# match-v5 caps one id page at 100
MATCH_PAGE_SIZE = min(100, int(os.getenv("MATCH_PAGE_SIZE", "100")))
