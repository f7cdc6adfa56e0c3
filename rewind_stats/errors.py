class RewindError(Exception):
  """Base exception for the stats service."""


class UpstreamUnavailable(RewindError):
  """Riot API rate limited, 5xx or unreachable. Retryable, never cached."""


class NotFound(RewindError):
  """Player or match does not exist upstream (404)."""


class CacheBackendUnavailable(RewindError):
  """The cache backend could not be reached."""


class MalformedRecord(RewindError):
  """A match payload is missing fields required for aggregation."""
