"""Centralized logging configuration for the stats service."""

import logging
import sys
from typing import Optional


def setup_logging(level: Optional[str] = None) -> None:
  """
  Configure logging for the whole application.

  Args:
    level: DEBUG, INFO, WARNING, ERROR or CRITICAL. Defaults to INFO.
  """
  log_level = getattr(logging, level.upper(), logging.INFO) if level else logging.INFO

  logging.basicConfig(
      level=log_level,
      format="%(asctime)s | %(levelname)-8s | %(name)s: %(message)s",
      datefmt="%Y-%m-%d %H:%M:%S",
      handlers=[logging.StreamHandler(sys.stdout)],
  )

  # one line per request is too chatty at INFO
  logging.getLogger("httpx").setLevel(logging.WARNING)
  logging.getLogger("httpcore").setLevel(logging.WARNING)

  logging.getLogger("rewind_stats").setLevel(log_level)
  logging.getLogger(__name__).info("Logging initialized at level: %s", logging.getLevelName(log_level))
