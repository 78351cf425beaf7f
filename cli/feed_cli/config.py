"""
Configuration management for the Livefeed CLI.

State file (~/.livefeed/state.json):
  {
    "filters": {
      "types": {"info": true, "warn": true, "error": false, "debug": true},
      "source": "",
      "search": "",
      "startDate": "",
      "endDate": "",
      "sortDirection": "desc",
      "pageSize": 50
    },
    "paused": false
  }

Filters and the pause flag survive restarts. A missing or corrupt file
restores defaults; each filter field falls back on its own.

API URL resolution order:
  1. FEED_API_URL environment variable
  2. --api-url command line flag
  3. Fallback: http://localhost:8000
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path

from engine.kernel.filters import DEFAULT_FILTERS, FilterState

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "http://localhost:8000"


class Config:
    """Config manager for the Livefeed CLI."""

    def __init__(self, api_url_override: str | None = None, config_dir: Path | None = None):
        """
        Initialize config.

        Args:
            api_url_override: Optional --api-url flag value
            config_dir: Directory holding state.json (defaults to ~/.livefeed)
        """
        self.config_dir = config_dir or Path.home() / ".livefeed"
        self.state_file = self.config_dir / "state.json"
        self._api_url_override = api_url_override

    @property
    def api_url(self) -> str:
        """Current API URL, without a trailing slash."""
        env_url = os.environ.get("FEED_API_URL")
        if env_url:
            return env_url.rstrip("/")

        if self._api_url_override:
            return self._api_url_override.rstrip("/")

        return DEFAULT_API_URL

    def load_state(self) -> tuple[FilterState, bool]:
        """Restore (filters, paused). Never raises."""
        if not self.state_file.exists():
            return DEFAULT_FILTERS, False

        try:
            with open(self.state_file) as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable state file %s: %s", self.state_file, e)
            return DEFAULT_FILTERS, False

        if not isinstance(data, dict):
            return DEFAULT_FILTERS, False

        paused = data.get("paused")
        return FilterState.from_persisted(data.get("filters")), paused is True

    def save_state(self, filters: FilterState, paused: bool) -> None:
        """Write filters and the pause flag to disk."""
        self.config_dir.mkdir(parents=True, exist_ok=True)
        with open(self.state_file, "w") as f:
            json.dump({"filters": filters.to_persisted(), "paused": paused}, f, indent=2)

    def clear_state(self) -> None:
        """Delete the state file."""
        if self.state_file.exists():
            self.state_file.unlink()
