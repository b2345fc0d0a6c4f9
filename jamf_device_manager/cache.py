"""
Local file-based caching for dashboard data.

Keeps the most recent Advanced Search result on disk so repeated dashboard
runs within the TTL do not refetch the whole search from Jamf Pro.
"""

from __future__ import annotations

import json
import logging
import time
from pathlib import Path
from typing import Any, Callable, Optional

from .config import DEFAULT_CACHE_DIR

SLOT_FILENAME = "dashboard.json"


class SearchCache:
    """
    Single-slot file cache with TTL support.

    Only one entry exists at a time. Storing or selecting a different key
    drops the previous entry. The entry is a JSON file holding the key, the
    time it was cached and the data.
    """

    def __init__(
        self,
        cache_dir: Optional[Path] = None,
        ttl: int = 300,
        clock: Callable[[], float] = time.time,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Initialize the cache.

        Args:
            cache_dir: Directory for the cache file (default: ~/.jamf_device_manager/cache)
            ttl: Time-to-live in seconds (default: 300 = 5 minutes)
            clock: Time source, seconds since epoch
            logger: Optional logger instance

        Examples:
            >>> cache = SearchCache()
            >>> cache.set("https://tenant.jamfcloud.com|search=7", {"computers": []})
        """
        self.cache_dir = cache_dir or DEFAULT_CACHE_DIR
        self.ttl = ttl
        self._clock = clock
        self.logger = logger or logging.getLogger(__name__)

    @property
    def path(self) -> Path:
        return self.cache_dir / SLOT_FILENAME

    def _read(self) -> Optional[dict]:
        if not self.path.exists():
            return None
        try:
            with self.path.open("r", encoding="utf-8") as f:
                entry = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            self.logger.warning(f"Invalid cache entry in {self.path}: {e}")
            self.invalidate()
            return None
        return entry if isinstance(entry, dict) else None

    @property
    def key(self) -> Optional[Any]:
        entry = self._read()
        return entry.get("key") if entry else None

    def get(self, key: Any) -> Optional[Any]:
        """
        Return cached data for ``key`` if present, fresh and non-empty.

        Returns:
            Cached data, or None on a miss
        """
        entry = self._read()
        if entry is None or entry.get("key") != key:
            self.logger.debug(f"Cache miss: {key}")
            return None

        age = self._clock() - entry.get("cached_at", 0)
        if age >= self.ttl:
            self.logger.debug(f"Cache expired: {key} (age: {age:.1f}s, ttl: {self.ttl}s)")
            self.invalidate()
            return None

        data = entry.get("data")
        if not data:
            return None
        self.logger.debug(f"Cache hit: {key} (age: {age:.1f}s)")
        return data

    def set(self, key: Any, data: Any) -> None:
        """Store ``data`` (JSON-serializable) as the only entry."""
        entry = {"key": key, "cached_at": self._clock(), "data": data}
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            with self.path.open("w", encoding="utf-8") as f:
                json.dump(entry, f)
            self.logger.debug(f"Cache stored: {key}")
        except (TypeError, OSError) as e:
            self.logger.warning(f"Failed to cache {key}: {e}")

    def invalidate(self) -> None:
        self.path.unlink(missing_ok=True)

    def select(self, key: Any) -> None:
        """Switch to ``key``; an entry cached under another key is dropped."""
        current = self.key
        if current is not None and current != key:
            self.logger.debug(f"Clearing cache for key change: {current} -> {key}")
            self.invalidate()


def make_cache_key(tenant_url: str, endpoint: str, **params) -> str:
    """
    Generate a cache key for an API resource.

    Examples:
        >>> make_cache_key("https://tenant.jamfcloud.com", "/advancedcomputersearches", search_id=7)
        'https://tenant.jamfcloud.com|/advancedcomputersearches|search_id=7'
    """
    param_str = "|".join(f"{k}={v}" for k, v in sorted(params.items()))
    parts = [tenant_url, endpoint]
    if param_str:
        parts.append(param_str)
    return "|".join(parts)
