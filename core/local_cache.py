"""
Local persistent cache.

A durable key-value store on the device, backed by diskcache. It holds two
kinds of entries:

    SESSION_KEY            - the last authenticated Session (JSON)
    state_key(username)    - the last full ApplicationData for that company (JSON)

Values are stored as strings. Reads and writes are fast and synchronous;
diskcache is thread-safe and process-safe, so the sync engine's timer threads
and request threads can share one instance.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Union

import diskcache

from logging_config import get_logger


# Module logger
logger = get_logger(__name__)


SESSION_KEY = "fieldEstimatorSession"
STATE_KEY_PREFIX = "fieldEstimatorState_"


def state_key(username: str) -> str:
    """Cache key of the state backup for one company."""
    return f"{STATE_KEY_PREFIX}{username}"


class LocalCache:
    """
    Disk-backed key-value store.

    Attributes:
        cache_dir: Directory holding the cache files
    """

    def __init__(self, cache_dir: Union[str, Path]):
        """
        Open (or create) the cache.

        Args:
            cache_dir: Directory for the cache files, created if missing
        """
        self.cache_dir = Path(cache_dir)
        self._cache = diskcache.Cache(str(self.cache_dir))
        logger.info(f"Local cache opened at {self.cache_dir}")

    def get(self, key: str) -> Optional[str]:
        """Return the stored value, or None if absent."""
        return self._cache.get(key, default=None)

    def set(self, key: str, value: str) -> None:
        self._cache.set(key, value)

    def delete(self, key: str) -> None:
        self._cache.delete(key)

    def close(self) -> None:
        """Close the cache and release file handles."""
        self._cache.close()
