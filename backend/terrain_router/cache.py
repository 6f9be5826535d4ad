"""
Route Cache

Short-lived memoization of finished route responses. Entries expire
after a fixed TTL and are dropped lazily when read.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Sequence

from .geometry import GeoPoint

logger = logging.getLogger(__name__)

ROUTE_CACHE_TTL_S = 15 * 60


@dataclass(frozen=True)
class CacheEntry:
    payload: Any
    created_at: float


class RouteCache:
    """
    TTL cache keyed by route type and request parameters.

    Safe to share between worker threads; concurrent writers for the same
    key simply overwrite each other.
    """

    def __init__(
        self,
        ttl_seconds: float = ROUTE_CACHE_TTL_S,
        clock: Callable[[], float] = time.monotonic
    ):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    @staticmethod
    def make_key(route_type: str, waypoints: Sequence[GeoPoint]) -> str:
        """
        Canonical key from parsed waypoints (from, via..., to).

        Coordinates are written with repr, so '18.5,69' and '18.50,69.0'
        map to the same key, e.g. 'terrain:18.5,69.0|18.6,69.0|18.55,69.02'.
        """
        def fmt(point: GeoPoint) -> str:
            return f"{point[0]!r},{point[1]!r}"

        via = ";".join(fmt(p) for p in waypoints[1:-1])
        return f"{route_type}:{fmt(waypoints[0])}|{fmt(waypoints[-1])}|{via}"

    def get(self, key: str) -> Optional[Any]:
        """Payload for key, or None on miss or expiry."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._clock() - entry.created_at >= self.ttl_seconds:
                del self._entries[key]
                logger.debug("[Cache] Expired %s", key)
                return None
            return entry.payload

    def put(self, key: str, payload: Any) -> None:
        with self._lock:
            self._entries[key] = CacheEntry(payload=payload, created_at=self._clock())

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
