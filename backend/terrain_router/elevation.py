"""
Elevation Data Service

Resolves point elevations from a remote point-lookup service
(Geonorge hoydedata by default). Lookups are sent in bounded batches so
the provider never sees more than `concurrency` requests at once.

A failed lookup resolves to 0 m unless strict mode is enabled, in which
case the whole request fails with an UpstreamError.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Sequence

import httpx

from .cancellation import CancellationToken, check_cancelled
from .config import DEFAULT_ELEVATION_URL
from .errors import UpstreamError
from .geometry import GeoPoint

logger = logging.getLogger(__name__)

GRID_CONCURRENCY = 25
PROFILE_CONCURRENCY = 10


class ElevationService:
    """
    Client for a point-elevation service.

    Each point is one GET request; batches of points are awaited together
    and written back by index, so output order always matches input order.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_ELEVATION_URL,
        timeout: float = 10.0,
        strict: bool = False,
        client: Optional[httpx.AsyncClient] = None
    ):
        self.base_url = base_url
        self.strict = strict
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=timeout)

    async def aclose(self) -> None:
        """Close the HTTP client if this service created it."""
        if self._owns_client:
            await self.client.aclose()

    @staticmethod
    def _parse_elevation(data: Dict[str, Any]) -> Optional[float]:
        """Pull the height out of a provider response, None if it has no data."""
        points = data.get("punkter") or []
        if points and points[0].get("z") is not None:
            return float(points[0]["z"])
        if data.get("hoyde") is not None:
            return float(data["hoyde"])
        return None

    async def get_elevation_at_point(self, lon: float, lat: float) -> Optional[float]:
        """
        Get elevation at a single point.

        Returns:
            Elevation in meters, or None if the lookup failed or the
            provider has no data for the point
        """
        params = {
            "nord": lat,
            "ost": lon,
            "koordsys": 4258,
            "geojson": "false",
        }
        try:
            response = await self.client.get(self.base_url, params=params)
        except httpx.HTTPError as e:
            logger.debug("[Elevation] Request failed at (%.5f, %.5f): %s", lon, lat, e)
            return None

        if response.status_code != 200:
            logger.debug("[Elevation] Status %d at (%.5f, %.5f)", response.status_code, lon, lat)
            return None

        try:
            return self._parse_elevation(response.json())
        except (ValueError, TypeError, AttributeError, IndexError) as e:
            logger.debug("[Elevation] Bad response at (%.5f, %.5f): %s", lon, lat, e)
            return None

    async def get_elevations(
        self,
        points: Sequence[GeoPoint],
        concurrency: int = GRID_CONCURRENCY,
        cancel_token: Optional[CancellationToken] = None
    ) -> List[float]:
        """
        Fetch elevations for many points in batches.

        Args:
            points: (lon, lat) tuples
            concurrency: Maximum lookups in flight at once
            cancel_token: Polled before each batch

        Returns:
            Elevations in meters, index-aligned with points. Failed lookups
            are 0.0 (or raise UpstreamError in strict mode).
        """
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")

        results: List[float] = [0.0] * len(points)
        failures = 0

        for b in range(0, len(points), concurrency):
            check_cancelled(cancel_token)

            batch = points[b:b + concurrency]
            batch_results = await asyncio.gather(
                *(self.get_elevation_at_point(lon, lat) for lon, lat in batch)
            )

            for i, elevation in enumerate(batch_results):
                if elevation is None:
                    if self.strict:
                        lon, lat = batch[i]
                        raise UpstreamError(f"Elevation lookup failed at {lon:.5f},{lat:.5f}")
                    failures += 1
                    elevation = 0.0
                results[b + i] = elevation

        if failures:
            logger.warning(
                "[Elevation] %d of %d lookups failed, using 0 m for those points",
                failures, len(points)
            )

        return results
