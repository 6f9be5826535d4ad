"""
Road Routing Service

Delegates road routing to an OSRM-compatible service. No local graph:
this only builds the request, checks the answer and thins out long
geometries for display.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import httpx

from .config import DEFAULT_OSRM_URL
from .errors import NoRouteFoundError, UpstreamError, ValidationError
from .geometry import GeoPoint, simplify_line

logger = logging.getLogger(__name__)

MAX_ROAD_POINTS = 150


@dataclass
class RoadRoute:
    """A road route returned by the routing service"""
    coordinates: List[GeoPoint]
    distance_km: float  # Rounded to 0.1 km
    duration_min: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "coordinates": [[lon, lat] for lon, lat in self.coordinates],
            "distanceKm": self.distance_km,
            "durationMin": self.duration_min,
        }


class RoadService:
    """
    Client for the OSRM route API.

    Usage:
        service = RoadService()
        route = await service.get_route([(10.75, 59.91), (10.40, 63.43)])
    """

    def __init__(
        self,
        base_url: str = DEFAULT_OSRM_URL,
        profile: str = "driving",
        timeout: float = 30.0,
        max_points: int = MAX_ROAD_POINTS,
        client: Optional[httpx.AsyncClient] = None
    ):
        self.base_url = base_url.rstrip("/")
        self.profile = profile
        self.max_points = max_points
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=timeout)

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    @staticmethod
    def coordinate_string(waypoints: Sequence[GeoPoint]) -> str:
        """OSRM path parameter: 'lon,lat;lon,lat;...'."""
        return ";".join(f"{lon},{lat}" for lon, lat in waypoints)

    async def get_route(self, waypoints: Sequence[GeoPoint]) -> RoadRoute:
        """
        Fetch a road route through the waypoints in order.

        Raises:
            ValidationError: fewer than two waypoints
            UpstreamError: service unreachable or non-2xx response
            NoRouteFoundError: service answered but found no route
        """
        if len(waypoints) < 2:
            raise ValidationError("At least two waypoints are required")

        url = f"{self.base_url}/route/v1/{self.profile}/{self.coordinate_string(waypoints)}"
        params = {"overview": "full", "geometries": "geojson"}

        logger.info("[Roads] Requesting road route through %d waypoints", len(waypoints))

        try:
            response = await self.client.get(url, params=params)
        except httpx.HTTPError as e:
            raise UpstreamError(f"OSRM request failed: {e}") from e

        if response.status_code >= 400:
            raise UpstreamError(f"OSRM error {response.status_code}")

        try:
            data = response.json()
        except ValueError as e:
            raise UpstreamError("OSRM returned an invalid response") from e

        routes = data.get("routes") or []
        if data.get("code") != "Ok" or not routes:
            logger.info("[Roads] No route: code=%s", data.get("code"))
            raise NoRouteFoundError("No route found")

        route = routes[0]
        coordinates = [(float(lon), float(lat)) for lon, lat in route["geometry"]["coordinates"]]

        if len(coordinates) > self.max_points:
            original_count = len(coordinates)
            coordinates = simplify_line(coordinates, self.max_points)
            logger.info("[Roads] Simplified geometry %d -> %d points", original_count, len(coordinates))

        return RoadRoute(
            coordinates=coordinates,
            distance_km=round(route["distance"] / 1000, 1),
            duration_min=round(route["duration"] / 60),
        )
