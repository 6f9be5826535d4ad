"""
Terrain Route Planner

Routes through a list of waypoints one segment at a time:
build a grid for the segment, run terrain A*, snap endpoints, smooth.
Segments are stitched, resampled for display and given an elevation
profile. Also builds elevation profiles for arbitrary polylines.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from .cancellation import CancellationToken, check_cancelled
from .elevation import GRID_CONCURRENCY, PROFILE_CONCURRENCY, ElevationService
from .errors import NoRouteFoundError, ValidationError
from .geometry import GeoPoint, haversine_km, path_length_km, resample_line, smooth_path
from .grid import GRID_HEIGHT, GRID_WIDTH, build_elevation_grid
from .pathfinder import TerrainAStar, TerrainCostConfig

logger = logging.getLogger(__name__)

DISPLAY_POINTS = 80
PROFILE_SAMPLES = 50
SMOOTHING_PASSES = 2


@dataclass
class ProfilePoint:
    """One sample of an elevation profile"""
    lon: float
    lat: float
    elevation: float
    distance_km: float  # Cumulative distance from the first point, rounded to 0.1 km

    def to_dict(self) -> Dict[str, Any]:
        return {
            "lon": self.lon,
            "lat": self.lat,
            "elevation": self.elevation,
            "distanceKm": self.distance_km,
        }


@dataclass
class TerrainRoute:
    """Result of a terrain routing request"""
    coordinates: List[GeoPoint]
    distance_km: float
    elevation_profile: List[ProfilePoint] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "coordinates": [[lon, lat] for lon, lat in self.coordinates],
            "distanceKm": self.distance_km,
            "elevationProfile": [p.to_dict() for p in self.elevation_profile],
        }


@dataclass
class ElevationProfile:
    """Elevation profile along a polyline"""
    points: List[ProfilePoint]
    max_elevation: float
    min_elevation: float
    total_climb: int  # Sum of positive elevation steps, meters

    def to_dict(self) -> Dict[str, Any]:
        return {
            "points": [p.to_dict() for p in self.points],
            "maxElevation": self.max_elevation,
            "minElevation": self.min_elevation,
            "totalClimb": self.total_climb,
        }


def build_profile_points(coordinates: Sequence[GeoPoint], elevations: Sequence[float]) -> List[ProfilePoint]:
    """Pair coordinates with elevations and running distance."""
    profile = []
    cumulative = 0.0
    for i, (lon, lat) in enumerate(coordinates):
        if i > 0:
            cumulative += haversine_km(coordinates[i - 1], (lon, lat))
        profile.append(ProfilePoint(
            lon=lon,
            lat=lat,
            elevation=elevations[i],
            distance_km=round(cumulative, 1),
        ))
    return profile


class TerrainRoutePlanner:
    """
    Multi-waypoint terrain router.

    Every consecutive waypoint pair gets its own grid and its own search;
    grids are never shared between segments.
    """

    def __init__(
        self,
        elevation_service: ElevationService,
        grid_width: int = GRID_WIDTH,
        grid_height: int = GRID_HEIGHT,
        display_points: int = DISPLAY_POINTS,
        grid_concurrency: int = GRID_CONCURRENCY,
        profile_concurrency: int = PROFILE_CONCURRENCY,
        cost_config: Optional[TerrainCostConfig] = None
    ):
        self.elevation_service = elevation_service
        self.grid_width = grid_width
        self.grid_height = grid_height
        self.display_points = display_points
        self.grid_concurrency = grid_concurrency
        self.profile_concurrency = profile_concurrency
        self.cost_config = cost_config or TerrainCostConfig()

    async def route_segment(
        self,
        start: GeoPoint,
        end: GeoPoint,
        cancel_token: Optional[CancellationToken] = None
    ) -> List[GeoPoint]:
        """
        Route one waypoint pair.

        Returns:
            Smoothed path whose first/last points are exactly start/end,
            or just [start] when start and end are the same point

        Raises:
            NoRouteFoundError: if the slope limit blocks every path
        """
        grid, start_idx, end_idx = await build_elevation_grid(
            start, end, self.elevation_service,
            width=self.grid_width,
            height=self.grid_height,
            concurrency=self.grid_concurrency,
            cancel_token=cancel_token,
        )

        pathfinder = TerrainAStar(grid, self.cost_config)
        path_indices, stats = pathfinder.find_path(start_idx, end_idx, cancel_token=cancel_token)
        if path_indices is None:
            logger.info("[Terrain] Segment failed: %s", stats.get("error"))
            raise NoRouteFoundError("No passable terrain route found")

        if start == end:
            return [start]

        coords = [grid.point(idx) for idx in path_indices]
        if len(coords) == 1:
            # Start and end snapped to the same cell
            coords.append(coords[0])

        # Replace the nearest-cell approximations with the real endpoints
        coords[0] = start
        coords[-1] = end

        for _ in range(SMOOTHING_PASSES):
            coords = smooth_path(coords)

        return coords

    async def plan(
        self,
        waypoints: Sequence[GeoPoint],
        cancel_token: Optional[CancellationToken] = None
    ) -> TerrainRoute:
        """
        Route through all waypoints in order.

        Args:
            waypoints: start, optional via points, end as (lon, lat)
            cancel_token: Polled between segments and inside each segment

        Returns:
            TerrainRoute with display geometry, distance and elevation profile
        """
        if len(waypoints) < 2:
            raise ValidationError("At least two waypoints are required")

        segment_count = len(waypoints) - 1
        full_path: List[GeoPoint] = []

        for seg in range(segment_count):
            check_cancelled(cancel_token)
            start = waypoints[seg]
            end = waypoints[seg + 1]

            logger.info(
                "[Terrain] Segment %d/%d: (%.5f, %.5f) -> (%.5f, %.5f)",
                seg + 1, segment_count, start[0], start[1], end[0], end[1]
            )
            seg_coords = await self.route_segment(start, end, cancel_token=cancel_token)

            # Skip first point of later segments, it repeats the previous end
            if seg == 0:
                full_path.extend(seg_coords)
            else:
                full_path.extend(seg_coords[1:])

        if len(full_path) == 1:
            # Every waypoint is the same point
            full_path.append(full_path[0])

        full_path = resample_line(full_path, self.display_points)

        check_cancelled(cancel_token)
        elevations = await self.elevation_service.get_elevations(
            full_path, concurrency=self.profile_concurrency, cancel_token=cancel_token
        )
        profile = build_profile_points(full_path, elevations)
        distance_km = round(path_length_km(full_path), 1)

        logger.info("[Terrain] Route: %d points, %.1f km", len(full_path), distance_km)

        return TerrainRoute(
            coordinates=full_path,
            distance_km=distance_km,
            elevation_profile=profile,
        )

    async def elevation_profile(
        self,
        coordinates: Sequence[GeoPoint],
        samples: int = PROFILE_SAMPLES,
        cancel_token: Optional[CancellationToken] = None
    ) -> ElevationProfile:
        """
        Elevation profile for a polyline, sampled at evenly spaced points.

        Returns:
            ElevationProfile with min/max elevation and total climb
        """
        if len(coordinates) < 2:
            raise ValidationError("At least two coordinates are required")

        sample_points = resample_line(coordinates, samples)
        elevations = await self.elevation_service.get_elevations(
            sample_points, concurrency=self.profile_concurrency, cancel_token=cancel_token
        )

        total_climb = 0.0
        for i in range(1, len(elevations)):
            diff = elevations[i] - elevations[i - 1]
            if diff > 0:
                total_climb += diff

        return ElevationProfile(
            points=build_profile_points(sample_points, elevations),
            max_elevation=max(elevations),
            min_elevation=min(elevations),
            total_climb=round(total_climb),
        )
