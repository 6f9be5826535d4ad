"""
Elevation Sampling Grid

Builds a fixed-resolution grid of sample points over the bounding box of
one route segment and fills it with elevations from the ElevationService.

Cell index layout: idx = row * width + col, row 0 = southern edge
(min_lat), col 0 = western edge (min_lon).
"""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import numpy as np

from .cancellation import CancellationToken, check_cancelled
from .elevation import GRID_CONCURRENCY, ElevationService
from .geometry import GeoPoint, haversine_km

logger = logging.getLogger(__name__)

GRID_WIDTH = 25
GRID_HEIGHT = 25
PADDING_FACTOR = 0.2  # Margin added on each side, as a fraction of the span
DEGENERATE_SPAN_DEG = 0.1  # Span used for the margin when an axis has zero extent


@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned box in degrees"""
    min_lon: float
    max_lon: float
    min_lat: float
    max_lat: float

    @classmethod
    def around(
        cls,
        points: Sequence[GeoPoint],
        padding_factor: float = PADDING_FACTOR
    ) -> "BoundingBox":
        """
        Box covering all points, padded on every side.

        When all points share a longitude (or latitude) the padding is
        computed from DEGENERATE_SPAN_DEG so the grid never collapses to a line.
        """
        if len(points) < 2:
            raise ValueError("BoundingBox.around needs at least two points")

        lons = [p[0] for p in points]
        lats = [p[1] for p in points]
        min_lon, max_lon = min(lons), max(lons)
        min_lat, max_lat = min(lats), max(lats)

        lon_span = (max_lon - min_lon) or DEGENERATE_SPAN_DEG
        lat_span = (max_lat - min_lat) or DEGENERATE_SPAN_DEG
        expand_lon = lon_span * padding_factor
        expand_lat = lat_span * padding_factor

        return cls(
            min_lon=min_lon - expand_lon,
            max_lon=max_lon + expand_lon,
            min_lat=min_lat - expand_lat,
            max_lat=max_lat + expand_lat,
        )


@dataclass(frozen=True)
class ElevationGrid:
    """
    Per-segment sample grid.

    lons, lats and elevations are flat float64 arrays of length
    width * height, indexed by cell index.
    """
    width: int
    height: int
    bounds: BoundingBox
    lons: np.ndarray
    lats: np.ndarray
    elevations: np.ndarray

    def __post_init__(self):
        size = self.width * self.height
        for name in ("lons", "lats", "elevations"):
            if len(getattr(self, name)) != size:
                raise ValueError(f"{name} must have {size} entries")

    @property
    def size(self) -> int:
        return self.width * self.height

    @staticmethod
    def cell_positions(
        bounds: BoundingBox,
        width: int,
        height: int
    ) -> Tuple[np.ndarray, np.ndarray]:
        """Linearly interpolated cell lons/lats across the box."""
        if width < 2 or height < 2:
            raise ValueError("Grid needs at least 2 cells per side")

        lon_step = (bounds.max_lon - bounds.min_lon) / (width - 1)
        lat_step = (bounds.max_lat - bounds.min_lat) / (height - 1)

        cols = np.tile(np.arange(width), height)
        rows = np.repeat(np.arange(height), width)

        lons = bounds.min_lon + cols * lon_step
        lats = bounds.min_lat + rows * lat_step
        return lons.astype(np.float64), lats.astype(np.float64)

    @classmethod
    def from_bounds(
        cls,
        bounds: BoundingBox,
        width: int,
        height: int,
        elevations: Sequence[float]
    ) -> "ElevationGrid":
        """Build a grid whose elevations are already known."""
        lons, lats = cls.cell_positions(bounds, width, height)
        elevation_array = np.array(elevations, dtype=np.float64)
        elevation_array.setflags(write=False)
        lons.setflags(write=False)
        lats.setflags(write=False)
        return cls(
            width=width,
            height=height,
            bounds=bounds,
            lons=lons,
            lats=lats,
            elevations=elevation_array,
        )

    def point(self, idx: int) -> GeoPoint:
        """(lon, lat) of a cell."""
        return (float(self.lons[idx]), float(self.lats[idx]))

    def nearest_cell(self, target: GeoPoint) -> int:
        """Index of the cell closest to target by haversine distance (first wins on ties)."""
        best_idx = 0
        best_dist = float("inf")
        for idx in range(self.size):
            dist = haversine_km(self.point(idx), target)
            if dist < best_dist:
                best_dist = dist
                best_idx = idx
        return best_idx


async def build_elevation_grid(
    start: GeoPoint,
    end: GeoPoint,
    elevation_service: ElevationService,
    width: int = GRID_WIDTH,
    height: int = GRID_HEIGHT,
    concurrency: int = GRID_CONCURRENCY,
    cancel_token: Optional[CancellationToken] = None
) -> Tuple[ElevationGrid, int, int]:
    """
    Build the search grid for one start/end pair.

    Args:
        start, end: Segment endpoints (lon, lat)
        elevation_service: Source of cell elevations
        width, height: Grid resolution
        concurrency: Elevation lookups per batch
        cancel_token: Polled before elevation fetching and between batches

    Returns:
        (grid, start_idx, end_idx) where the indices are the cells nearest
        to start and end
    """
    check_cancelled(cancel_token)

    bounds = BoundingBox.around([start, end])
    lons, lats = ElevationGrid.cell_positions(bounds, width, height)
    cell_points = [(float(lon), float(lat)) for lon, lat in zip(lons, lats)]

    logger.info(
        "[Grid] %dx%d grid, lon %.4f..%.4f, lat %.4f..%.4f",
        width, height, bounds.min_lon, bounds.max_lon, bounds.min_lat, bounds.max_lat
    )

    elevations = await elevation_service.get_elevations(
        cell_points, concurrency=concurrency, cancel_token=cancel_token
    )

    grid = ElevationGrid.from_bounds(bounds, width, height, elevations)
    start_idx = grid.nearest_cell(start)
    end_idx = grid.nearest_cell(end)

    logger.info(
        "[Grid] Elevation range: %.1fm - %.1fm, start cell %d, end cell %d",
        float(grid.elevations.min()), float(grid.elevations.max()), start_idx, end_idx
    )

    return grid, start_idx, end_idx
