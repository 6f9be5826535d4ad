"""Shared test fixtures."""

from typing import Callable, List, Optional, Sequence, Tuple

import httpx
import pytest
from fastapi.testclient import TestClient

from terrain_router.cache import RouteCache
from terrain_router.cancellation import CancellationToken
from terrain_router.config import Settings
from terrain_router.geometry import GeoPoint
from terrain_router.grid import BoundingBox, ElevationGrid
from terrain_router.main import create_app
from terrain_router.roads import RoadService


class FakeElevationService:
    """Stands in for ElevationService; elevations come from a function of (lon, lat)."""

    def __init__(self, elevation_fn: Optional[Callable[[float, float], float]] = None):
        self.elevation_fn = elevation_fn or (lambda lon, lat: 0.0)
        self.calls: List[Tuple[int, int]] = []  # (point count, concurrency)

    async def get_elevations(
        self,
        points: Sequence[GeoPoint],
        concurrency: int = 25,
        cancel_token: Optional[CancellationToken] = None
    ) -> List[float]:
        if cancel_token is not None:
            cancel_token.raise_if_cancelled()
        self.calls.append((len(points), concurrency))
        return [float(self.elevation_fn(lon, lat)) for lon, lat in points]

    async def aclose(self) -> None:
        pass


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_grid(
    elevations: Sequence[float],
    width: int = 25,
    height: int = 25,
    bounds: Optional[BoundingBox] = None
) -> ElevationGrid:
    """Grid over a ~7 x 22 km box near Tromsø with the given elevations."""
    bounds = bounds or BoundingBox(min_lon=18.4, max_lon=18.6, min_lat=68.9, max_lat=69.1)
    return ElevationGrid.from_bounds(bounds, width, height, elevations)


def osrm_response(coordinates, distance_m: float = 12345.0, duration_s: float = 900.0) -> dict:
    return {
        "code": "Ok",
        "routes": [{
            "geometry": {"type": "LineString", "coordinates": coordinates},
            "distance": distance_m,
            "duration": duration_s,
        }],
    }


@pytest.fixture
def flat_elevation():
    """Elevation service reporting sea level everywhere."""
    return FakeElevationService()


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def osrm_handler():
    """Mutable holder for the function answering OSRM requests."""
    holder = {
        "handler": lambda request: httpx.Response(
            200, json=osrm_response([[18.5, 69.0], [18.55, 69.01], [18.6, 69.0]])
        ),
        "requests": [],
    }
    return holder


@pytest.fixture
def make_client(fake_clock, osrm_handler):
    """Factory for a TestClient wired to fakes."""

    def _make(elevation_service=None, settings: Optional[Settings] = None) -> TestClient:
        def handle(request: httpx.Request) -> httpx.Response:
            osrm_handler["requests"].append(request)
            return osrm_handler["handler"](request)

        road_service = RoadService(
            base_url="http://osrm.test",
            client=httpx.AsyncClient(transport=httpx.MockTransport(handle)),
        )
        app = create_app(
            settings=settings or Settings(),
            elevation_service=elevation_service or FakeElevationService(),
            road_service=road_service,
            route_cache=RouteCache(ttl_seconds=15 * 60, clock=fake_clock),
        )
        return TestClient(app)

    return _make
