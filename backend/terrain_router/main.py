"""
Terrain Route Finder - Backend API

Road routing (delegated to OSRM) and terrain-aware cross-country routing
(grid A* over sampled elevations), plus elevation profiles.
"""

import asyncio
import contextlib
import logging
import math
from contextlib import asynccontextmanager
from typing import Awaitable, Callable, List, Optional

from fastapi import APIRouter, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .cache import RouteCache
from .cancellation import CancellationToken
from .config import Settings
from .elevation import ElevationService
from .errors import RoutingError, ValidationError
from .geometry import GeoPoint
from .planner import TerrainRoutePlanner
from .roads import RoadService

logger = logging.getLogger(__name__)

DISCONNECT_POLL_S = 0.5


class ProfilePointModel(BaseModel):
    lon: float
    lat: float
    elevation: float
    distanceKm: float


class RoadRouteResponse(BaseModel):
    coordinates: List[List[float]]
    distanceKm: float
    durationMin: int


class TerrainRouteResponse(BaseModel):
    coordinates: List[List[float]]
    distanceKm: float
    elevationProfile: List[ProfilePointModel]


class ElevationProfileResponse(BaseModel):
    points: List[ProfilePointModel]
    maxElevation: float
    minElevation: float
    totalClimb: int


def parse_point(value: str, name: str) -> GeoPoint:
    """Parse 'lon,lat' into a (lon, lat) tuple."""
    parts = value.split(",")
    if len(parts) != 2:
        raise ValidationError(f"{name} must be lon,lat")
    try:
        lon = float(parts[0])
        lat = float(parts[1])
    except ValueError:
        raise ValidationError(f"{name} must be lon,lat") from None

    if not (math.isfinite(lon) and math.isfinite(lat)):
        raise ValidationError(f"Invalid {name} coordinates")
    if not (-180 <= lon <= 180 and -90 <= lat <= 90):
        raise ValidationError(f"Invalid {name} coordinates")
    return (lon, lat)


def parse_point_list(value: Optional[str], name: str) -> List[GeoPoint]:
    """Parse 'lon,lat;lon,lat;...' (empty entries are ignored)."""
    if not value:
        return []
    return [parse_point(part.strip(), name) for part in value.split(";") if part.strip()]


def parse_waypoints(from_: Optional[str], to: Optional[str], via: Optional[str]) -> List[GeoPoint]:
    """Ordered waypoints: from, via..., to."""
    if not from_ or not to:
        raise ValidationError("from and to required (lon,lat)")
    return [parse_point(from_, "from"), *parse_point_list(via, "via"), parse_point(to, "to")]


async def _watch_disconnect(request: Request, token: CancellationToken) -> None:
    """Cancel the token once the client goes away."""
    while not token.cancelled:
        if await request.is_disconnected():
            logger.info("[API] Client disconnected, cancelling route computation")
            token.cancel("Client disconnected")
            return
        await asyncio.sleep(DISCONNECT_POLL_S)


async def _run_cancellable(
    request: Request,
    compute: Callable[[CancellationToken], Awaitable[dict]]
) -> dict:
    """
    Run a computation with a deadline and disconnect watcher.

    Unexpected exceptions are logged and turned into a generic RoutingError.
    """
    settings: Settings = request.app.state.settings
    token = CancellationToken(timeout_s=settings.route_timeout_s)
    watcher = asyncio.create_task(_watch_disconnect(request, token))
    try:
        return await compute(token)
    except RoutingError:
        raise
    except Exception as e:
        logger.exception("[API] Route computation failed")
        raise RoutingError("Route computation failed") from e
    finally:
        watcher.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await watcher


router = APIRouter(prefix="/api/route", tags=["route"])


@router.get("/road", response_model=RoadRouteResponse)
async def road_route(
    request: Request,
    from_: Optional[str] = Query(None, alias="from"),
    to: Optional[str] = None,
    via: Optional[str] = None
):
    """Road routing via OSRM."""
    waypoints = parse_waypoints(from_, to, via)
    cache: RouteCache = request.app.state.route_cache

    cache_key = RouteCache.make_key("road", waypoints)
    cached = cache.get(cache_key)
    if cached is not None:
        return cached

    road_service: RoadService = request.app.state.road_service

    async def compute(token: CancellationToken) -> dict:
        route = await road_service.get_route(waypoints)
        return route.to_dict()

    result = await _run_cancellable(request, compute)
    cache.put(cache_key, result)
    return result


@router.get("/terrain", response_model=TerrainRouteResponse)
async def terrain_route(
    request: Request,
    from_: Optional[str] = Query(None, alias="from"),
    to: Optional[str] = None,
    via: Optional[str] = None
):
    """Terrain-aware cross-country routing via A* over elevation data."""
    waypoints = parse_waypoints(from_, to, via)
    cache: RouteCache = request.app.state.route_cache

    cache_key = RouteCache.make_key("terrain", waypoints)
    cached = cache.get(cache_key)
    if cached is not None:
        logger.info("[API] Terrain route cache hit")
        return cached

    planner: TerrainRoutePlanner = request.app.state.terrain_planner

    async def compute(token: CancellationToken) -> dict:
        route = await planner.plan(waypoints, cancel_token=token)
        return route.to_dict()

    result = await _run_cancellable(request, compute)
    cache.put(cache_key, result)
    return result


@router.get("/elevation-profile", response_model=ElevationProfileResponse)
async def elevation_profile(request: Request, coordinates: Optional[str] = None):
    """Elevation profile for a series of waypoints."""
    if not coordinates:
        raise ValidationError("coordinates required (lon,lat;lon,lat;...)")
    points = parse_point_list(coordinates, "coordinates")

    planner: TerrainRoutePlanner = request.app.state.terrain_planner

    async def compute(token: CancellationToken) -> dict:
        profile = await planner.elevation_profile(points, cancel_token=token)
        return profile.to_dict()

    return await _run_cancellable(request, compute)


async def routing_error_handler(request: Request, exc: RoutingError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


def create_app(
    settings: Optional[Settings] = None,
    elevation_service: Optional[ElevationService] = None,
    road_service: Optional[RoadService] = None,
    route_cache: Optional[RouteCache] = None
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Services and the cache can be injected (tests, shared caches); anything
    not injected is built from settings and closed on shutdown.
    """
    settings = settings or Settings.from_env()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    owned = []
    if elevation_service is None:
        elevation_service = ElevationService(
            base_url=settings.elevation_url,
            timeout=settings.elevation_timeout_s,
            strict=settings.elevation_strict,
        )
        owned.append(elevation_service)
    if road_service is None:
        road_service = RoadService(
            base_url=settings.osrm_url,
            profile=settings.osrm_profile,
            timeout=settings.road_timeout_s,
        )
        owned.append(road_service)
    owns_cache = route_cache is None
    if owns_cache:
        route_cache = RouteCache(ttl_seconds=settings.route_cache_ttl_s)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        if owns_cache:
            app.state.route_cache.clear()
        for service in owned:
            await service.aclose()

    app = FastAPI(
        title="Terrain Route Finder",
        description="Road and terrain-aware cross-country routing with elevation profiles",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.settings = settings
    app.state.elevation_service = elevation_service
    app.state.road_service = road_service
    app.state.route_cache = route_cache
    app.state.terrain_planner = TerrainRoutePlanner(
        elevation_service,
        grid_width=settings.terrain_grid_size,
        grid_height=settings.terrain_grid_size,
        display_points=settings.terrain_display_points,
    )

    app.add_exception_handler(RoutingError, routing_error_handler)
    app.include_router(router)

    @app.get("/health")
    async def health_check():
        return {"status": "healthy"}

    return app


app = create_app()
