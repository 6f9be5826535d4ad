"""
Service Configuration

Settings are read from the environment. A .env file next to the backend
folder is loaded first so local development works without exporting
anything.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

ENV_PATH = Path(__file__).parent.parent / ".env"

DEFAULT_ELEVATION_URL = "https://ws.geonorge.no/hoydedata/v1/punkt"
DEFAULT_OSRM_URL = "https://router.project-osrm.org"


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str, default: List[str]) -> List[str]:
    value = os.getenv(name)
    if not value:
        return list(default)
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass
class Settings:
    """Runtime configuration for the routing service"""
    # Elevation provider
    elevation_url: str = DEFAULT_ELEVATION_URL
    elevation_timeout_s: float = 10.0
    elevation_strict: bool = False  # True = fail the request instead of using 0 m on lookup failure

    # Road routing provider
    osrm_url: str = DEFAULT_OSRM_URL
    osrm_profile: str = "driving"
    road_timeout_s: float = 30.0

    # Terrain engine
    terrain_grid_size: int = 25  # Cells per side of the per-segment grid
    terrain_display_points: int = 80  # Points in the returned route geometry

    # Request handling
    route_cache_ttl_s: float = 15 * 60
    route_timeout_s: float = 120.0
    cors_origins: List[str] = field(
        default_factory=lambda: ["http://localhost:5173", "http://localhost:3000"]
    )
    log_level: str = "INFO"

    def __post_init__(self):
        if self.terrain_grid_size < 2:
            raise ValueError("TERRAIN_GRID_SIZE must be at least 2")
        if self.terrain_display_points < 2:
            raise ValueError("TERRAIN_DISPLAY_POINTS must be at least 2")

    @classmethod
    def from_env(cls, env_path: Optional[Path] = None) -> "Settings":
        """Build settings from environment variables (after loading .env)."""
        load_dotenv(env_path or ENV_PATH)
        defaults = cls()

        return cls(
            elevation_url=os.getenv("ELEVATION_URL", defaults.elevation_url),
            elevation_timeout_s=float(os.getenv("ELEVATION_TIMEOUT_S", defaults.elevation_timeout_s)),
            elevation_strict=_env_bool("ELEVATION_STRICT", defaults.elevation_strict),
            osrm_url=os.getenv("OSRM_URL", defaults.osrm_url),
            osrm_profile=os.getenv("OSRM_PROFILE", defaults.osrm_profile),
            road_timeout_s=float(os.getenv("ROAD_TIMEOUT_S", defaults.road_timeout_s)),
            terrain_grid_size=int(os.getenv("TERRAIN_GRID_SIZE", defaults.terrain_grid_size)),
            terrain_display_points=int(os.getenv("TERRAIN_DISPLAY_POINTS", defaults.terrain_display_points)),
            route_cache_ttl_s=float(os.getenv("ROUTE_CACHE_TTL_S", defaults.route_cache_ttl_s)),
            route_timeout_s=float(os.getenv("ROUTE_TIMEOUT_S", defaults.route_timeout_s)),
            cors_origins=_env_list("CORS_ORIGINS", defaults.cors_origins),
            log_level=os.getenv("LOG_LEVEL", defaults.log_level).upper(),
        )
