"""
Terrain A* Pathfinding

Grid A* over an ElevationGrid with:
- 8-connected moves (N, S, E, W and diagonals)
- Hard slope limit: edges steeper than max_slope_deg are never taken
- Quadratic slope penalty and a soft penalty for high altitude
- Haversine heuristic (admissible, every edge costs at least its distance)

Search state lives in flat numpy arrays indexed by cell index and is
thrown away after each search.
"""

import heapq
import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional, Tuple

import numpy as np

from .cancellation import CancellationToken, check_cancelled
from .geometry import haversine_km
from .grid import ElevationGrid

logger = logging.getLogger(__name__)

# Neighbor offsets (row_delta, col_delta): orthogonal first, then diagonals
NEIGHBOR_OFFSETS = (
    (-1, 0), (1, 0), (0, -1), (0, 1),
    (-1, -1), (-1, 1), (1, -1), (1, 1),
)


@dataclass
class TerrainCostConfig:
    """Cost function parameters for terrain routing"""
    max_slope_deg: float = 35.0  # Steeper edges are impassable
    slope_scale_deg: float = 15.0  # slope_penalty = (slope / scale)^2
    altitude_threshold_m: float = 500.0  # No altitude penalty below this
    altitude_scale_m: float = 2000.0  # altitude_penalty = excess / scale


class TerrainAStar:
    """
    A* pathfinder on a terrain sample grid.

    Costs are in kilometers scaled by terrain penalties, so the cheapest
    path prefers flat, low ground over the shortest line.
    """

    def __init__(self, grid: ElevationGrid, config: Optional[TerrainCostConfig] = None):
        self.grid = grid
        self.config = config or TerrainCostConfig()
        self.width = grid.width
        self.height = grid.height

    def neighbors(self, idx: int) -> Iterator[int]:
        """Cell indices adjacent to idx (8-connected), inside the grid."""
        row, col = divmod(idx, self.width)
        for dr, dc in NEIGHBOR_OFFSETS:
            nr = row + dr
            nc = col + dc
            if 0 <= nr < self.height and 0 <= nc < self.width:
                yield nr * self.width + nc

    def _distance_and_slope(self, u: int, v: int) -> Tuple[float, float]:
        """Horizontal distance (km) and slope (degrees) between two cells."""
        dist = haversine_km(self.grid.point(u), self.grid.point(v))
        elev_diff = abs(float(self.grid.elevations[v]) - float(self.grid.elevations[u]))
        return dist, math.degrees(math.atan2(elev_diff, dist * 1000))

    def slope_deg(self, u: int, v: int) -> float:
        return self._distance_and_slope(u, v)[1]

    def edge_cost(self, u: int, v: int) -> Optional[float]:
        """
        Cost of moving from cell u to cell v.

        Returns:
            Cost in (penalized) km, or None if the edge is too steep
        """
        cfg = self.config
        dist, slope = self._distance_and_slope(u, v)
        elev_v = float(self.grid.elevations[v])

        if slope > cfg.max_slope_deg:
            return None

        slope_penalty = (slope / cfg.slope_scale_deg) ** 2
        altitude_penalty = max(0.0, elev_v - cfg.altitude_threshold_m) / cfg.altitude_scale_m
        return dist * (1 + slope_penalty + altitude_penalty)

    def heuristic(self, idx: int, goal_idx: int) -> float:
        """Straight-line distance to the goal in km."""
        return haversine_km(self.grid.point(idx), self.grid.point(goal_idx))

    def find_path(
        self,
        start_idx: int,
        goal_idx: int,
        cancel_token: Optional[CancellationToken] = None
    ) -> Tuple[Optional[List[int]], Dict[str, Any]]:
        """
        Find the cheapest path between two cells.

        Args:
            start_idx: Start cell index
            goal_idx: Goal cell index
            cancel_token: Polled once per iteration

        Returns:
            path: Cell indices from start to goal, or None if every route
                  is blocked by impassable slopes
            stats: Search statistics
        """
        size = self.grid.size
        g_score = np.full(size, np.inf, dtype=np.float64)
        came_from = np.full(size, -1, dtype=np.int32)
        closed = np.zeros(size, dtype=np.uint8)

        g_score[start_idx] = 0.0

        # Heap entries are (f, counter, idx); the counter keeps equal-f
        # entries in insertion order
        counter = 0
        open_set = [(self.heuristic(start_idx, goal_idx), counter, start_idx)]
        nodes_expanded = 0

        while open_set:
            check_cancelled(cancel_token)

            _, _, current = heapq.heappop(open_set)

            if current == goal_idx:
                path = self._reconstruct_path(came_from, goal_idx)
                path_costs = [float(g_score[idx]) for idx in path]
                logger.info(
                    "[Pathfinder] Path found! %d nodes expanded, %d cells, cost %.3f",
                    nodes_expanded, len(path), path_costs[-1]
                )
                return path, {
                    "nodes_expanded": nodes_expanded,
                    "path_length": len(path),
                    "total_cost": path_costs[-1],
                    "path_costs": path_costs,
                }

            if closed[current]:
                continue
            closed[current] = 1
            nodes_expanded += 1

            for neighbor in self.neighbors(current):
                if closed[neighbor]:
                    continue

                cost = self.edge_cost(current, neighbor)
                if cost is None:
                    continue

                tentative = g_score[current] + cost
                if tentative < g_score[neighbor]:
                    g_score[neighbor] = tentative
                    came_from[neighbor] = current
                    counter += 1
                    f_score = tentative + self.heuristic(neighbor, goal_idx)
                    heapq.heappush(open_set, (f_score, counter, neighbor))

        logger.info("[Pathfinder] No path found after %d nodes expanded", nodes_expanded)
        return None, {
            "nodes_expanded": nodes_expanded,
            "path_length": 0,
            "error": f"Every route is blocked by slopes over {self.config.max_slope_deg:g} degrees",
        }

    @staticmethod
    def _reconstruct_path(came_from: np.ndarray, goal_idx: int) -> List[int]:
        path = []
        current = goal_idx
        while current != -1:
            path.append(current)
            current = int(came_from[current])
        path.reverse()
        return path
