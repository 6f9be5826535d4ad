"""Tests for the terrain A* search."""

import math

import numpy as np
import pytest

from conftest import make_grid
from terrain_router.cancellation import CancellationToken
from terrain_router.errors import RouteCancelledError
from terrain_router.geometry import haversine_km
from terrain_router.pathfinder import TerrainAStar, TerrainCostConfig

W = H = 25


def idx(row: int, col: int) -> int:
    return row * W + col


def ring_elevations(r0: int, r1: int, c0: int, c1: int, wall_m: float = 5000.0):
    """Flat grid with a one-cell-thick square ring of very high cells."""
    elev = np.zeros((H, W))
    elev[r0, c0:c1 + 1] = wall_m
    elev[r1, c0:c1 + 1] = wall_m
    elev[r0:r1 + 1, c0] = wall_m
    elev[r0:r1 + 1, c1] = wall_m
    return elev.ravel()


class TestEdgeCost:
    def test_flat_edge_costs_its_distance(self):
        grid = make_grid([0.0] * 625)
        astar = TerrainAStar(grid)
        u, v = idx(5, 5), idx(5, 6)
        assert astar.edge_cost(u, v) == pytest.approx(haversine_km(grid.point(u), grid.point(v)))

    def test_steep_edge_is_impassable(self):
        elev = np.zeros(625)
        elev[idx(5, 6)] = 1000.0  # ~1000 m rise over ~300 m
        astar = TerrainAStar(make_grid(elev))
        assert astar.slope_deg(idx(5, 5), idx(5, 6)) > 35
        assert astar.edge_cost(idx(5, 5), idx(5, 6)) is None
        assert astar.edge_cost(idx(5, 6), idx(5, 5)) is None

    def test_slope_penalty_is_quadratic(self):
        grid = make_grid([0.0] * 625)
        u, v = idx(5, 5), idx(5, 6)
        dist_m = haversine_km(grid.point(u), grid.point(v)) * 1000
        # Pick a rise giving exactly 15 degrees: penalty (15/15)^2 = 1
        elev = np.zeros(625)
        elev[v] = math.tan(math.radians(15)) * dist_m
        astar = TerrainAStar(make_grid(elev))
        assert astar.edge_cost(u, v) == pytest.approx(2 * dist_m / 1000)

    def test_altitude_penalty_above_500m(self):
        grid = make_grid([1000.0] * 625)
        astar = TerrainAStar(grid)
        u, v = idx(5, 5), idx(6, 5)
        dist = haversine_km(grid.point(u), grid.point(v))
        # (1000 - 500) / 2000 = 0.25
        assert astar.edge_cost(u, v) == pytest.approx(dist * 1.25)

    def test_custom_slope_limit(self):
        elev = np.zeros(625)
        grid = make_grid(elev)
        u, v = idx(5, 5), idx(5, 6)
        dist_m = haversine_km(grid.point(u), grid.point(v)) * 1000
        elev[v] = math.tan(math.radians(20)) * dist_m
        grid = make_grid(elev)

        assert TerrainAStar(grid).edge_cost(u, v) is not None
        assert TerrainAStar(grid, TerrainCostConfig(max_slope_deg=10)).edge_cost(u, v) is None

    @pytest.mark.parametrize("seed", range(5))
    def test_heuristic_never_exceeds_passable_edge_cost(self, seed):
        rng = np.random.default_rng(seed)
        grid = make_grid(rng.uniform(0, 1500, size=625))
        astar = TerrainAStar(grid)

        checked = 0
        for u in range(grid.size):
            for v in astar.neighbors(u):
                cost = astar.edge_cost(u, v)
                if cost is None:
                    continue
                assert haversine_km(grid.point(u), grid.point(v)) <= cost
                checked += 1
        assert checked > 0


class TestNeighbors:
    def test_interior_cell_has_eight(self):
        astar = TerrainAStar(make_grid([0.0] * 625))
        assert len(list(astar.neighbors(idx(10, 10)))) == 8

    def test_corner_cell_has_three(self):
        astar = TerrainAStar(make_grid([0.0] * 625))
        assert sorted(astar.neighbors(idx(0, 0))) == sorted([idx(0, 1), idx(1, 0), idx(1, 1)])

    def test_no_wraparound_between_rows(self):
        astar = TerrainAStar(make_grid([0.0] * 625))
        assert idx(4, 0) not in set(astar.neighbors(idx(3, W - 1)))


class TestFindPath:
    def test_straight_path_on_flat_terrain(self):
        astar = TerrainAStar(make_grid([0.0] * 625))
        path, stats = astar.find_path(idx(12, 3), idx(12, 21))

        assert path[0] == idx(12, 3)
        assert path[-1] == idx(12, 21)
        assert path == [idx(12, c) for c in range(3, 22)]
        assert stats["path_length"] == len(path)

    def test_start_equals_goal(self):
        astar = TerrainAStar(make_grid([0.0] * 625))
        path, stats = astar.find_path(idx(4, 4), idx(4, 4))
        assert path == [idx(4, 4)]
        assert stats["total_cost"] == 0.0

    def test_path_steps_are_adjacent(self):
        rng = np.random.default_rng(7)
        astar = TerrainAStar(make_grid(rng.uniform(0, 120, size=625)))
        path, _ = astar.find_path(idx(0, 0), idx(24, 24))

        assert path is not None
        for a, b in zip(path, path[1:]):
            assert b in set(astar.neighbors(a))

    @pytest.mark.parametrize("seed", range(3))
    def test_g_scores_non_decreasing_along_path(self, seed):
        rng = np.random.default_rng(seed)
        astar = TerrainAStar(make_grid(rng.uniform(0, 150, size=625)))
        path, stats = astar.find_path(idx(2, 2), idx(22, 20))

        assert path is not None
        costs = stats["path_costs"]
        assert costs[0] == 0.0
        assert all(b >= a for a, b in zip(costs, costs[1:]))
        assert costs[-1] == pytest.approx(stats["total_cost"])

    def test_detours_around_a_hill(self):
        """A passable but costly hill in the straight line is avoided."""
        elev = np.zeros((H, W))
        elev[12, 12] = 200.0  # ~31 degrees against ~330 m cells
        astar = TerrainAStar(make_grid(elev.ravel()))
        assert astar.edge_cost(idx(12, 11), idx(12, 12)) is not None

        path, _ = astar.find_path(idx(12, 3), idx(12, 21))

        assert path is not None
        assert idx(12, 12) not in path

    def test_impassable_ring_blocks_search(self):
        elev = ring_elevations(8, 16, 8, 16)
        astar = TerrainAStar(make_grid(elev))

        inside, outside = idx(12, 12), idx(0, 0)
        path, stats = astar.find_path(inside, outside)
        assert path is None
        assert "error" in stats

        path, _ = astar.find_path(outside, inside)
        assert path is None

    def test_ring_does_not_block_paths_outside_it(self):
        astar = TerrainAStar(make_grid(ring_elevations(8, 16, 8, 16)))
        path, _ = astar.find_path(idx(0, 0), idx(24, 24))
        assert path is not None

    def test_cancelled_search_raises(self):
        astar = TerrainAStar(make_grid([0.0] * 625))
        token = CancellationToken()
        token.cancel()
        with pytest.raises(RouteCancelledError):
            astar.find_path(idx(0, 0), idx(24, 24), cancel_token=token)

    def test_expired_deadline_raises(self):
        now = [0.0]
        token = CancellationToken(timeout_s=5.0, clock=lambda: now[0])
        astar = TerrainAStar(make_grid([0.0] * 625))
        now[0] = 10.0
        with pytest.raises(RouteCancelledError, match="timed out"):
            astar.find_path(idx(0, 0), idx(24, 24), cancel_token=token)
