"""
Geometry Utilities

Shared polyline helpers for the terrain and road routers:
- Great-circle (haversine) distance
- Douglas-Peucker simplification with adaptive tolerance
- Even-distance resampling along a polyline
- 3-point moving average smoothing

All points are (lon, lat) tuples in degrees.
"""

import math
from typing import List, Sequence, Tuple

GeoPoint = Tuple[float, float]  # (lon, lat)

EARTH_RADIUS_KM = 6371.0

# Binary search settings for simplify_line epsilon (degrees)
SIMPLIFY_ITERATIONS = 20
SIMPLIFY_EPSILON_MAX = 1.0


def haversine_km(a: GeoPoint, b: GeoPoint) -> float:
    """Great-circle distance between two (lon, lat) points in kilometers."""
    lon1, lat1 = a
    lon2, lat2 = b

    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    delta_phi = math.radians(lat2 - lat1)
    delta_lambda = math.radians(lon2 - lon1)

    h = math.sin(delta_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(delta_lambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))

    return EARTH_RADIUS_KM * c


def path_length_km(points: Sequence[GeoPoint]) -> float:
    """Sum of consecutive haversine distances along a polyline."""
    total = 0.0
    for i in range(1, len(points)):
        total += haversine_km(points[i - 1], points[i])
    return total


def cumulative_distances_km(points: Sequence[GeoPoint]) -> List[float]:
    """Running haversine distance at each vertex, starting at 0."""
    distances = [0.0]
    for i in range(1, len(points)):
        distances.append(distances[-1] + haversine_km(points[i - 1], points[i]))
    return distances


def _perpendicular_distance(point: GeoPoint, line_start: GeoPoint, line_end: GeoPoint) -> float:
    """
    Distance from point to the line through line_start and line_end.

    Computed in raw degree space, which is good enough for picking
    display tolerances but not for metric distances.
    """
    x0, y0 = point
    x1, y1 = line_start
    x2, y2 = line_end

    line_len_sq = (x2 - x1) ** 2 + (y2 - y1) ** 2
    if line_len_sq == 0:
        # Line is a point
        return math.sqrt((x0 - x1) ** 2 + (y0 - y1) ** 2)

    numerator = abs((y2 - y1) * x0 - (x2 - x1) * y0 + x2 * y1 - y2 * x1)
    return numerator / math.sqrt(line_len_sq)


def _douglas_peucker(points: Sequence[GeoPoint], epsilon: float) -> List[GeoPoint]:
    """Recursive Douglas-Peucker, keeps first and last point."""
    if len(points) <= 2:
        return list(points)

    start = points[0]
    end = points[-1]

    max_dist = 0.0
    max_idx = 0
    for i in range(1, len(points) - 1):
        dist = _perpendicular_distance(points[i], start, end)
        if dist > max_dist:
            max_dist = dist
            max_idx = i

    if max_dist > epsilon:
        left = _douglas_peucker(points[:max_idx + 1], epsilon)
        right = _douglas_peucker(points[max_idx:], epsilon)
        # Avoid duplicating the split point
        return left[:-1] + right

    return [start, end]


def simplify_line(points: Sequence[GeoPoint], max_points: int) -> List[GeoPoint]:
    """
    Reduce a polyline to roughly max_points vertices.

    The Douglas-Peucker tolerance is found by binary search, so the result
    count is close to max_points but not guaranteed to equal it.

    Args:
        points: Polyline as (lon, lat) tuples
        max_points: Target number of vertices

    Returns:
        Simplified polyline (input unchanged if already small enough)
    """
    if len(points) <= max_points:
        return list(points)

    lo, hi = 0.0, SIMPLIFY_EPSILON_MAX
    result = list(points)
    best = None  # Densest result seen that still fits in max_points
    for _ in range(SIMPLIFY_ITERATIONS):
        mid = (lo + hi) / 2
        result = _douglas_peucker(points, mid)
        if len(result) > max_points:
            lo = mid
        else:
            hi = mid
            best = result

    return best if best is not None else result


def resample_line(points: Sequence[GeoPoint], n: int) -> List[GeoPoint]:
    """
    Pick n points evenly spaced by distance along a polyline.

    Intermediate points are linearly interpolated between the two original
    vertices that bracket the target distance. First and last points are
    copied from the input.

    Args:
        points: Polyline as (lon, lat) tuples
        n: Number of output points, at least 2

    Returns:
        Resampled polyline of exactly min(n, len(points)) points
    """
    if n < 2:
        raise ValueError("resample_line needs n >= 2 to keep both endpoints")

    if len(points) <= n:
        return list(points)

    distances = cumulative_distances_km(points)
    total_dist = distances[-1]

    if total_dist == 0:
        # Zero-length line: nothing to interpolate along
        return [points[0]] * (n - 1) + [points[-1]]

    result = [points[0]]
    seg_idx = 0
    for i in range(1, n - 1):
        target_dist = (i / (n - 1)) * total_dist
        while seg_idx < len(distances) - 2 and distances[seg_idx + 1] < target_dist:
            seg_idx += 1

        seg_len = distances[seg_idx + 1] - distances[seg_idx]
        t = (target_dist - distances[seg_idx]) / seg_len if seg_len > 0 else 0.0

        lon0, lat0 = points[seg_idx]
        lon1, lat1 = points[seg_idx + 1]
        result.append((lon0 + t * (lon1 - lon0), lat0 + t * (lat1 - lat0)))

    result.append(points[-1])
    return result


def smooth_path(points: Sequence[GeoPoint]) -> List[GeoPoint]:
    """3-point moving average. Endpoints are kept as-is."""
    if len(points) <= 2:
        return list(points)

    result = [points[0]]
    for i in range(1, len(points) - 1):
        prev_pt, cur_pt, next_pt = points[i - 1], points[i], points[i + 1]
        result.append((
            (prev_pt[0] + cur_pt[0] + next_pt[0]) / 3,
            (prev_pt[1] + cur_pt[1] + next_pt[1]) / 3,
        ))
    result.append(points[-1])
    return result
