"""
Geometry Service - planar polygon metrics in longitude/latitude space

All functions operate on a single ring of [lng, lat] pairs. Rings are
normalised to the closed form (first point repeated at the end) before any
computation, so closed and unclosed input produce the same result.

The degree-to-metre scale is the length of one degree at the equator; results
are approximations and degrade for large or high-latitude polygons.
"""
import math
from typing import Any, Dict, List, Sequence

import numpy as np

from errors import DegenerateGeometryError

METERS_PER_DEGREE = 111319.5
SQUARE_METERS_PER_HECTARE = 10_000

Ring = Sequence[Sequence[float]]


def first_ring(coordinates: Sequence[Ring]) -> Ring:
    """Return the outer ring of GeoJSON polygon coordinates"""
    if not coordinates:
        raise DegenerateGeometryError("Polygon has no rings")
    return coordinates[0]


def close_ring(ring: Ring) -> np.ndarray:
    """Convert a ring to an (n + 1, 2) array whose last point equals the first"""
    if ring is None or len(ring) == 0:
        raise DegenerateGeometryError("Ring has no coordinates")

    try:
        points = np.asarray(ring, dtype=np.float64)
    except (TypeError, ValueError) as e:
        raise DegenerateGeometryError(f"Ring coordinates are not numeric: {e}") from e

    if points.ndim != 2 or points.shape[1] < 2:
        raise DegenerateGeometryError("Ring must be a sequence of [lng, lat] pairs")

    # Altitude, if present, is ignored
    points = points[:, :2]

    if not np.array_equal(points[0], points[-1]):
        points = np.vstack([points, points[:1]])

    return points


def area(ring: Ring) -> float:
    """
    Polygon area in hectares using the shoelace formula.

    The signed sum is computed in degree space and scaled by
    0.5 * k^2 / 10000; the absolute value makes the result independent
    of winding order.
    """
    points = close_ring(ring)
    x, y = points[:-1, 0], points[:-1, 1]
    x_next, y_next = points[1:, 0], points[1:, 1]

    signed_sum = float(np.sum(x * y_next - x_next * y))
    return abs(signed_sum * 0.5 * METERS_PER_DEGREE * METERS_PER_DEGREE / SQUARE_METERS_PER_HECTARE)


def perimeter(ring: Ring) -> float:
    """Polygon perimeter in metres"""
    points = close_ring(ring)
    deltas = np.diff(points, axis=0)
    return float(np.sum(np.hypot(deltas[:, 0], deltas[:, 1]))) * METERS_PER_DEGREE


def centroid(ring: Ring) -> Dict[str, float]:
    """Vertex-average centroid over the distinct vertices of the ring"""
    points = close_ring(ring)
    vertices = points[:-1] if len(points) > 1 else points
    lng, lat = vertices.mean(axis=0)
    return {"lat": float(lat), "lng": float(lng)}


def bounding_box(ring: Ring) -> Dict[str, float]:
    """Component-wise extent of the ring"""
    points = close_ring(ring)
    min_lng, min_lat = points.min(axis=0)
    max_lng, max_lat = points.max(axis=0)
    return {
        "minLng": float(min_lng),
        "maxLng": float(max_lng),
        "minLat": float(min_lat),
        "maxLat": float(max_lat),
    }


def compactness(polygon_area: float, polygon_perimeter: float) -> float:
    """
    Isoperimetric ratio 4*pi*area / perimeter^2.

    Area and perimeter must be in matching units (m^2 and m); a circle
    scores 1 and thin shapes approach 0.
    """
    if not polygon_perimeter:
        raise DegenerateGeometryError("Compactness is undefined for a zero-length perimeter")
    return (4 * math.pi * polygon_area) / (polygon_perimeter * polygon_perimeter)


def derive_centroid(geometry: Any) -> List[float]:
    """
    Centroid as [lat, lng] for a GeoJSON geometry.

    Only Polygon geometries are supported; anything else yields [0, 0].
    """
    if not isinstance(geometry, dict) or geometry.get("type") != "Polygon":
        return [0, 0]

    point = centroid(first_ring(geometry.get("coordinates") or []))
    return [point["lat"], point["lng"]]
