"""
Polygon Statistics Service - aggregates over a polygon collection
"""
from collections import Counter, defaultdict
from typing import Dict, Iterable

from services.records import (
    MonthlyTrend,
    Polygon,
    PolygonStatsSnapshot,
    parse_area,
    parse_instant,
)

UNKNOWN = "unknown"


def recompute(polygons: Iterable[Polygon]) -> PolygonStatsSnapshot:
    """
    Build a fresh statistics snapshot in a single pass.

    Missing or non-numeric areas count as 0; missing severity or cause is
    bucketed under "unknown".
    """
    total_count = 0
    total_area = 0.0
    severity = Counter()
    cause = Counter()
    months: Dict[str, Dict[str, float]] = defaultdict(lambda: {"count": 0, "area": 0.0})

    for polygon in polygons:
        props = polygon.properties
        area = (parse_area(props.area) if props else None) or 0.0

        total_count += 1
        total_area += area
        severity[_bucket(props.severity if props else None)] += 1
        cause[_bucket(props.cause if props else None)] += 1

        detected = parse_instant(props.detected_date) if props else None
        if detected is not None:
            month = months[detected.strftime("%Y-%m")]
            month["count"] += 1
            month["area"] += area

    return PolygonStatsSnapshot(
        total_count=total_count,
        total_area=total_area,
        average_area=total_area / total_count if total_count else 0.0,
        severity_distribution=dict(severity),
        cause_distribution=dict(cause),
        monthly_trends=[
            MonthlyTrend(month=key, count=int(value["count"]), area=value["area"])
            for key, value in sorted(months.items())
        ],
    )


def _bucket(value) -> str:
    if not value:
        return UNKNOWN
    return getattr(value, "value", value)
