"""
Polygon Validation Service - structural and semantic checks on polygon records
"""
from typing import Any, List, Mapping, NamedTuple, Union

from services.records import CAUSES, SEVERITIES, Polygon, parse_area, parse_instant

MIN_RING_POINTS = 4


class ValidationResult(NamedTuple):
    is_valid: bool
    errors: List[str]


def _get(obj: Any, *keys: str) -> Any:
    """Read the first available key from a mapping or attribute from a model"""
    for key in keys:
        if isinstance(obj, Mapping):
            if key in obj:
                return obj[key]
        elif hasattr(obj, key):
            return getattr(obj, key)
    return None


def validate_polygon(polygon: Union[Polygon, Mapping[str, Any]]) -> ValidationResult:
    """
    Validate a polygon record.

    Every rule is evaluated so the caller sees all faults at once.
    """
    errors: List[str] = []

    geometry = _get(polygon, "geometry")
    if not geometry:
        errors.append("Geometry is required")
    else:
        coordinates = _get(geometry, "coordinates")
        if not isinstance(coordinates, (list, tuple)):
            errors.append("Invalid geometry coordinates")
        else:
            ring = coordinates[0] if coordinates else None
            if not isinstance(ring, (list, tuple)) or len(ring) < MIN_RING_POINTS:
                errors.append(f"Polygon must have at least {MIN_RING_POINTS} coordinate points")

    properties = _get(polygon, "properties")
    if properties:
        severity = _get(properties, "severity")
        if severity is not None and not _is_member(severity, SEVERITIES):
            errors.append(f"Invalid severity level: {_enum_value(severity)}")

        cause = _get(properties, "cause")
        if cause is not None and not _is_member(cause, CAUSES):
            errors.append(f"Invalid cause: {_enum_value(cause)}")

        detected = _get(properties, "detected_date", "detectedDate")
        if detected is not None and parse_instant(detected) is None:
            errors.append("Invalid detection date")

        estimated = _get(properties, "estimated_date", "estimatedDate")
        if estimated is not None and parse_instant(estimated) is None:
            errors.append("Invalid estimated date")

        area = _get(properties, "area")
        if area is not None:
            value = parse_area(area)
            if value is None or value < 0:
                errors.append("Area must be a positive number")

    return ValidationResult(is_valid=not errors, errors=errors)


def _enum_value(value: Any) -> Any:
    return getattr(value, "value", value)


def _is_member(value: Any, allowed: frozenset) -> bool:
    value = _enum_value(value)
    return isinstance(value, str) and value in allowed
