"""
GeoJSON Service - FeatureCollection export and best-effort import of polygons
"""
from typing import Any, Dict, List

import pydantic
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from errors import DegenerateGeometryError, ServiceError
from models.polygon import Polygon
from schemas.polygon import ImportReport, PolygonCreate
from services.geometry import derive_centroid
from services.polygons import create_polygon, next_object_id

logger = structlog.get_logger()

EXPORTED_PROPERTIES = (
    "object_id",
    "license_no",
    "smallholder_name",
    "state",
    "district",
    "certified_area_ha",
    "planted_area_ha",
    "area_km2",
)

IMPORT_DEFAULTS = {
    "license_no": "IMPORTED",
    "smallholder_name": "Imported Feature",
    "state": "UNKNOWN",
    "district": "UNKNOWN",
    "certified_area_ha": 0,
    "planted_area_ha": 0,
    "longitude": 0,
    "latitude": 0,
    "area_km2": 0,
}


def polygon_to_feature(polygon: Polygon) -> Dict[str, Any]:
    properties = {key: getattr(polygon, key) for key in EXPORTED_PROPERTIES}
    properties["created_at"] = polygon.created_at.isoformat() if polygon.created_at else None

    return {
        "type": "Feature",
        "id": polygon.id,
        "properties": properties,
        "geometry": polygon.geometry,
    }


async def export_feature_collection(session: AsyncSession, user_id: int) -> Dict[str, Any]:
    """All polygons of a user as a GeoJSON FeatureCollection"""
    result = await session.execute(
        select(Polygon).where(Polygon.user_id == user_id).order_by(Polygon.id)
    )
    polygons = result.scalars().all()

    logger.info("Polygons exported", user_id=user_id, count=len(polygons))
    return {
        "type": "FeatureCollection",
        "features": [polygon_to_feature(p) for p in polygons],
    }


async def import_feature_collection(
    session: AsyncSession,
    user_id: int,
    features: List[Any]
) -> ImportReport:
    """
    Create one polygon per feature.

    Features are imported independently and committed one at a time; a
    failing feature is reported as "Feature <index>: <reason>" and the
    remaining features are still processed.
    """
    report = ImportReport()

    for index, feature in enumerate(features):
        try:
            data = await _feature_to_create(session, feature)
            await create_polygon(session, user_id, data)
            report.imported += 1
        except pydantic.ValidationError as e:
            report.errors.append(f"Feature {index}: {_summarize(e)}")
        except (ServiceError, DegenerateGeometryError, TypeError, ValueError) as e:
            report.errors.append(f"Feature {index}: {e}")

    logger.info(
        "GeoJSON import finished",
        user_id=user_id,
        imported=report.imported,
        failed=len(report.errors)
    )
    return report


async def _feature_to_create(session: AsyncSession, feature: Any) -> PolygonCreate:
    """Build a create request from a feature, filling defaults for missing fields"""
    if not isinstance(feature, dict):
        raise TypeError("Feature must be a JSON object")

    properties = feature.get("properties") or {}
    geometry = feature.get("geometry")

    data = dict(properties)
    for key, default in IMPORT_DEFAULTS.items():
        if data.get(key) is None:
            data[key] = default
    if data.get("object_id") is None:
        data["object_id"] = await next_object_id(session)

    data["centroid"] = derive_centroid(geometry)
    if geometry is not None:
        data["geometry"] = geometry

    return PolygonCreate.model_validate(data)


def _summarize(error: pydantic.ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in item['loc'])}: {item['msg']}"
        for item in error.errors()
    )
