"""
Polygons Router - CRUD, bounds query and GeoJSON import/export
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from auth import get_current_user
from database import get_session
from models.user import User
from schemas.common import success
from schemas.polygon import FeatureCollection, PolygonCreate, PolygonResponse, PolygonUpdate
from services import geojson, polygons
from services.records import Bounds

router = APIRouter()


@router.get("")
async def list_polygons(
    north: Optional[float] = Query(None, description="Northern latitude bound"),
    south: Optional[float] = Query(None, description="Southern latitude bound"),
    east: Optional[float] = Query(None, description="Eastern longitude bound"),
    west: Optional[float] = Query(None, description="Western longitude bound"),
    state: Optional[str] = Query(None, description="Filter by administrative state"),
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session)
):
    """
    List the user's polygons, newest first.
    The bounds filter applies only when all four edges are given.
    """
    bounds = None
    if None not in (north, south, east, west):
        bounds = Bounds(north=north, south=south, east=east, west=west)

    rows = await polygons.list_polygons(session, user.id, bounds=bounds, state=state)
    return success(data=[PolygonResponse.model_validate(p) for p in rows])


@router.post("", status_code=201)
async def create_polygon(
    polygon_data: PolygonCreate,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session)
):
    """Create a polygon from a full field set"""
    polygon = await polygons.create_polygon(session, user.id, polygon_data)
    return success(
        data=PolygonResponse.model_validate(polygon),
        message="Polygon created successfully"
    )


@router.get("/export/geojson")
async def export_geojson(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session)
):
    """Export all of the user's polygons as a FeatureCollection"""
    collection = await geojson.export_feature_collection(session, user.id)
    return success(data=collection)


@router.post("/import/geojson")
async def import_geojson(
    collection: FeatureCollection,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session)
):
    """
    Import a FeatureCollection feature by feature.
    Failed features are reported individually; a partial import still succeeds.
    """
    report = await geojson.import_feature_collection(session, user.id, collection.features)
    return success(
        message=f"Successfully imported {report.imported} polygon(s)",
        imported=report.imported,
        errors=report.errors
    )


@router.get("/{polygon_id}")
async def get_polygon(
    polygon_id: int,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session)
):
    polygon = await polygons.get_polygon(session, user.id, polygon_id)
    return success(data=PolygonResponse.model_validate(polygon))


@router.put("/{polygon_id}")
@router.patch("/{polygon_id}")
async def update_polygon(
    polygon_id: int,
    polygon_data: PolygonUpdate,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session)
):
    """Update any subset of a polygon's mutable fields"""
    polygon = await polygons.update_polygon(session, user.id, polygon_id, polygon_data)
    return success(
        data=PolygonResponse.model_validate(polygon),
        message="Polygon updated successfully"
    )


@router.delete("/{polygon_id}")
async def delete_polygon(
    polygon_id: int,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session)
):
    await polygons.delete_polygon(session, user.id, polygon_id)
    return success(message="Polygon deleted successfully")
