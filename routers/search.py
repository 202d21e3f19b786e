"""
Search Router - location search
"""
from fastapi import APIRouter, Depends, Query

from auth import get_current_user
from models.user import User
from schemas.common import success
from services.geocoding import NominatimGeocoder, get_geocoder

router = APIRouter()


@router.get("/location")
async def search_location(
    query: str = Query(..., min_length=1, max_length=255),
    user: User = Depends(get_current_user),
    geocoder: NominatimGeocoder = Depends(get_geocoder)
):
    """Search places by name; upstream failures return 503"""
    results = await geocoder.search(query)
    return success(data=results)
