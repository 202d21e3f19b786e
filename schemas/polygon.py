"""
Polygon schemas
"""
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class PolygonCreate(BaseModel):
    """Create polygon request - the full field set is required"""
    object_id: int
    license_no: str = Field(..., max_length=255)
    smallholder_name: str = Field(..., max_length=255)
    state: str = Field(..., max_length=255)
    district: str = Field(..., max_length=255)
    subdistrict: Optional[str] = Field(None, max_length=255)
    spoc_name: Optional[str] = Field(None, max_length=255)
    spoc_code: Optional[str] = Field(None, max_length=255)
    lot_no: Optional[str] = Field(None, max_length=255)
    certified_area_ha: float = Field(..., ge=0)
    planted_area_ha: float = Field(..., ge=0)
    longitude: float = Field(..., ge=-180, le=180)
    latitude: float = Field(..., ge=-90, le=90)
    mspo_certification: Optional[str] = Field(None, max_length=255)
    land_title: Optional[str] = Field(None, max_length=255)
    geometry: Dict[str, Any]
    centroid: List[float]
    area_km2: float = Field(..., ge=0)


class PolygonUpdate(BaseModel):
    """Update polygon request - any subset of the mutable fields"""
    license_no: Optional[str] = Field(None, max_length=255)
    smallholder_name: Optional[str] = Field(None, max_length=255)
    state: Optional[str] = Field(None, max_length=255)
    district: Optional[str] = Field(None, max_length=255)
    subdistrict: Optional[str] = Field(None, max_length=255)
    spoc_name: Optional[str] = Field(None, max_length=255)
    spoc_code: Optional[str] = Field(None, max_length=255)
    lot_no: Optional[str] = Field(None, max_length=255)
    certified_area_ha: Optional[float] = Field(None, ge=0)
    planted_area_ha: Optional[float] = Field(None, ge=0)
    mspo_certification: Optional[str] = Field(None, max_length=255)
    land_title: Optional[str] = Field(None, max_length=255)
    geometry: Optional[Dict[str, Any]] = None
    centroid: Optional[List[float]] = None
    area_km2: Optional[float] = Field(None, ge=0)


class PolygonResponse(BaseModel):
    """Stored polygon"""
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    object_id: int
    license_no: str
    smallholder_name: str
    state: str
    district: str
    subdistrict: Optional[str]
    spoc_name: Optional[str]
    spoc_code: Optional[str]
    lot_no: Optional[str]
    certified_area_ha: float
    planted_area_ha: float
    longitude: float
    latitude: float
    mspo_certification: Optional[str]
    land_title: Optional[str]
    geometry: Dict[str, Any]
    centroid: List[float]
    area_km2: float
    created_at: datetime
    updated_at: Optional[datetime]


class FeatureCollection(BaseModel):
    """GeoJSON FeatureCollection accepted by the import endpoint"""
    type: Literal["FeatureCollection"]
    features: List[Any]


class ImportReport(BaseModel):
    imported: int = 0
    errors: List[str] = Field(default_factory=list)
