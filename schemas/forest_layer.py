"""
Forest layer schemas
"""
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from models.forest_layer import FOREST_TYPES

HEX_COLOR = r"^#[0-9A-Fa-f]{6}$"


class ForestLayerCreate(BaseModel):
    """Create forest layer request"""
    name: str = Field(..., min_length=1, max_length=255)
    type: str
    color: str = Field(default="#3b82f6", pattern=HEX_COLOR)
    geometry: Dict[str, Any]
    properties: Optional[Dict[str, Any]] = None
    area_km2: Optional[float] = Field(None, ge=0)
    visible: bool = True
    opacity: float = Field(default=0.70, ge=0, le=1)

    @field_validator("type")
    @classmethod
    def validate_type(cls, v: str) -> str:
        if v not in FOREST_TYPES:
            raise ValueError(f"Forest type must be one of: {', '.join(FOREST_TYPES)}")
        return v


class ForestLayerUpdate(BaseModel):
    """Update forest layer request - display attributes only"""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    color: Optional[str] = Field(None, pattern=HEX_COLOR)
    visible: Optional[bool] = None
    opacity: Optional[float] = Field(None, ge=0, le=1)


class ForestLayerResponse(BaseModel):
    """Stored forest layer"""
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    name: str
    type: str
    color: str
    geometry: Dict[str, Any]
    properties: Optional[Dict[str, Any]]
    area_km2: Optional[float]
    visible: bool
    opacity: float
    created_at: datetime
    updated_at: Optional[datetime]
