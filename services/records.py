"""
Polygon store records - client-side polygon data structures
"""
import math
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Severity(str, Enum):
    """Intensity classification of a detected change"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class Cause(str, Enum):
    """Attributed driver of a detected change"""
    AGRICULTURE = "agriculture"
    LOGGING = "logging"
    INFRASTRUCTURE = "infrastructure"
    MINING = "mining"
    URBAN = "urban"
    NATURAL = "natural"
    UNKNOWN = "unknown"


class DrawingMode(str, Enum):
    POLYGON = "polygon"
    RECTANGLE = "rectangle"
    CIRCLE = "circle"


class HistoryOperation(str, Enum):
    ADD = "add"
    UPDATE = "update"
    REMOVE = "remove"
    BULK_UPDATE = "bulkUpdate"
    BULK_DELETE = "bulkDelete"


SEVERITIES = frozenset(s.value for s in Severity)
CAUSES = frozenset(c.value for c in Cause)


# ===========================================
# Polygon record
# ===========================================

class PolygonGeometry(BaseModel):
    """GeoJSON Polygon geometry; coordinates are checked by the validator"""
    model_config = ConfigDict(extra="allow")

    type: str = "Polygon"
    coordinates: Any = None


class PolygonProperties(BaseModel):
    """
    Well-known polygon properties plus arbitrary extra keys.

    Extra keys are preserved verbatim and exposed through ``extras``.
    """
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    severity: Optional[str] = None
    cause: Optional[str] = None
    area: Optional[Any] = None
    detected_date: Optional[Any] = Field(default=None, alias="detectedDate")
    estimated_date: Optional[Any] = Field(default=None, alias="estimatedDate")

    @property
    def extras(self) -> Dict[str, Any]:
        return dict(self.model_extra or {})


class Polygon(BaseModel):
    """A land parcel or detected-change polygon held by the polygon store"""
    model_config = ConfigDict(populate_by_name=True)

    id: Optional[str] = None
    geometry: Optional[PolygonGeometry] = None
    properties: Optional[PolygonProperties] = Field(default_factory=PolygonProperties)
    centroid: Optional[List[float]] = None  # [lat, lng]
    created_at: Optional[str] = Field(default=None, alias="createdAt")
    updated_at: Optional[str] = Field(default=None, alias="updatedAt")

    @property
    def ring(self) -> Optional[list]:
        """Outer ring, or None when the geometry has none"""
        if not self.geometry or not isinstance(self.geometry.coordinates, (list, tuple)):
            return None
        if not self.geometry.coordinates:
            return None
        return self.geometry.coordinates[0]

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


# ===========================================
# Derived records
# ===========================================

class AnalysisResult(BaseModel):
    """Geometric metrics computed for one polygon"""
    model_config = ConfigDict(populate_by_name=True)

    area: float  # hectares
    perimeter: float  # metres
    centroid: Dict[str, float]
    bounding_box: Dict[str, float] = Field(alias="boundingBox")
    compactness: float
    analyzed_at: str = Field(alias="analyzedAt")


class HistoryEntry(BaseModel):
    """One entry of the operation log"""
    model_config = ConfigDict(populate_by_name=True)

    operation: HistoryOperation
    polygon_ids: List[str] = Field(alias="polygonIds")
    data: Optional[Any] = None
    timestamp: str


class MonthlyTrend(BaseModel):
    month: str  # YYYY-MM
    count: int
    area: float


class PolygonStatsSnapshot(BaseModel):
    """Aggregates over the polygon collection, recomputed after each mutation"""
    model_config = ConfigDict(populate_by_name=True)

    total_count: int = Field(default=0, alias="totalCount")
    total_area: float = Field(default=0.0, alias="totalArea")
    average_area: float = Field(default=0.0, alias="averageArea")
    severity_distribution: Dict[str, int] = Field(default_factory=dict, alias="severityDistribution")
    cause_distribution: Dict[str, int] = Field(default_factory=dict, alias="causeDistribution")
    monthly_trends: List[MonthlyTrend] = Field(default_factory=list, alias="monthlyTrends")


class Bounds(BaseModel):
    """Geographic rectangle, inclusive on all edges"""
    north: float
    south: float
    east: float
    west: float

    def contains(self, lat: float, lng: float) -> bool:
        return self.south <= lat <= self.north and self.west <= lng <= self.east


class PolygonStyle(BaseModel):
    """Map display style"""
    model_config = ConfigDict(populate_by_name=True)

    fill_color: str = Field(alias="fillColor")
    fill_opacity: float = Field(alias="fillOpacity")
    stroke_color: str = Field(alias="strokeColor")
    stroke_width: int = Field(alias="strokeWidth")
    stroke_opacity: float = Field(default=0.8, alias="strokeOpacity")


DEFAULT_STYLE = PolygonStyle(
    fillColor="#ff4444", fillOpacity=0.3, strokeColor="#ff0000", strokeWidth=2, strokeOpacity=0.8
)

STYLES_BY_SEVERITY: Dict[str, PolygonStyle] = {
    Severity.LOW.value: PolygonStyle(fillColor="#ffeb3b", fillOpacity=0.3, strokeColor="#fbc02d", strokeWidth=2),
    Severity.MEDIUM.value: PolygonStyle(fillColor="#ff9800", fillOpacity=0.4, strokeColor="#f57c00", strokeWidth=2),
    Severity.HIGH.value: PolygonStyle(fillColor="#f44336", fillOpacity=0.5, strokeColor="#d32f2f", strokeWidth=3),
    Severity.CRITICAL.value: PolygonStyle(fillColor="#9c27b0", fillOpacity=0.6, strokeColor="#7b1fa2", strokeWidth=3),
}


# ===========================================
# Value helpers
# ===========================================

def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def parse_instant(value: Any) -> Optional[datetime]:
    """
    Parse a date-like value into an aware datetime.

    Accepts datetimes, dates, ISO 8601 strings and epoch milliseconds.
    Returns None when the value cannot be interpreted.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, (int, float)):
        if not math.isfinite(value):
            return None
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_area(value: Any) -> Optional[float]:
    """Numeric value of an area field, or None when it is not a finite number"""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None
