"""
Shared fixtures: a FastAPI TestClient on a throwaway SQLite database.
"""

import os
import tempfile

# Must be set before the database module creates its engine
_DB_DIR = tempfile.mkdtemp(prefix="deforestation-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(_DB_DIR, 'test.db')}"

from typing import Any, Dict, List, Optional, Tuple  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from database import reset_db  # noqa: E402
from main import app  # noqa: E402


def square_ring(lng: float, lat: float, half: float = 0.5) -> List[List[float]]:
    """Closed square ring centred on (lng, lat)."""
    return [
        [lng - half, lat - half],
        [lng + half, lat - half],
        [lng + half, lat + half],
        [lng - half, lat + half],
        [lng - half, lat - half],
    ]


def make_polygon(
    polygon_id: Optional[str] = None,
    center: Tuple[float, float] = (1.0, 1.0),
    **properties: Any,
) -> Dict[str, Any]:
    """Polygon store input centred on (lng, lat)."""
    polygon: Dict[str, Any] = {
        "geometry": {"type": "Polygon", "coordinates": [square_ring(*center)]},
        "properties": properties,
    }
    if polygon_id is not None:
        polygon["id"] = polygon_id
    return polygon


def make_polygon_payload(object_id: int, lng: float = 101.5, lat: float = 3.1, **overrides: Any) -> Dict[str, Any]:
    """Full create request for the polygons API."""
    payload = {
        "object_id": object_id,
        "license_no": f"MPOB-{object_id:05d}",
        "smallholder_name": f"Smallholder {object_id}",
        "state": "Selangor",
        "district": "Klang",
        "certified_area_ha": 2.5,
        "planted_area_ha": 2.1,
        "longitude": lng,
        "latitude": lat,
        "geometry": {"type": "Polygon", "coordinates": [square_ring(lng, lat, 0.01)]},
        "centroid": [lat, lng],
        "area_km2": 0.025,
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def client():
    """TestClient with a freshly created schema."""
    with TestClient(app) as test_client:
        test_client.portal.call(reset_db)
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers() -> Dict[str, str]:
    return {"X-User-Id": "1", "X-User-Email": "owner@example.com"}


@pytest.fixture
def other_headers() -> Dict[str, str]:
    return {"X-User-Id": "2"}
