"""
Map session state schemas
"""
from typing import Any, Dict

from pydantic import BaseModel


class SaveStateRequest(BaseModel):
    """Opaque map view blob (center, zoom, active layers)"""
    map_state: Dict[str, Any]
