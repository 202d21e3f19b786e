"""
Persistence Gateway - HTTP client for the polygon REST API

Used by the polygon store to synchronise with durable storage. Error
responses are translated back into the service error taxonomy.
"""
from typing import Any, Dict, List, Optional

import httpx
import structlog

from config import get_settings
from errors import NotFoundError, RemoteUnavailableError, ValidationError
from services.records import Bounds, Polygon

logger = structlog.get_logger()
settings = get_settings()

_RECORD_ONLY_FIELDS = ("id", "geometry", "centroid", "created_at", "updated_at")


def record_to_polygon(record: Dict[str, Any]) -> Polygon:
    """
    Convert a stored polygon into a polygon store record.

    Certification and identity fields become extra properties; the
    certified area is used as the polygon area.
    """
    properties = {k: v for k, v in record.items() if k not in _RECORD_ONLY_FIELDS}
    properties["area"] = record.get("certified_area_ha")

    return Polygon(
        id=str(record["id"]),
        geometry=record.get("geometry"),
        properties=properties,
        centroid=record.get("centroid"),
        created_at=record.get("created_at"),
        updated_at=record.get("updated_at"),
    )


class PolygonGateway:
    """Remote CRUD, bounds query and GeoJSON import/export"""

    def __init__(
        self,
        user_id: int,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.user_id = user_id
        self.base_url = base_url or settings.api_base_url
        self.timeout = timeout or settings.api_timeout
        self.transport = transport

    async def _request(
        self,
        method: str,
        path: str,
        resource_id: Any = None,
        **kwargs
    ) -> Dict[str, Any]:
        headers = {settings.user_id_header: str(self.user_id)}

        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self.transport,
                headers=headers
            ) as client:
                response = await client.request(method, path, **kwargs)
            payload = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Polygon API request failed", method=method, path=path, error=str(e))
            raise RemoteUnavailableError("Polygon service unavailable") from e

        if response.status_code == 404:
            raise NotFoundError("Polygon", resource_id)

        if response.status_code == 422:
            errors = payload.get("errors") or {}
            if isinstance(errors, dict):
                messages = [m for field_messages in errors.values() for m in field_messages]
                raise ValidationError(messages, field_errors=errors)
            raise ValidationError(list(errors))

        if response.status_code >= 400 or not payload.get("success", False):
            logger.error(
                "Polygon API error",
                method=method,
                path=path,
                status=response.status_code,
                message=payload.get("message")
            )
            raise RemoteUnavailableError("Polygon service unavailable")

        return payload

    async def list_records(
        self,
        bounds: Optional[Bounds] = None,
        state: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        params: Dict[str, Any] = {}
        if bounds is not None:
            params.update(bounds.model_dump())
        if state is not None:
            params["state"] = state

        payload = await self._request("GET", "/polygons", params=params)
        return payload.get("data") or []

    async def list_polygons(
        self,
        bounds: Optional[Bounds] = None,
        state: Optional[str] = None
    ) -> List[Polygon]:
        """Owned polygons as polygon store records"""
        return [record_to_polygon(r) for r in await self.list_records(bounds=bounds, state=state)]

    async def get_polygon(self, polygon_id: int) -> Dict[str, Any]:
        payload = await self._request("GET", f"/polygons/{polygon_id}", resource_id=polygon_id)
        return payload["data"]

    async def create_polygon(self, data: Dict[str, Any]) -> Dict[str, Any]:
        payload = await self._request("POST", "/polygons", json=data)
        return payload["data"]

    async def update_polygon(self, polygon_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
        payload = await self._request("PATCH", f"/polygons/{polygon_id}", resource_id=polygon_id, json=data)
        return payload["data"]

    async def delete_polygon(self, polygon_id: int) -> None:
        await self._request("DELETE", f"/polygons/{polygon_id}", resource_id=polygon_id)

    async def export_geojson(self) -> Dict[str, Any]:
        payload = await self._request("GET", "/polygons/export/geojson")
        return payload["data"]

    async def import_geojson(self, feature_collection: Dict[str, Any]) -> Dict[str, Any]:
        """Returns {"imported": count, "errors": [...]}"""
        payload = await self._request("POST", "/polygons/import/geojson", json=feature_collection)
        return {"imported": payload.get("imported", 0), "errors": payload.get("errors", [])}

    async def search_location(self, query: str) -> List[Dict[str, Any]]:
        payload = await self._request("GET", "/search/location", params={"query": query})
        return payload.get("data") or []

    async def save_map_state(self, map_state: Dict[str, Any]) -> None:
        await self._request("POST", "/session/save-state", json={"map_state": map_state})

    async def get_map_state(self) -> Optional[Dict[str, Any]]:
        payload = await self._request("GET", "/session/get-state")
        return payload.get("data")
