"""
Geocoding Service - location search proxied to Nominatim
"""
from typing import Any, Dict, List, Optional

import httpx
import structlog

from config import get_settings
from errors import RemoteUnavailableError

logger = structlog.get_logger()
settings = get_settings()


class NominatimGeocoder:
    """OpenStreetMap Nominatim search client"""

    def __init__(
        self,
        url: Optional[str] = None,
        user_agent: Optional[str] = None,
        limit: Optional[int] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.url = url or settings.nominatim_url
        self.user_agent = user_agent or settings.nominatim_user_agent
        self.limit = limit or settings.nominatim_limit
        self.timeout = timeout or settings.nominatim_timeout
        self.transport = transport

    async def search(self, query: str) -> List[Dict[str, Any]]:
        """Search places matching ``query``"""
        params = {
            "format": "json",
            "q": query,
            "limit": self.limit,
            "addressdetails": 1,
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.get(
                    self.url,
                    params=params,
                    headers={"User-Agent": self.user_agent}
                )
                response.raise_for_status()
                data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Geocoding request failed", query=query, error=str(e))
            raise RemoteUnavailableError("Search service unavailable") from e

        results = [
            {
                "display_name": item["display_name"],
                "lat": float(item["lat"]),
                "lon": float(item["lon"]),
                "type": item.get("type") or "unknown",
                "importance": item.get("importance") or 0,
            }
            for item in data
        ]

        logger.info("Geocoding search completed", query=query, count=len(results))
        return results


def get_geocoder() -> NominatimGeocoder:
    """Dependency providing the geocoder"""
    return NominatimGeocoder()
