"""Address and postal-code lookups backed by the MapQuest geocoding API."""

from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol

import httpx

from config import Settings
from errors import DeliveryError, NotFoundError
from logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class GeoResult:
    latitude: float
    longitude: float
    formatted_address: Optional[str] = None
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zipcode: Optional[str] = None
    country: Optional[str] = None

    def to_location(self) -> Dict[str, Any]:
        """GeoJSON point plus address parts, as stored on a bootcamp."""
        return {
            "type": "Point",
            "coordinates": [self.longitude, self.latitude],
            "formatted_address": self.formatted_address,
            "street": self.street,
            "city": self.city,
            "state": self.state,
            "zipcode": self.zipcode,
            "country": self.country,
        }


class Geocoder(Protocol):
    async def geocode(self, address: str) -> GeoResult: ...


class MapQuestGeocoder:
    URL = "https://www.mapquestapi.com/geocoding/v1/address"

    def __init__(self, api_key: Optional[str], timeout: float = 10.0):
        self.api_key = api_key
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> "MapQuestGeocoder":
        return cls(settings.geocoder_api_key)

    async def geocode(self, address: str) -> GeoResult:
        if not self.api_key:
            logger.error("Geocoder API key is not configured")
            raise DeliveryError("Geocoding is unavailable")
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(self.URL, params={"key": self.api_key, "location": address})
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("Geocoding request failed", error=str(e))
            raise DeliveryError("Geocoding is unavailable")

        results = response.json().get("results") or [{}]
        locations = results[0].get("locations") or []
        loc = locations[0] if locations else {}
        lat_lng = loc.get("latLng") or loc.get("displayLatLng") or {}
        if "lat" not in lat_lng or "lng" not in lat_lng:
            raise NotFoundError(f"Could not find a location for {address}")
        parts = [loc.get("street"), loc.get("adminArea5"), loc.get("adminArea3"), loc.get("postalCode"), loc.get("adminArea1")]
        return GeoResult(
            latitude=lat_lng["lat"],
            longitude=lat_lng["lng"],
            formatted_address=", ".join(part for part in parts if part) or None,
            street=loc.get("street") or None,
            city=loc.get("adminArea5") or None,
            state=loc.get("adminArea3") or None,
            zipcode=loc.get("postalCode") or None,
            country=loc.get("adminArea1") or None,
        )
