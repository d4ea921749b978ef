"""
Reverse geocoding against OpenStreetMap Nominatim.

- One request per call, no retries.
- Sends an identifying User-Agent as required by the Nominatim usage policy.
- Raises GeocodeUnavailable / GeocodeMalformed; the caller decides whether a
  failure matters.
"""

import asyncio
import logging
from typing import Any, Dict

import requests

from fixiepixie.core.errors import GeocodeMalformed, GeocodeUnavailable
from fixiepixie.core.settings import GeocoderSettings
from fixiepixie.models.report_model import Coordinate, GeoDescriptor

logger = logging.getLogger(__name__)

# Nominatim has no single "city" field; smaller places only carry one of these.
CITY_KEYS = ("city", "town", "village", "county")


def parse_address(data: Any) -> GeoDescriptor:
    """Normalize a Nominatim jsonv2 body into a GeoDescriptor."""
    if not isinstance(data, dict):
        raise GeocodeMalformed("reverse geocode response is not a JSON object")

    address = data.get("address")
    if not isinstance(address, dict):
        # Out-of-range coordinates come back as {"error": "Unable to geocode"}
        reason = data.get("error") or "no address object in response"
        raise GeocodeMalformed(str(reason))

    city = ""
    for key in CITY_KEYS:
        if address.get(key):
            city = str(address[key])
            break

    return GeoDescriptor(
        postal_code=str(address.get("postcode") or ""),
        city=city,
        state=str(address.get("state") or ""),
        display_address=str(data.get("display_name") or ""),
    )


class NominatimGeocoder:
    def __init__(self, settings: GeocoderSettings):
        self.settings = settings

    def _fetch(self, latitude: float, longitude: float) -> Dict[str, Any]:
        params = {
            "format": "jsonv2",
            "lat": latitude,
            "lon": longitude,
            "addressdetails": 1,
        }
        headers = {"User-Agent": self.settings.user_agent}
        try:
            resp = requests.get(self.settings.url, params=params, headers=headers, timeout=self.settings.timeout)
        except requests.RequestException as e:
            raise GeocodeUnavailable(f"reverse geocode request failed: {e}") from e

        if resp.status_code != 200:
            raise GeocodeUnavailable(f"reverse geocode returned HTTP {resp.status_code}")

        try:
            return resp.json()
        except ValueError as e:
            raise GeocodeMalformed("reverse geocode response is not valid JSON") from e

    async def reverse_geocode(self, coordinate: Coordinate) -> GeoDescriptor:
        data = await asyncio.to_thread(self._fetch, coordinate.latitude, coordinate.longitude)
        descriptor = parse_address(data)
        logger.debug(
            f"Reverse geocoded ({coordinate.latitude}, {coordinate.longitude}) -> "
            f"city='{descriptor.city}' zip='{descriptor.postal_code}'"
        )
        return descriptor
