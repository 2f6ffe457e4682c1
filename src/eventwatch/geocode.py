"""Mapbox geocoding with H3 cell indexing."""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

import h3
import requests

from eventwatch.errors import ExternalServiceError
from eventwatch.models import H3_RESOLUTIONS, GeocodedLocation

logger = logging.getLogger(__name__)

_GEOCODE_URL = "https://api.mapbox.com/geocoding/v5/mapbox.places/{place}.json"
_PLACE_TYPES = "place,region,country"


class MapboxGeocoder:
    """Resolve free-text place descriptions to coordinates and H3 cells."""

    def __init__(self, access_token: str, *, session: requests.Session | None = None) -> None:
        if not access_token:
            raise ValueError("MAPBOX_GEOCODING_TOKEN is required but was empty.")
        self._token = access_token
        self._session = session or requests.Session()

    def geocode(self, place: str) -> GeocodedLocation | None:
        """Return the best match for *place*, or ``None`` when Mapbox finds nothing."""
        if not place or place.strip().lower() == "none":
            return None

        url = _GEOCODE_URL.format(place=quote(place.strip(), safe=""))
        params = {"access_token": self._token, "limit": 1, "types": _PLACE_TYPES}
        try:
            resp = self._session.get(url, params=params, timeout=30)
        except requests.RequestException as exc:
            raise ExternalServiceError(f"Mapbox request failed: {exc}") from exc
        if resp.status_code != 200:
            raise ExternalServiceError(
                f"Mapbox returned {resp.status_code}: {resp.text[:300]}",
                status_code=resp.status_code,
            )

        try:
            features: list[dict[str, Any]] = resp.json().get("features") or []
        except ValueError as exc:
            raise ExternalServiceError(f"Mapbox returned invalid JSON: {exc}") from exc
        if not features:
            logger.warning("No geocoding results for: %s", place)
            return None

        feature = features[0]
        try:
            lng, lat = feature["center"]
        except (KeyError, TypeError, ValueError) as exc:
            raise ExternalServiceError(f"Mapbox feature has no usable center: {exc}") from exc

        return GeocodedLocation(
            location_name=feature.get("place_name", place),
            country=_extract_country(feature.get("context"), feature.get("place_type")),
            latitude=lat,
            longitude=lng,
            h3_cells=h3_cells(lat, lng),
        )


def h3_cells(lat: float, lng: float) -> dict[int, str]:
    return {res: h3.latlng_to_cell(lat, lng, res) for res in H3_RESOLUTIONS}


def _extract_country(context: list[dict[str, Any]] | None, place_type: list[str] | None) -> str | None:
    # A country-level result has no parent country; its name is the place itself.
    if place_type and "country" in place_type:
        return None
    for item in context or []:
        if str(item.get("id", "")).startswith("country"):
            return item.get("text")
    return None
