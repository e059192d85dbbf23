"""Forward geocoding: place name -> approximate (lat, lon).

Retry and timeout policy belong to the geocoder, not to the index that
calls it.
"""

import logging

import httpx

from config import GEOCODER_TIMEOUT, GEOCODER_USER_AGENT, NOMINATIM_URL

logger = logging.getLogger(__name__)


class StaticGeocoder:
    """Case-insensitive lookup in a fixed gazetteer."""

    def __init__(self, places: dict[str, tuple[float, float]] | None = None):
        self._places = {k.strip().lower(): v for k, v in (places or {}).items()}

    def add(self, name: str, lat: float, lon: float) -> None:
        self._places[name.strip().lower()] = (lat, lon)

    def geocode(self, name: str) -> tuple[float, float] | None:
        return self._places.get(name.strip().lower())


class NominatimGeocoder:
    """OpenStreetMap Nominatim search API.

    Results are cached per process; Nominatim asks clients not to repeat
    identical queries.
    """

    def __init__(self, base_url: str = NOMINATIM_URL, http: httpx.Client | None = None):
        self._base_url = base_url
        self._http = http or httpx.Client(
            timeout=GEOCODER_TIMEOUT,
            headers={"User-Agent": GEOCODER_USER_AGENT},
        )
        self._cache: dict[str, tuple[float, float] | None] = {}

    def geocode(self, name: str) -> tuple[float, float] | None:
        key = name.strip().lower()
        if key in self._cache:
            return self._cache[key]

        resp = self._http.get(
            self._base_url, params={"q": name, "format": "json", "limit": 1}
        )
        resp.raise_for_status()
        results = resp.json()

        coords = None
        if results:
            try:
                coords = (float(results[0]["lat"]), float(results[0]["lon"]))
            except (KeyError, TypeError, ValueError):
                logger.debug("Unexpected Nominatim payload for %r: %r", name, results[0])
        self._cache[key] = coords
        return coords


class ChainGeocoder:
    """Try each geocoder in turn; the first hit wins.

    A failing geocoder is logged and the next one is tried.
    """

    def __init__(self, *geocoders):
        self._geocoders = geocoders

    def geocode(self, name: str) -> tuple[float, float] | None:
        for geocoder in self._geocoders:
            try:
                coords = geocoder.geocode(name)
            except Exception:
                logger.warning(
                    "%s failed for %r", type(geocoder).__name__, name, exc_info=True
                )
                continue
            if coords is not None:
                return coords
        return None
