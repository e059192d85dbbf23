"""Geohash bucket index: place name or coordinate -> media ids, O(1) per cell.

Each located item sits in exactly one full-precision cell. The same id is
also kept under every coarser prefix down to GEOHASH_MIN_PREFIX so that a
wider search radius is still a handful of dictionary lookups.
"""

import logging
import time
from pathlib import Path
from typing import Callable, Iterable

import reverse_geocode

import geohash
from bucket_index import BucketIndex, BuildStats, BuildStatus, IndexStats
from config import (
    CACHE_DIR,
    GEO_INDEX_FILE,
    GEO_SEARCH_RADIUS_KM,
    GEOHASH_MIN_PREFIX,
    GEOHASH_PRECISION,
    PROGRESS_INTERVAL,
)
from media import MediaRecord

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


def _batch_reverse_geocode(coords: list[tuple[float, float]]) -> list[str]:
    """Reverse geocode a batch of (lat, lon) pairs to 'City, Country' strings."""
    if not coords:
        return []
    try:
        results = reverse_geocode.search(coords)
        places = []
        for geo in results:
            city = geo.get("city", "")
            country = geo.get("country", "")
            if city and country:
                places.append(f"{city}, {country}")
            else:
                places.append(city or country)
        return places
    except Exception:
        logger.debug("Batch reverse geocoding failed", exc_info=True)
        return [""] * len(coords)


def _coordinates(item) -> tuple[str, float | None, float | None]:
    if isinstance(item, MediaRecord):
        return item.id, item.latitude, item.longitude
    media_id, lat, lon = item
    return str(media_id), lat, lon


class GeoIndex(BucketIndex):
    def __init__(
        self,
        cache_dir: Path | None = None,
        geocoder=None,
        precision: int = GEOHASH_PRECISION,
    ):
        if precision < GEOHASH_MIN_PREFIX:
            raise ValueError(f"precision must be >= {GEOHASH_MIN_PREFIX}")
        self._precision = precision
        self._geocoder = geocoder
        self._asset_geohash: dict[str, str] = {}
        super().__init__((cache_dir or CACHE_DIR).resolve() / GEO_INDEX_FILE.name)

    @property
    def precision(self) -> int:
        return self._precision

    # -- persistence hooks --

    def _extra_state(self) -> dict:
        return {"precision": self._precision, "asset_geohash": dict(self._asset_geohash)}

    def _restore_extra_state(self, data: dict) -> None:
        stored = data.get("precision", self._precision)
        if stored != self._precision:
            raise ValueError(f"index built at precision {stored}, expected {self._precision}")
        self._asset_geohash = dict(data.get("asset_geohash", {}))

    def _reset_extra_state(self) -> None:
        self._asset_geohash = {}

    # -- build --

    def _place(self, media_id: str, cell: str | None) -> bool:
        """Move media_id into cell (or out of the index when None).

        Returns True when the placement changed.
        """
        with self._lock:
            previous = self._asset_geohash.get(media_id)
            if previous == cell:
                return False
            if previous is not None:
                for length in range(GEOHASH_MIN_PREFIX, len(previous) + 1):
                    self._discard(previous[:length], media_id)
                del self._asset_geohash[media_id]
            if cell is not None:
                for length in range(GEOHASH_MIN_PREFIX, len(cell) + 1):
                    self._insert(cell[:length], media_id)
                self._asset_geohash[media_id] = cell
            return True

    def build(
        self,
        items: Iterable,
        on_progress: ProgressCallback | None = None,
    ) -> BuildStats:
        """Index every item that carries a valid coordinate pair.

        Items are MediaRecords or (id, latitude, longitude) tuples. Running
        the same input twice leaves the index unchanged.
        """
        if not self._begin_build():
            logger.info("Geo index build already running")
            return BuildStats(status=BuildStatus.BUSY)

        start = time.time()
        items = list(items)
        total = len(items)
        stats = BuildStats(total=total)
        position = 0
        try:
            for item in items:
                if self._cancelled():
                    stats.status = BuildStatus.CANCELLED
                    logger.info("Geo index build cancelled at %d/%d", position, total)
                    break

                position += 1
                media_id, lat, lon = _coordinates(item)
                self._mark_indexed(media_id)
                stats.photos_indexed += 1

                if not geohash.valid_coordinate(lat, lon):
                    if lat is not None or lon is not None:
                        logger.debug("Skipping invalid coordinate for %s: (%r, %r)", media_id, lat, lon)
                    self._place(media_id, None)
                else:
                    cell = geohash.encode(float(lat), float(lon), self._precision)
                    if self._place(media_id, cell):
                        stats.newly_indexed += 1
                    stats.photos_with_location += 1

                if on_progress and position % PROGRESS_INTERVAL == 0:
                    on_progress(position, total)
        finally:
            self._save()
            self._end_build()

        if on_progress:
            on_progress(position, total)
        stats.elapsed = time.time() - start
        logger.info("Geo index: %s", stats.summary())
        return stats

    # -- search --

    def lookup(self, name: str, radius_km: float = GEO_SEARCH_RADIUS_KM) -> set[str]:
        """Media ids near a named place. Unresolvable names give an empty set."""
        if not name or not name.strip():
            return set()
        if self._geocoder is None:
            logger.warning("No geocoder configured; cannot resolve %r", name)
            return set()
        try:
            coords = self._geocoder.geocode(name)
        except Exception:
            logger.warning("Geocoding failed for %r", name, exc_info=True)
            return set()
        if coords is None:
            logger.info("Location not found: %r", name)
            return set()
        lat, lon = coords
        return self.lookup_coordinate(lat, lon, radius_km)

    def lookup_coordinate(
        self, lat: float, lon: float, radius_km: float = GEO_SEARCH_RADIUS_KM
    ) -> set[str]:
        """Media ids in the cell around (lat, lon) and its eight neighbours."""
        if not geohash.valid_coordinate(lat, lon):
            return set()
        precision = min(geohash.precision_for_radius(radius_km), self._precision)
        precision = max(precision, GEOHASH_MIN_PREFIX)
        cell = geohash.encode(float(lat), float(lon), precision)

        results = self._members(cell)
        for neighbor in geohash.neighbors(cell):
            results |= self._members(neighbor)
        return results

    def geohash_for(self, media_id: str) -> str | None:
        with self._lock:
            return self._asset_geohash.get(media_id)

    def locations(self, limit: int = 20) -> list[dict]:
        """Busiest full-precision cells with a reverse-geocoded place name."""
        with self._lock:
            cells = [
                (key, len(ids))
                for key, ids in self._buckets.items()
                if len(key) == self._precision
            ]
        cells.sort(key=lambda c: (-c[1], c[0]))
        cells = cells[:limit]

        centers = [geohash.decode(key) for key, _ in cells]
        places = _batch_reverse_geocode(centers)
        return [
            {
                "geohash": key,
                "count": count,
                "latitude": round(lat, 5),
                "longitude": round(lon, 5),
                "place": place,
            }
            for (key, count), (lat, lon), place in zip(cells, centers, places)
        ]

    def stats(self) -> IndexStats:
        with self._lock:
            return IndexStats(
                photos_indexed=len(self._indexed),
                photos_with_location=len(self._asset_geohash),
                unique_keys=sum(1 for k in self._buckets if len(k) == self._precision),
            )
