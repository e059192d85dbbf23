"""Geohash encoding for the spatial bucket index.

A geohash interleaves longitude and latitude bisection bits and writes them
five at a time in base32. Each extra character shrinks the cell ~32x, and a
shared prefix means a shared enclosing cell.
"""

import math

_BASE32 = "0123456789bcdefghjkmnpqrstuvwxyz"
_DECODE = {ch: i for i, ch in enumerate(_BASE32)}


def valid_coordinate(lat, lon) -> bool:
    """True for a finite, in-range pair. (0, 0) is the default many cameras write."""
    try:
        lat = float(lat)
        lon = float(lon)
    except (TypeError, ValueError):
        return False
    if math.isnan(lat) or math.isnan(lon):
        return False
    if not (-90.0 <= lat <= 90.0 and -180.0 <= lon <= 180.0):
        return False
    return not (lat == 0.0 and lon == 0.0)


def encode(lat: float, lon: float, precision: int) -> str:
    lat_lo, lat_hi = -90.0, 90.0
    lon_lo, lon_hi = -180.0, 180.0
    chars = []
    bits = 0
    value = 0
    use_lon = True

    while len(chars) < precision:
        if use_lon:
            mid = (lon_lo + lon_hi) / 2
            if lon >= mid:
                value = (value << 1) | 1
                lon_lo = mid
            else:
                value <<= 1
                lon_hi = mid
        else:
            mid = (lat_lo + lat_hi) / 2
            if lat >= mid:
                value = (value << 1) | 1
                lat_lo = mid
            else:
                value <<= 1
                lat_hi = mid
        use_lon = not use_lon
        bits += 1
        if bits == 5:
            chars.append(_BASE32[value])
            bits = 0
            value = 0

    return "".join(chars)


def bounds(geohash: str) -> tuple[float, float, float, float]:
    """(lat_lo, lat_hi, lon_lo, lon_hi) of a cell. Raises ValueError on bad input."""
    if not geohash:
        raise ValueError("empty geohash")
    lat_lo, lat_hi = -90.0, 90.0
    lon_lo, lon_hi = -180.0, 180.0
    use_lon = True

    for ch in geohash:
        if ch not in _DECODE:
            raise ValueError(f"invalid geohash character: {ch!r}")
        value = _DECODE[ch]
        for shift in range(4, -1, -1):
            bit = (value >> shift) & 1
            if use_lon:
                mid = (lon_lo + lon_hi) / 2
                if bit:
                    lon_lo = mid
                else:
                    lon_hi = mid
            else:
                mid = (lat_lo + lat_hi) / 2
                if bit:
                    lat_lo = mid
                else:
                    lat_hi = mid
            use_lon = not use_lon

    return lat_lo, lat_hi, lon_lo, lon_hi


def decode(geohash: str) -> tuple[float, float]:
    """Center (lat, lon) of a cell."""
    lat_lo, lat_hi, lon_lo, lon_hi = bounds(geohash)
    return (lat_lo + lat_hi) / 2, (lon_lo + lon_hi) / 2


def neighbors(geohash: str) -> list[str]:
    """The (up to) eight cells surrounding a cell, at the same precision."""
    lat_lo, lat_hi, lon_lo, lon_hi = bounds(geohash)
    lat_step = lat_hi - lat_lo
    lon_step = lon_hi - lon_lo
    lat_c = (lat_lo + lat_hi) / 2
    lon_c = (lon_lo + lon_hi) / 2

    result = []
    for dlat in (-1, 0, 1):
        for dlon in (-1, 0, 1):
            if dlat == 0 and dlon == 0:
                continue
            lat = lat_c + dlat * lat_step
            if not -90.0 <= lat <= 90.0:
                continue
            # Longitude wraps at the antimeridian.
            lon = (lon_c + dlon * lon_step + 180.0) % 360.0 - 180.0
            cell = encode(lat, lon, len(geohash))
            if cell != geohash and cell not in result:
                result.append(cell)
    return result


def precision_for_radius(radius_km: float) -> int:
    """Coarsest precision whose cell still roughly covers the search radius."""
    if radius_km < 0.1:
        return 7  # ~150m
    if radius_km < 1.0:
        return 6  # ~1km
    if radius_km < 5.0:
        return 5  # ~5km
    if radius_km < 40.0:
        return 4  # ~40km
    return 3  # ~150km
