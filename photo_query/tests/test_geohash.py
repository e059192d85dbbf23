import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import geohash


def test_encode_reference_point():
    assert geohash.encode(57.64911, 10.40744, 11) == "u4pruydqqvj"


def test_shorter_precision_is_prefix():
    full = geohash.encode(48.8566, 2.3522, 8)
    for length in range(1, 8):
        assert geohash.encode(48.8566, 2.3522, length) == full[:length]


def test_decode_center_is_inside_cell():
    cell = geohash.encode(57.64911, 10.40744, 6)
    lat, lon = geohash.decode(cell)
    lat_lo, lat_hi, lon_lo, lon_hi = geohash.bounds(cell)
    assert lat_lo <= 57.64911 <= lat_hi
    assert lon_lo <= 10.40744 <= lon_hi
    assert geohash.encode(lat, lon, 6) == cell


def test_bounds_rejects_bad_input():
    with pytest.raises(ValueError):
        geohash.bounds("")
    with pytest.raises(ValueError):
        geohash.bounds("u4a")  # 'a' is not in the alphabet


def test_neighbors_surround_cell():
    cell = geohash.encode(48.8566, 2.3522, 6)
    around = geohash.neighbors(cell)
    assert len(around) == 8
    assert len(set(around)) == 8
    assert cell not in around
    assert all(len(n) == 6 for n in around)


def test_neighbors_wrap_antimeridian():
    cell = geohash.encode(0.5, 179.99, 5)
    around = geohash.neighbors(cell)
    assert any(geohash.decode(n)[1] < 0 for n in around)


def test_neighbors_at_pole_are_clipped():
    cell = geohash.encode(89.99, 0.5, 3)
    around = geohash.neighbors(cell)
    assert 0 < len(around) < 8


def test_valid_coordinate():
    assert geohash.valid_coordinate(48.85, 2.35)
    assert geohash.valid_coordinate(-90, 180)
    assert geohash.valid_coordinate("48.85", "2.35")


def test_invalid_coordinate():
    assert not geohash.valid_coordinate(None, 2.35)
    assert not geohash.valid_coordinate(48.85, None)
    assert not geohash.valid_coordinate(float("nan"), 2.35)
    assert not geohash.valid_coordinate(91, 0.5)
    assert not geohash.valid_coordinate(10, -181)
    assert not geohash.valid_coordinate("north", 2.35)
    assert not geohash.valid_coordinate(0.0, 0.0)


def test_precision_for_radius():
    assert geohash.precision_for_radius(0.05) == 7
    assert geohash.precision_for_radius(0.5) == 6
    assert geohash.precision_for_radius(2.0) == 5
    assert geohash.precision_for_radius(20) == 4
    assert geohash.precision_for_radius(500) == 3
