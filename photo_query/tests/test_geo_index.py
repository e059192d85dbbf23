import sys
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import MagicMock

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import geo_index
from bucket_index import BuildStatus
from geo_index import GeoIndex
from geocoder import StaticGeocoder
from media import MediaRecord

PARIS = (48.8566, 2.3522)
TOKYO = (35.6812, 139.7671)


def _geocoder():
    return StaticGeocoder({"Paris": PARIS, "Tokyo": TOKYO})


def _items():
    return [
        ("a", *PARIS),
        ("b", 48.8570, 2.3525),
        ("c", None, None),
        ("d", 0.0, 0.0),
        ("e", 95.0, 10.0),
        ("f", *TOKYO),
    ]


def _full_precision_keys(index: GeoIndex, media_id: str) -> list[str]:
    return [
        key for key, ids in index._buckets.items()
        if len(key) == index.precision and media_id in ids
    ]


def test_build_counts(tmp_path):
    index = GeoIndex(tmp_path, geocoder=_geocoder())
    stats = index.build(_items())
    assert stats.status == BuildStatus.COMPLETED
    assert stats.total == 6
    assert stats.photos_indexed == 6
    assert stats.photos_with_location == 3
    assert index.stats().photos_indexed == 6
    assert index.stats().photos_with_location == 3


def test_each_located_item_in_exactly_one_cell(tmp_path):
    index = GeoIndex(tmp_path, geocoder=_geocoder())
    index.build(_items())
    for media_id in ("a", "b", "f"):
        assert len(_full_precision_keys(index, media_id)) == 1
    for media_id in ("c", "d", "e"):
        assert _full_precision_keys(index, media_id) == []


def test_build_is_idempotent(tmp_path):
    index = GeoIndex(tmp_path, geocoder=_geocoder())
    first = index.build(_items())
    snapshot = {k: set(v) for k, v in index._buckets.items()}
    second = index.build(_items())
    assert second.photos_indexed == first.photos_indexed
    assert second.photos_with_location == first.photos_with_location
    assert second.newly_indexed == 0
    assert index._buckets == snapshot


def test_accepts_media_records(tmp_path):
    index = GeoIndex(tmp_path, geocoder=_geocoder())
    records = [
        MediaRecord(id="p1", latitude=PARIS[0], longitude=PARIS[1],
                    created=datetime(2024, 7, 1, tzinfo=timezone.utc)),
        MediaRecord(id="p2"),
    ]
    stats = index.build(records)
    assert stats.photos_indexed == 2
    assert stats.photos_with_location == 1
    assert index.lookup("Paris") == {"p1"}


def test_lookup_by_name(tmp_path):
    index = GeoIndex(tmp_path, geocoder=_geocoder())
    index.build(_items())
    assert index.lookup("Paris") == {"a", "b"}
    assert index.lookup("paris") == {"a", "b"}
    assert index.lookup("Tokyo") == {"f"}


def test_lookup_unknown_place_is_empty(tmp_path):
    index = GeoIndex(tmp_path, geocoder=_geocoder())
    index.build(_items())
    assert index.lookup("Atlantis") == set()
    assert index.lookup("") == set()


def test_lookup_geocoder_failure_is_empty(tmp_path):
    failing = MagicMock()
    failing.geocode.side_effect = RuntimeError("network down")
    index = GeoIndex(tmp_path, geocoder=failing)
    index.build(_items())
    assert index.lookup("Paris") == set()


def test_lookup_without_geocoder_is_empty(tmp_path):
    index = GeoIndex(tmp_path)
    index.build(_items())
    assert index.lookup("Paris") == set()


def test_lookup_coordinate_radius(tmp_path):
    index = GeoIndex(tmp_path)
    index.build([("near", *PARIS), ("far", 48.95, 2.55)])
    assert index.lookup_coordinate(*PARIS, radius_km=0.5) == {"near"}
    assert index.lookup_coordinate(*PARIS, radius_km=200) == {"near", "far"}
    assert index.lookup_coordinate(0.0, 0.0) == set()


def test_moved_item_leaves_old_cell(tmp_path):
    index = GeoIndex(tmp_path, geocoder=_geocoder())
    index.build([("a", *PARIS)])
    index.build([("a", *TOKYO)])
    assert index.lookup("Paris") == set()
    assert index.lookup("Tokyo") == {"a"}
    assert len(_full_precision_keys(index, "a")) == 1


def test_item_losing_location_is_removed(tmp_path):
    index = GeoIndex(tmp_path, geocoder=_geocoder())
    index.build([("a", *PARIS)])
    index.build([("a", None, None)])
    assert index.lookup("Paris") == set()
    assert index.geohash_for("a") is None
    assert index.stats().photos_with_location == 0


def test_clear(tmp_path):
    index = GeoIndex(tmp_path, geocoder=_geocoder())
    index.build(_items())
    index.clear()
    assert index.stats().photos_indexed == 0
    assert index.stats().unique_keys == 0
    assert index.lookup("Paris") == set()
    assert not (tmp_path / "geo_index.json").exists()


def test_persistence_round_trip(tmp_path):
    index = GeoIndex(tmp_path, geocoder=_geocoder())
    index.build(_items())
    index.close()

    reloaded = GeoIndex(tmp_path, geocoder=_geocoder())
    assert reloaded.lookup("Paris") == {"a", "b"}
    assert reloaded.stats() == index.stats()
    assert reloaded.geohash_for("f") == index.geohash_for("f")


def test_corrupt_file_starts_empty(tmp_path):
    (tmp_path / "geo_index.json").write_text("{not json")
    index = GeoIndex(tmp_path, geocoder=_geocoder())
    assert index.stats().photos_indexed == 0


def test_precision_mismatch_starts_empty(tmp_path):
    GeoIndex(tmp_path, precision=6).build(_items())
    index = GeoIndex(tmp_path, precision=7)
    assert index.stats().photos_indexed == 0


def test_progress_cadence(tmp_path):
    index = GeoIndex(tmp_path)
    calls = []
    items = [(str(i), 10.0 + i * 0.001, 20.0) for i in range(250)]
    index.build(items, on_progress=lambda current, total: calls.append((current, total)))
    assert calls == [(100, 250), (200, 250), (250, 250)]


def test_cancel_keeps_committed_state(tmp_path):
    index = GeoIndex(tmp_path)
    items = [(str(i), 10.0 + i * 0.001, 20.0) for i in range(250)]

    def on_progress(current, total):
        if current == 100:
            index.cancel()

    stats = index.build(items, on_progress=on_progress)
    assert stats.status == BuildStatus.CANCELLED
    assert stats.photos_indexed == 100
    assert index.stats().photos_indexed == 100
    assert not index.building

    # A new build starts with the cancel flag reset.
    stats = index.build(items)
    assert stats.status == BuildStatus.COMPLETED
    assert stats.photos_indexed == 250


def test_concurrent_build_is_refused(tmp_path):
    index = GeoIndex(tmp_path)
    items = [(str(i), 10.0 + i * 0.001, 20.0) for i in range(150)]
    nested = []

    def on_progress(current, total):
        if current == 100:
            nested.append(index.build([("x", *PARIS)]))

    stats = index.build(items, on_progress=on_progress)
    assert stats.status == BuildStatus.COMPLETED
    assert nested[0].status == BuildStatus.BUSY
    assert not index.is_indexed("x")


def test_reserved_build_is_taken_over_by_next_build(tmp_path):
    index = GeoIndex(tmp_path)
    assert index.reserve_build()
    assert index.building
    assert not index.reserve_build()

    stats = index.build([("a", *PARIS)])
    assert stats.status == BuildStatus.COMPLETED
    assert not index.building
    assert index.reserve_build()
    index.release_build()
    assert not index.building


def test_cancel_before_reserved_build_starts(tmp_path):
    index = GeoIndex(tmp_path)
    assert index.reserve_build()
    index.cancel()
    stats = index.build([("a", *PARIS), ("b", *TOKYO)])
    assert stats.status == BuildStatus.CANCELLED
    assert stats.photos_indexed == 0


def test_release_build_leaves_running_build_alone(tmp_path):
    index = GeoIndex(tmp_path)
    items = [(str(i), 10.0 + i * 0.001, 20.0) for i in range(150)]
    seen = []

    def on_progress(current, total):
        if current == 100:
            index.release_build()
            seen.append(index.building)

    index.build(items, on_progress=on_progress)
    assert seen == [True]


def test_locations_busiest_first(tmp_path, monkeypatch):
    monkeypatch.setattr(
        geo_index.reverse_geocode,
        "search",
        lambda coords: [{"city": "Paris", "country": "France"}] * len(coords),
    )
    index = GeoIndex(tmp_path)
    index.build([("a", *PARIS), ("b", *PARIS), ("f", *TOKYO)])
    places = index.locations(limit=5)
    assert [p["count"] for p in places] == [2, 1]
    assert places[0]["geohash"] == index.geohash_for("a")
    assert places[0]["place"] == "Paris, France"
    assert index.locations(limit=1)[0]["count"] == 2


def test_locations_reverse_geocode_failure(tmp_path, monkeypatch):
    def boom(coords):
        raise RuntimeError("no data")

    monkeypatch.setattr(geo_index.reverse_geocode, "search", boom)
    index = GeoIndex(tmp_path)
    index.build([("a", *PARIS)])
    assert index.locations()[0]["place"] == ""
