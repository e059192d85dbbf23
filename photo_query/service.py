"""HTTP service daemon for photo-query.

Owns the media catalog, the geo and label indexes, and the collaborators.
MCP servers connect as thin clients. Only one instance should run at a time.

    uv run python service.py

Startup order:
    1. Write PID, start uvicorn  -- HTTP is up immediately
    2. Background thread: scan the Photos library, load both indexes
    Handlers return {"loading": true} until the indexes are ready.

Builds run in the background and report progress through /status. Pass
{"wait": true} to block until the build finishes and get its stats.
"""

import asyncio
import logging
import os
import signal
import sys
import threading
import time
from dataclasses import asdict
from functools import partial

from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from bucket_index import BuildStats, BuildStatus
from classifier import ClipLabeler
from config import (
    CACHE_DIR,
    KNOWN_LOCATIONS,
    KNOWN_PLACES,
    LLM_API_KEY,
    NICE_VALUE,
    PHOTOS_LIBRARY,
    SERVICE_HOST,
    SERVICE_PID_FILE,
    SERVICE_PORT,
)
from geo_index import GeoIndex
from geocoder import ChainGeocoder, NominatimGeocoder, StaticGeocoder
from label_index import LabelIndex
from media import MediaCatalog, MediaKind
from photos_library import person_assets, primary_person_assets, scan_library
from search import SearchOrchestrator
from video_matcher import VideoMatcher

logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

_catalog: MediaCatalog | None = None
_geo: GeoIndex | None = None
_labels: LabelIndex | None = None
_search: SearchOrchestrator | None = None
_labeler = None
_state_lock = threading.Lock()
_ready = threading.Event()

_progress: dict[str, dict | None] = {"geo": None, "labels": None}
_last_build: dict[str, dict | None] = {"geo": None, "labels": None}
_background: set[asyncio.Task] = set()


def init_state(
    catalog: MediaCatalog,
    geo_index: GeoIndex,
    label_index: LabelIndex,
    primary_assets: set[str] | None = None,
    video_matcher=None,
    labeler=None,
    person_lookup=None,
) -> None:
    """Install the catalog, indexes and collaborators and mark the service ready."""
    global _catalog, _geo, _labels, _search, _labeler
    predicate = None
    if primary_assets:
        predicate = primary_assets.__contains__
    with _state_lock:
        _catalog = catalog
        _geo = geo_index
        _labels = label_index
        _labeler = labeler
        _search = SearchOrchestrator(
            catalog,
            geo_index,
            label_index,
            contains_primary_person=predicate,
            video_matcher=video_matcher,
            vocabulary=KNOWN_LOCATIONS,
            person_assets=person_lookup,
        )
        _progress.update(geo=None, labels=None)
        _last_build.update(geo=None, labels=None)
    _ready.set()


def _load_state() -> None:
    records = scan_library(PHOTOS_LIBRARY)
    primary = primary_person_assets(PHOTOS_LIBRARY)
    if not primary:
        logger.info("No people data in library; my-photos filter disabled")
    init_state(
        MediaCatalog(records),
        GeoIndex(
            CACHE_DIR,
            geocoder=ChainGeocoder(StaticGeocoder(KNOWN_PLACES), NominatimGeocoder()),
        ),
        LabelIndex(CACHE_DIR),
        primary_assets=primary,
        video_matcher=VideoMatcher() if LLM_API_KEY else None,
        labeler=ClipLabeler(),
        person_lookup=partial(person_assets, library_path=PHOTOS_LIBRARY),
    )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


_LOADING = JSONResponse({"loading": True}, status_code=503)


def _stats_dict(stats: BuildStats) -> dict:
    data = asdict(stats)
    data["status"] = stats.status.value
    data["summary"] = stats.summary()
    return data


async def _json_body(request: Request) -> dict:
    body = await request.body()
    if not body:
        return {}
    data = await request.json()
    return data if isinstance(data, dict) else {}


def _building_conflict(name: str) -> JSONResponse:
    return JSONResponse({"error": f"{name} index build already running"}, status_code=409)


def _limit_param(body: dict) -> tuple[int | None, JSONResponse | None]:
    """(limit, None) for a valid optional limit, else (None, 400 response)."""
    limit = body.get("limit")
    if limit is None:
        return None, None
    if isinstance(limit, bool) or not isinstance(limit, int) or limit < 0:
        return None, JSONResponse(
            {"error": "limit must be a non-negative integer"}, status_code=400
        )
    return limit, None


def _spawn(coro) -> None:
    task = asyncio.ensure_future(coro)
    _background.add(task)
    task.add_done_callback(_background.discard)


# ---------------------------------------------------------------------------
# Builds
# ---------------------------------------------------------------------------


async def _run_geo_build() -> dict:
    def on_progress(current: int, total: int) -> None:
        _progress["geo"] = {"current": current, "total": total}

    _progress["geo"] = {"current": 0, "total": len(_catalog)}
    try:
        stats = await asyncio.to_thread(_geo.build, _catalog.records(), on_progress)
    except Exception:
        logger.exception("Geo index build failed")
        raise
    finally:
        _progress["geo"] = None
    result = _stats_dict(stats)
    if stats.status != BuildStatus.BUSY:
        _last_build["geo"] = result
    return result


async def _classify(media_id: str) -> list[str]:
    record = _catalog.get(media_id)
    if record is None or not record.path:
        raise FileNotFoundError(media_id)
    result = await asyncio.to_thread(_labeler.classify, record.path)
    return result.labels


def _label_targets() -> list[str]:
    records = [r for r in _catalog.records() if r.kind == MediaKind.PHOTO and r.path]
    return _catalog.newest_first(r.id for r in records)


async def _run_label_build(limit: int | None) -> dict:
    def on_progress(current: int, total: int, last_label: str) -> None:
        _progress["labels"] = {"current": current, "total": total, "last_label": last_label}

    targets = _label_targets()
    _progress["labels"] = {"current": 0, "total": len(targets), "last_label": ""}
    try:
        if _labeler is not None and not _labeler.loaded:
            try:
                await asyncio.to_thread(_labeler.load)
            except Exception:
                # The build never started; give back the guard claimed by the handler.
                _labels.release_build()
                raise
        stats = await _labels.build(targets, _classify, limit=limit, on_progress=on_progress)
    except Exception:
        logger.exception("Label index build failed")
        raise
    finally:
        _progress["labels"] = None
    result = _stats_dict(stats)
    if stats.status != BuildStatus.BUSY:
        _last_build["labels"] = result
    return result


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


async def health(request: Request) -> JSONResponse:
    return JSONResponse({"ok": True, "ready": _ready.is_set()})


async def status(request: Request) -> JSONResponse:
    if not _ready.is_set():
        return _LOADING
    geo = _geo.stats()
    labels = _labels.stats()
    return JSONResponse({
        "library": str(PHOTOS_LIBRARY),
        "catalog_size": len(_catalog),
        "videos": len(_catalog.ids(MediaKind.VIDEO)),
        "geo": {
            "photos_indexed": geo.photos_indexed,
            "photos_with_location": geo.photos_with_location,
            "unique_geohashes": geo.unique_keys,
            "building": _geo.building,
            "progress": _progress["geo"],
            "last_build": _last_build["geo"],
        },
        "labels": {
            "photos_indexed": labels.photos_indexed,
            "photos_labeled": labels.photos_labeled,
            "unique_labels": labels.unique_keys,
            "building": _labels.building,
            "progress": _progress["labels"],
            "last_build": _last_build["labels"],
        },
    })


async def search(request: Request) -> JSONResponse:
    if not _ready.is_set():
        return _LOADING
    body = await _json_body(request)
    query = body.get("query", "")
    if not isinstance(query, str):
        return JSONResponse({"error": "query must be a string"}, status_code=400)
    limit, error = _limit_param(body)
    if error is not None:
        return error

    response = await asyncio.to_thread(_search.search, query, limit)
    data = response.to_dict()
    results = []
    for media_id in response.ids:
        record = _catalog.get(media_id)
        if record is None:
            continue
        results.append({
            "id": record.id,
            "kind": record.kind.value,
            "created": record.created.isoformat() if record.created else None,
            "path": record.path,
            "geohash": _geo.geohash_for(record.id),
            "labels": _labels.labels_for(record.id),
        })
    data["results"] = results
    return JSONResponse(data)


async def build_geo(request: Request) -> JSONResponse:
    if not _ready.is_set():
        return _LOADING
    body = await _json_body(request)
    # Claimed here so a second request sees the build before its task runs.
    if not _geo.reserve_build():
        return _building_conflict("Geo")
    if body.get("wait"):
        return JSONResponse(await _run_geo_build())
    _spawn(_run_geo_build())
    return JSONResponse({"started": True, "total": len(_catalog)}, status_code=202)


async def build_labels(request: Request) -> JSONResponse:
    if not _ready.is_set():
        return _LOADING
    if _labeler is None:
        return JSONResponse({"error": "No classifier configured"}, status_code=400)
    body = await _json_body(request)
    limit, error = _limit_param(body)
    if error is not None:
        return error
    if not _labels.reserve_build():
        return _building_conflict("Label")
    if body.get("wait"):
        return JSONResponse(await _run_label_build(limit))
    _spawn(_run_label_build(limit))
    return JSONResponse({"started": True, "total": len(_label_targets())}, status_code=202)


def _selected(body: dict) -> list:
    which = body.get("index", "all")
    if which == "geo":
        return [_geo]
    if which == "labels":
        return [_labels]
    return [_geo, _labels]


async def cancel(request: Request) -> JSONResponse:
    if not _ready.is_set():
        return _LOADING
    body = await _json_body(request)
    cancelled = []
    for index in _selected(body):
        if index.building:
            index.cancel()
            cancelled.append("geo" if index is _geo else "labels")
    return JSONResponse({"cancelled": cancelled})


async def clear(request: Request) -> JSONResponse:
    if not _ready.is_set():
        return _LOADING
    body = await _json_body(request)
    indexes = _selected(body)
    for index in indexes:
        if index.building:
            return _building_conflict("Geo" if index is _geo else "Label")
    for index in indexes:
        index.clear()
    names = ["geo" if index is _geo else "labels" for index in indexes]
    for name in names:
        _last_build[name] = None
    return JSONResponse({"cleared": names})


async def locations(request: Request) -> JSONResponse:
    if not _ready.is_set():
        return _LOADING
    try:
        limit = int(request.query_params.get("limit", "20"))
    except ValueError:
        return JSONResponse({"error": "limit must be an integer"}, status_code=400)
    return JSONResponse(await asyncio.to_thread(_geo.locations, limit))


routes = [
    Route("/health", health, methods=["GET"]),
    Route("/status", status, methods=["GET"]),
    Route("/search", search, methods=["POST"]),
    Route("/build-geo", build_geo, methods=["POST"]),
    Route("/build-labels", build_labels, methods=["POST"]),
    Route("/cancel", cancel, methods=["POST"]),
    Route("/clear", clear, methods=["POST"]),
    Route("/locations", locations, methods=["GET"]),
]

app = Starlette(routes=routes)


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


def _set_process_priority() -> None:
    """Set low process priority via nice. Applied before uvicorn starts."""
    try:
        os.nice(NICE_VALUE)
        logger.info("Set nice value to %d", NICE_VALUE)
    except OSError:
        logger.debug("Could not set nice value")


def _write_pid() -> None:
    SERVICE_PID_FILE.parent.mkdir(parents=True, exist_ok=True)
    SERVICE_PID_FILE.write_text(str(os.getpid()))
    logger.info("PID file: %s", SERVICE_PID_FILE)


def _cleanup(*_args) -> None:
    for index in (_geo, _labels):
        if index is not None:
            index.close()
    SERVICE_PID_FILE.unlink(missing_ok=True)


def _background_startup() -> None:
    """Scan the library and load both indexes without blocking the event loop."""
    def _load():
        start = time.time()
        try:
            _load_state()
            logger.info(
                "Ready in %.1fs: %d items, geo %s, labels %s",
                time.time() - start, len(_catalog), _geo.stats(), _labels.stats(),
            )
        except Exception:
            logger.warning("Background startup failed", exc_info=True)

    threading.Thread(target=_load, name="background-startup", daemon=True).start()


if __name__ == "__main__":
    import atexit

    import uvicorn

    _write_pid()
    atexit.register(_cleanup)
    signal.signal(signal.SIGTERM, lambda *_: sys.exit(0))

    _set_process_priority()
    _background_startup()

    logger.info("Starting photo-query service on %s:%d", SERVICE_HOST, SERVICE_PORT)
    uvicorn.run(app, host=SERVICE_HOST, port=SERVICE_PORT, log_level="warning")
