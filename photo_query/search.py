"""Search orchestration: parse a query, intersect the index filters, rank.

Filters combine as follows:
    location AND labels       -> content candidates
    time period               -> created inside the resolved range
    named people              -> any of the named people visible
    "my photos"               -> primary person visible (skipped when content
                                 filters were requested but matched nothing)
    media type                -> photo / video only
    video matcher             -> LLM picks among candidate video descriptions
No filter applied at all yields the whole catalog. Results are always ordered
newest first and capped.
"""

import logging
import re
import time
from dataclasses import dataclass, field
from datetime import date
from typing import Callable

from config import DEFAULT_TOP_K
from geo_index import GeoIndex
from label_index import LabelIndex
from media import MediaCatalog, MediaKind
from query_parser import MediaType, QueryIntent, extract_labels, extract_people, parse
from time_periods import resolve_time_period

logger = logging.getLogger(__name__)

PersonPredicate = Callable[[str], bool]
PersonAssets = Callable[[str], set[str]]

_KIND_FOR_TYPE = {MediaType.PHOTO: MediaKind.PHOTO, MediaType.VIDEO: MediaKind.VIDEO}


@dataclass
class SearchResponse:
    ids: list[str]
    query: str
    intent: QueryIntent
    applied_filters: list[str] = field(default_factory=list)
    labels: list[str] = field(default_factory=list)
    people: list[str] = field(default_factory=list)
    elapsed_ms: float = 0.0

    def to_dict(self) -> dict:
        return {
            "ids": list(self.ids),
            "query": self.query,
            "intent": {
                "search_terms": self.intent.search_terms,
                "is_my_photos_request": self.intent.is_my_photos_request,
                "location": self.intent.location,
                "media_type": self.intent.media_type.value,
                "limit": self.intent.limit,
                "time_period": self.intent.time_period,
            },
            "applied_filters": list(self.applied_filters),
            "labels": list(self.labels),
            "people": list(self.people),
            "elapsed_ms": round(self.elapsed_ms, 2),
        }


def _mentions(query: str, phrase: str | None) -> bool:
    """True when phrase occurs in query as whole words ("fall", not "waterfall")."""
    if not phrase:
        return False
    pattern = r"\s+".join(re.escape(word) for word in phrase.split())
    return re.search(rf"\b{pattern}\b", query, re.IGNORECASE) is not None


class SearchOrchestrator:
    def __init__(
        self,
        catalog: MediaCatalog,
        geo_index: GeoIndex,
        label_index: LabelIndex,
        contains_primary_person: PersonPredicate | None = None,
        video_matcher=None,
        default_limit: int = DEFAULT_TOP_K,
        vocabulary: list[str] | None = None,
        person_assets: PersonAssets | None = None,
    ):
        self._catalog = catalog
        self._geo = geo_index
        self._labels = label_index
        self._contains_primary_person = contains_primary_person
        self._video_matcher = video_matcher
        self._default_limit = default_limit
        self._vocabulary = vocabulary
        self._person_assets = person_assets

    def search(self, query: str, limit: int | None = None, today: date | None = None) -> SearchResponse:
        start = time.perf_counter()
        intent = parse(query, self._vocabulary)
        applied: list[str] = []

        labels: list[str] = []
        people: list[str] = []
        if intent.media_type != MediaType.VIDEO:
            labels = self._labels.expand_terms(extract_labels(query))
            people = extract_people(query)

        # None means "not filtered yet"; an empty set means "filtered to nothing".
        candidates: set[str] | None = None

        if intent.location:
            candidates = self._geo.lookup(intent.location)
            applied.append("location")
            logger.debug("Location %r -> %d items", intent.location, len(candidates))

        if labels:
            labeled = self._labels.lookup(labels)
            candidates = labeled if candidates is None else candidates & labeled
            applied.append("labels")
            logger.debug("Labels %s -> %d items", labels, len(labeled))

        content_filtered = candidates is not None

        date_range = None
        if _mentions(query, intent.time_period):
            date_range = resolve_time_period(intent.time_period, today)
        if date_range is not None:
            pool = self._catalog.ids() if candidates is None else candidates
            candidates = {m for m in pool if date_range.contains(self._created(m))}
            applied.append("time_period")

        if people and self._person_assets is not None:
            pictured: set[str] = set()
            for name in people:
                pictured |= self._person_assets(name)
            pool = self._catalog.ids() if candidates is None else candidates
            candidates = pool & pictured
            applied.append("people")
            logger.debug("People %s -> %d items", people, len(candidates))

        if intent.is_my_photos_request and self._contains_primary_person is not None:
            if content_filtered and not candidates:
                logger.info("Content filters matched nothing; skipping my-photos filter")
            else:
                pool = self._catalog.ids() if candidates is None else candidates
                candidates = {m for m in pool if self._contains_primary_person(m)}
                applied.append("my_photos")

        kind = _KIND_FOR_TYPE.get(intent.media_type)
        if kind is not None:
            candidates = (
                self._catalog.ids(kind)
                if candidates is None
                else {m for m in candidates if self._is_kind(m, kind)}
            )
            applied.append("media_type")

        if intent.media_type == MediaType.VIDEO and self._video_matcher is not None and candidates:
            matched = self._match_videos(query, candidates)
            if matched is not None:
                candidates = matched
                applied.append("video_match")

        if candidates is None:
            candidates = self._catalog.ids()

        cap = limit if limit is not None else (intent.limit or self._default_limit)
        ids = self._catalog.newest_first(candidates)[:cap]
        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.info("Search %r: %d results (%s) in %.1fms", query, len(ids), ", ".join(applied) or "all", elapsed_ms)
        return SearchResponse(
            ids=ids,
            query=query,
            intent=intent,
            applied_filters=applied,
            labels=labels,
            people=people,
            elapsed_ms=elapsed_ms,
        )

    def _created(self, media_id: str):
        record = self._catalog.get(media_id)
        return record.created if record else None

    def _is_kind(self, media_id: str, kind: MediaKind) -> bool:
        record = self._catalog.get(media_id)
        return record is not None and record.kind == kind

    def _match_videos(self, query: str, candidates: set[str]) -> set[str] | None:
        """Ids picked by the video matcher, or None when it could not run."""
        described = []
        descriptions = []
        for media_id in self._catalog.newest_first(candidates):
            record = self._catalog.get(media_id)
            if record and record.description:
                described.append(media_id)
                descriptions.append(record.description)
        if not described:
            return None
        try:
            indices = self._video_matcher.match(query, descriptions)
        except Exception:
            logger.warning("Video matcher failed for %r", query, exc_info=True)
            return None
        return {described[i] for i in indices if 0 <= i < len(described)}
