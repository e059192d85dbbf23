"""Visual label index: label -> media ids, built from a vision classifier.

The classifier runs once per item during a build; searches only read the
prebuilt buckets. Builds resume: ids already classified are skipped until
clear() wipes the index.
"""

import logging
import time
from pathlib import Path
from typing import Awaitable, Callable, Iterable

from bucket_index import BucketIndex, BuildStats, BuildStatus, IndexStats
from config import (
    CACHE_DIR,
    LABEL_FAILURE_ABORT_RATIO,
    LABEL_FAILURE_MIN_SAMPLES,
    LABEL_INDEX_FILE,
    LABEL_PROGRESS_INTERVAL,
    SAVE_INTERVAL,
)

logger = logging.getLogger(__name__)

ClassifyCallback = Callable[[str], Awaitable[list[str]]]
ProgressCallback = Callable[[int, int, str], None]

# Search vocabulary -> classifier vocabulary
_SYNONYMS = {
    "seashore": "beach",
    "coast": "beach",
    "seaside": "beach",
    "ocean": "beach",
    "sea": "beach",
    "sundown": "sunset",
    "sunrise": "sunset",
    "dusk": "sunset",
    "dawn": "sunset",
    "meal": "food",
    "dish": "food",
    "restaurant": "food",
    "dinner": "food",
    "lunch": "food",
    "canine": "dog",
    "puppy": "dog",
    "feline": "cat",
    "kitty": "cat",
    "automobile": "car",
    "vehicle": "car",
    "building": "architecture",
    "structure": "architecture",
    "city": "architecture",
    "urban": "architecture",
}

# High-level concepts that no classifier emits directly.
_CONCEPTS = {
    "outdoor": ["sky", "nature", "landscape", "mountain", "beach", "forest", "grass", "water"],
    "travel": ["sky", "landscape", "mountain", "beach", "architecture", "landmark"],
    "trip": ["sky", "landscape", "mountain", "beach", "architecture", "landmark"],
    "vacation": ["beach", "pool", "resort", "landscape", "mountain", "water"],
    "nature": ["forest", "tree", "flower", "grass", "mountain", "water", "sky", "landscape"],
    "party": ["person", "crowd", "celebration"],
    "wedding": ["person", "dress", "flower", "celebration"],
    "night": ["dark", "light", "illumination"],
    "indoor": ["room", "interior", "furniture"],
    "portrait": ["person", "face"],
    "selfie": ["person", "face"],
}


def normalize_label(label: str) -> str:
    lowered = label.strip().lower()
    return _SYNONYMS.get(lowered, lowered)


def _normalize_all(labels: Iterable[str]) -> list[str]:
    seen: list[str] = []
    for label in labels:
        if not isinstance(label, str):
            continue
        normalized = normalize_label(label)
        if normalized and normalized not in seen:
            seen.append(normalized)
    return seen


class LabelIndex(BucketIndex):
    def __init__(self, cache_dir: Path | None = None):
        self._asset_labels: dict[str, list[str]] = {}
        super().__init__((cache_dir or CACHE_DIR).resolve() / LABEL_INDEX_FILE.name)

    # -- persistence hooks --

    def _extra_state(self) -> dict:
        return {"asset_labels": {k: list(v) for k, v in self._asset_labels.items()}}

    def _restore_extra_state(self, data: dict) -> None:
        self._asset_labels = {k: list(v) for k, v in data.get("asset_labels", {}).items()}

    def _reset_extra_state(self) -> None:
        self._asset_labels = {}

    # -- build --

    def _commit(self, media_id: str, labels: list[str]) -> None:
        with self._lock:
            for old in self._asset_labels.get(media_id, []):
                self._discard(old, media_id)
            for label in labels:
                self._insert(label, media_id)
            self._asset_labels[media_id] = list(labels)
            self._indexed.add(media_id)

    async def build(
        self,
        ids: Iterable[str],
        classify: ClassifyCallback,
        limit: int | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> BuildStats:
        """Classify each not-yet-indexed id and file it under its labels.

        A failing item is logged and skipped; the build aborts only when
        failures dominate. cancel() stops at the next item and keeps what was
        committed.
        """
        if not self._begin_build():
            logger.info("Label index build already running")
            return BuildStats(status=BuildStatus.BUSY)

        start = time.time()
        targets = list(ids)
        if limit is not None:
            targets = targets[:max(limit, 0)]
        total = len(targets)
        stats = BuildStats(total=total)
        position = 0
        attempted = 0
        unsaved = 0
        last_label = ""

        try:
            for media_id in targets:
                if self._cancelled():
                    stats.status = BuildStatus.CANCELLED
                    logger.info("Label index build cancelled at %d/%d", position, total)
                    break

                position += 1
                if self.is_indexed(media_id):
                    stats.skipped += 1
                    continue

                attempted += 1
                try:
                    raw = await classify(media_id)
                except Exception:
                    logger.warning("Classification failed for %s", media_id, exc_info=True)
                    stats.failed += 1
                    if (
                        attempted >= LABEL_FAILURE_MIN_SAMPLES
                        and stats.failed / attempted > LABEL_FAILURE_ABORT_RATIO
                    ):
                        stats.status = BuildStatus.ABORTED
                        logger.error(
                            "Aborting label build: %d of %d classifications failed",
                            stats.failed, attempted,
                        )
                        break
                    continue

                labels = _normalize_all(raw or [])
                self._commit(media_id, labels)
                stats.photos_indexed += 1
                if labels:
                    stats.photos_labeled += 1
                    last_label = ", ".join(labels[:3])

                unsaved += 1
                if unsaved >= SAVE_INTERVAL:
                    self._save()
                    unsaved = 0

                if on_progress and position % LABEL_PROGRESS_INTERVAL == 0:
                    on_progress(position, total, last_label)
        finally:
            self._save()
            self._end_build()

        if on_progress:
            on_progress(position, total, last_label)
        stats.elapsed = time.time() - start
        logger.info("Label index: %s", stats.summary())
        return stats

    # -- search --

    def lookup(self, labels: Iterable[str] | str) -> set[str]:
        """Ids carrying ANY of the labels. Unknown labels add nothing."""
        if isinstance(labels, str):
            labels = [labels]
        results: set[str] = set()
        for label in _normalize_all(labels):
            results |= self._members(label)
        return results

    def lookup_all(self, labels: Iterable[str] | str) -> set[str]:
        """Ids carrying EVERY one of the labels."""
        if isinstance(labels, str):
            labels = [labels]
        normalized = _normalize_all(labels)
        if not normalized:
            return set()
        results = self._members(normalized[0])
        for label in normalized[1:]:
            if not results:
                break
            results &= self._members(label)
        return results

    def labels_for(self, media_id: str) -> list[str]:
        with self._lock:
            return list(self._asset_labels.get(media_id, []))

    def all_labels(self) -> list[tuple[str, int]]:
        """(label, count) pairs, most common first."""
        with self._lock:
            counts = [(label, len(ids)) for label, ids in self._buckets.items()]
        return sorted(counts, key=lambda c: (-c[1], c[0]))

    @staticmethod
    def expand_terms(terms: Iterable[str]) -> list[str]:
        """Map search terms to classifier labels, expanding broad concepts."""
        expanded: set[str] = set()
        for term in terms:
            normalized = normalize_label(term)
            if not normalized:
                continue
            expanded.add(normalized)
            expanded.update(_CONCEPTS.get(normalized, ()))
        return sorted(expanded)

    def stats(self) -> IndexStats:
        with self._lock:
            return IndexStats(
                photos_indexed=len(self._indexed),
                photos_labeled=sum(1 for v in self._asset_labels.values() if v),
                unique_keys=len(self._buckets),
            )
