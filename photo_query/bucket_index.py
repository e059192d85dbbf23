"""Persistent key -> set-of-media-ids store shared by the geo and label indexes.

Builds are single-writer: a second build started while one is running is
refused with BuildStatus.BUSY. Callers that start the build later (on a
background task) claim the guard up front with reserve_build(). Readers take
short snapshots under the same lock, so a lookup during a build sees a
consistent but possibly partial view.
"""

import json
import logging
import threading
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

logger = logging.getLogger(__name__)

FORMAT_VERSION = 1


class BuildStatus(str, Enum):
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    BUSY = "busy"
    ABORTED = "aborted"


@dataclass
class BuildStats:
    status: BuildStatus = BuildStatus.COMPLETED
    total: int = 0
    photos_indexed: int = 0
    photos_with_location: int = 0
    photos_labeled: int = 0
    newly_indexed: int = 0
    skipped: int = 0
    failed: int = 0
    elapsed: float = 0.0

    def summary(self) -> str:
        if self.status == BuildStatus.BUSY:
            return "A build is already running."
        head = {
            BuildStatus.COMPLETED: "Indexed",
            BuildStatus.CANCELLED: "Cancelled after indexing",
            BuildStatus.ABORTED: "Aborted after indexing",
        }[self.status]
        parts = [f"{head} {self.photos_indexed}/{self.total} items"]
        if self.photos_with_location:
            parts.append(f"{self.photos_with_location} with location")
        if self.photos_labeled:
            parts.append(f"{self.photos_labeled} labeled")
        if self.skipped:
            parts.append(f"{self.skipped} skipped")
        if self.failed:
            parts.append(f"{self.failed} failed")
        return f"{', '.join(parts)} in {self.elapsed:.1f}s"


@dataclass
class IndexStats:
    photos_indexed: int = 0
    unique_keys: int = 0
    photos_with_location: int = 0
    photos_labeled: int = 0

    @property
    def loaded(self) -> bool:
        return self.unique_keys > 0


class BucketIndex:
    def __init__(self, path: Path):
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._buckets: dict[str, set[str]] = {}
        self._indexed: set[str] = set()
        self._lock = threading.RLock()
        self._building = False
        self._reserved = False
        self._cancel = threading.Event()
        self._load()

    # -- persistence --

    def _extra_state(self) -> dict:
        """Subclass hook: additional JSON-serializable state to persist."""
        return {}

    def _restore_extra_state(self, data: dict) -> None:
        """Subclass hook: restore what _extra_state() wrote."""

    def _reset_extra_state(self) -> None:
        """Subclass hook: drop per-asset state on clear()."""

    def _load(self) -> None:
        if not self._path.exists():
            return
        try:
            data = json.loads(self._path.read_text())
            buckets = {k: set(v) for k, v in data["buckets"].items()}
            indexed = set(data["indexed"])
            self._restore_extra_state(data)
        except (json.JSONDecodeError, KeyError, TypeError, ValueError, AttributeError):
            logger.warning("Corrupt %s, starting with empty index", self._path.name)
            self._reset_extra_state()
            return
        with self._lock:
            self._buckets = buckets
            self._indexed = indexed
        logger.info(
            "Loaded %s: %d items, %d keys", self._path.name, len(indexed), len(buckets)
        )

    @staticmethod
    def _atomic_write_text(path: Path, data: str) -> None:
        tmp = path.with_suffix(path.suffix + ".tmp")
        tmp.write_text(data)
        tmp.replace(path)

    def _save(self) -> None:
        with self._lock:
            data = {
                "version": FORMAT_VERSION,
                "buckets": {k: sorted(v) for k, v in self._buckets.items()},
                "indexed": sorted(self._indexed),
                **self._extra_state(),
            }
        self._atomic_write_text(self._path, json.dumps(data))

    def close(self) -> None:
        """Persist the index. The object stays usable afterwards."""
        if self._building:
            self.cancel()
        self._save()

    # -- build guard --

    @property
    def building(self) -> bool:
        return self._building

    def reserve_build(self) -> bool:
        """Claim the build guard now for a build() that will start later.

        The next build() call takes over the reservation instead of being
        refused, and a cancel() issued in between still applies to it.
        """
        with self._lock:
            if self._building:
                return False
            self._building = True
            self._reserved = True
            self._cancel.clear()
            return True

    def release_build(self) -> None:
        """Drop a reservation that no build() has taken over."""
        with self._lock:
            if self._reserved:
                self._reserved = False
                self._building = False

    def _begin_build(self) -> bool:
        with self._lock:
            if self._reserved:
                self._reserved = False
                return True
            if self._building:
                return False
            self._building = True
            self._cancel.clear()
            return True

    def _end_build(self) -> None:
        with self._lock:
            self._building = False
            self._reserved = False

    def cancel(self) -> None:
        """Ask a running build to stop at the next item boundary."""
        self._cancel.set()

    def _cancelled(self) -> bool:
        return self._cancel.is_set()

    # -- mutation (build task only) --

    def _insert(self, key: str, media_id: str) -> None:
        with self._lock:
            self._buckets.setdefault(key, set()).add(media_id)

    def _discard(self, key: str, media_id: str) -> None:
        with self._lock:
            bucket = self._buckets.get(key)
            if bucket is None:
                return
            bucket.discard(media_id)
            if not bucket:
                del self._buckets[key]

    def _mark_indexed(self, media_id: str) -> None:
        with self._lock:
            self._indexed.add(media_id)

    # -- reads --

    def _members(self, key: str) -> set[str]:
        with self._lock:
            return set(self._buckets.get(key, ()))

    def is_indexed(self, media_id: str) -> bool:
        with self._lock:
            return media_id in self._indexed

    def clear(self) -> None:
        """Discard every entry and the persisted file."""
        with self._lock:
            self._buckets = {}
            self._indexed = set()
            self._reset_extra_state()
        self._path.unlink(missing_ok=True)
        logger.info("Cleared %s", self._path.name)
