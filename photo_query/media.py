"""Media records supplied by the photo-library collaborator."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class MediaKind(str, Enum):
    PHOTO = "photo"
    VIDEO = "video"


@dataclass(frozen=True)
class MediaRecord:
    id: str
    kind: MediaKind = MediaKind.PHOTO
    created: datetime | None = None
    latitude: float | None = None
    longitude: float | None = None
    path: str | None = None
    description: str = ""  # video summary used for semantic matching


class MediaCatalog:
    """Read-only view over the library's records, keyed by id."""

    def __init__(self, records: list[MediaRecord] | None = None):
        self._records: dict[str, MediaRecord] = {}
        for record in records or []:
            self._records[record.id] = record

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, media_id: str) -> bool:
        return media_id in self._records

    def get(self, media_id: str) -> MediaRecord | None:
        return self._records.get(media_id)

    def ids(self, kind: MediaKind | None = None) -> set[str]:
        return {
            r.id for r in self._records.values() if kind is None or r.kind == kind
        }

    def records(self) -> list[MediaRecord]:
        return list(self._records.values())

    def newest_first(self, ids) -> list[str]:
        """Order ids by creation time, newest first; undated and unknown ids last."""
        def key(media_id: str):
            record = self._records.get(media_id)
            created = record.created if record else None
            stamp = created.timestamp() if created else float("-inf")
            return (stamp, media_id)

        return sorted(ids, key=key, reverse=True)
