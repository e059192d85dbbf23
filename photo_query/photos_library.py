"""Read media records from an Apple Photos library via direct SQLite access."""

import logging
import sqlite3
from collections import Counter
from datetime import datetime, timezone
from pathlib import Path

from config import PHOTOS_LIBRARY
from media import MediaKind, MediaRecord

logger = logging.getLogger(__name__)

# Apple epoch offset: seconds between 1970-01-01 and 2001-01-01
_APPLE_EPOCH_OFFSET = 978307200

_KINDS = {0: MediaKind.PHOTO, 1: MediaKind.VIDEO}

_SCAN_QUERY = """
SELECT
    ZASSET.Z_PK,
    ZASSET.ZUUID,
    ZASSET.ZKIND,
    ZASSET.ZDIRECTORY,
    ZASSET.ZFILENAME,
    ZASSET.ZCLOUDBATCHPUBLISHDATE,
    ZASSET.ZDATECREATED,
    ZASSET.ZLATITUDE,
    ZASSET.ZLONGITUDE,
    ZAddAttr.ZTITLE
FROM ZASSET
LEFT JOIN ZADDITIONALASSETATTRIBUTES AS ZAddAttr
    ON ZAddAttr.ZASSET = ZASSET.Z_PK
WHERE ZASSET.ZTRASHEDSTATE = 0
  AND ZASSET.ZKIND IN (0, 1)
ORDER BY ZASSET.ZDATECREATED DESC
"""


def _apple_epoch_to_datetime(ts: float | None) -> datetime | None:
    if ts is None:
        return None
    try:
        return datetime.fromtimestamp(ts + _APPLE_EPOCH_OFFSET, tz=timezone.utc)
    except (ValueError, OSError, OverflowError):
        return None


def _database_path(library_path: Path | None) -> Path:
    lib = Path(library_path) if library_path else PHOTOS_LIBRARY
    return lib / "database" / "Photos.sqlite"


def _connect(db_path: Path) -> sqlite3.Connection:
    return sqlite3.connect(f"file:{db_path}?mode=ro", uri=True)


def _detect_face_columns(conn: sqlite3.Connection) -> tuple[str, str] | None:
    """Detect which FK columns ZDETECTEDFACE uses (schema varies by version)."""
    try:
        info = conn.execute("PRAGMA table_info(ZDETECTEDFACE)").fetchall()
    except sqlite3.OperationalError:
        return None
    columns = {row[1] for row in info}
    if "ZASSETFORFACE" in columns and "ZPERSONFORFACE" in columns:
        return "ZASSETFORFACE", "ZPERSONFORFACE"
    if "ZASSET" in columns and "ZPERSON" in columns:
        return "ZASSET", "ZPERSON"
    return None


def _resolve_path(
    lib: Path, directory: str | None, filename: str | None, cloud_batch_date
) -> str | None:
    if not directory or not filename:
        return None
    if directory.startswith("/"):
        path = Path(directory) / filename
    elif cloud_batch_date is not None:
        path = lib / "scopes" / "cloudsharing" / "data" / directory / filename
    else:
        path = lib / "originals" / directory / filename
    return str(path) if path.exists() else None


def scan_library(library_path: Path | None = None) -> list[MediaRecord]:
    """Every non-trashed photo and video in the library, newest first.

    Items whose original is not on disk (iCloud-only) are still returned,
    with path=None: they can be geo-indexed but not classified.
    """
    lib = Path(library_path) if library_path else PHOTOS_LIBRARY
    db_path = _database_path(lib)

    if not db_path.exists():
        logger.warning("Photos database not found: %s", db_path)
        return []

    logger.info("Scanning Photos library: %s", lib)

    conn = _connect(db_path)
    try:
        rows = conn.execute(_SCAN_QUERY).fetchall()
    finally:
        conn.close()

    records: list[MediaRecord] = []
    for zpk, uuid, kind, directory, filename, cloud_batch_date, created, lat, lon, title in rows:
        media_kind = _KINDS.get(kind)
        if media_kind is None:
            continue
        records.append(
            MediaRecord(
                id=uuid or str(zpk),
                kind=media_kind,
                created=_apple_epoch_to_datetime(created),
                latitude=lat,
                longitude=lon,
                path=_resolve_path(lib, directory, filename, cloud_batch_date),
                description=title or "",
            )
        )

    on_disk = sum(1 for r in records if r.path)
    logger.info(
        "Found %d items (%d videos, %d on disk)",
        len(records),
        sum(1 for r in records if r.kind == MediaKind.VIDEO),
        on_disk,
    )
    return records


def _named_face_rows(library_path: Path | None, name: str | None = None) -> list[tuple]:
    """(Z_PK, ZUUID, person pk, full name) per detected face of a named person.

    With name, only people whose full name contains it (case-insensitive).
    """
    db_path = _database_path(library_path)
    if not db_path.exists():
        return []

    conn = _connect(db_path)
    try:
        face_cols = _detect_face_columns(conn)
        if not face_cols:
            return []
        asset_col, person_col = face_cols
        query = f"""
            SELECT ZASSET.Z_PK, ZASSET.ZUUID, DF.{person_col}, ZPERSON.ZFULLNAME
            FROM ZDETECTEDFACE AS DF
            JOIN ZPERSON ON ZPERSON.Z_PK = DF.{person_col}
            JOIN ZASSET ON ZASSET.Z_PK = DF.{asset_col}
            WHERE ZPERSON.ZFULLNAME IS NOT NULL
              AND ZPERSON.ZFULLNAME != ''
              AND ZASSET.ZTRASHEDSTATE = 0
        """
        params: tuple = ()
        if name:
            query += " AND instr(lower(ZPERSON.ZFULLNAME), ?) > 0"
            params = (name.strip().lower(),)
        try:
            return conn.execute(query, params).fetchall()
        except sqlite3.OperationalError:
            logger.debug("People query failed", exc_info=True)
            return []
    finally:
        conn.close()


def primary_person_assets(library_path: Path | None = None) -> set[str]:
    """Ids of assets showing the person with the most detected faces.

    Empty when the library has no named people, i.e. face recognition
    has not been set up.
    """
    rows = _named_face_rows(library_path)
    if not rows:
        return set()

    faces_per_person = Counter(person for _, _, person, _ in rows)
    primary, count = faces_per_person.most_common(1)[0]
    logger.info("Primary person %s appears in %d faces", primary, count)
    return {uuid or str(zpk) for zpk, uuid, person, _ in rows if person == primary}


def person_assets(name: str, library_path: Path | None = None) -> set[str]:
    """Ids of assets showing anyone whose name contains name ("Sarah" finds "Sarah Lee")."""
    if not name.strip():
        return set()
    rows = _named_face_rows(library_path, name)
    logger.info("Found %d faces of people matching %r", len(rows), name)
    return {uuid or str(zpk) for zpk, uuid, _, _ in rows}
