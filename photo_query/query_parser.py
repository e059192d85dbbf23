"""Deterministic parsing of free-text media queries.

    "find 10 videos of me at the beach last summer"
        -> is_my_photos_request=True, location="beach", media_type=VIDEO,
           limit=10, time_period="summer"

Each extractor is a pure function of the query string and writes one field
of the QueryIntent, so they can be tested and reordered independently.
"""

import re
import string
from dataclasses import dataclass
from enum import Enum

from config import KNOWN_LOCATIONS, LOCATION_MAX_WORDS
from fuzzy import correct


class MediaType(str, Enum):
    ALL = "all"
    PHOTO = "photo"
    VIDEO = "video"


@dataclass(frozen=True)
class QueryIntent:
    search_terms: str
    is_my_photos_request: bool = False
    location: str | None = None
    media_type: MediaType = MediaType.ALL
    limit: int | None = None
    time_period: str | None = None


# ---------------------------------------------------------------------------
# Ownership intent
# ---------------------------------------------------------------------------

_DIRECT_PHRASES = [
    "my photos",
    "my photo",
    "my pictures",
    "my picture",
    "my videos",
    "my video",
    "photos of me",
    "pictures of me",
    "images of me",
    "videos of me",
    "video of me",
    "photos with me",
    "pictures with me",
    "videos with me",
    "where i am",
    "where i'm",
    "i'm in",
    "i am in",
]

_POSSESSIVE_PREFIXES = ("my photo", "my picture", "my video")

_MY_MEDIA_RE = re.compile(r"\bmy\s+(photos?|pictures?|images?|videos?)\b", re.IGNORECASE)
_MY_MEDIA_FROM_RE = re.compile(
    r"\bmy\s+(photos?|pictures?|images?|videos?)\s+(from|at|in|of)\b", re.IGNORECASE
)


def detect_my_photos_intent(query: str) -> bool:
    """True when the query asks for media depicting the person asking.

    "my photos from Miraggio" and "videos of me" qualify; "photos of my
    vacation" does not, since the vacation is the subject.
    """
    lowered = query.lower()

    for phrase in _DIRECT_PHRASES:
        if phrase not in lowered:
            continue
        if phrase.startswith(_POSSESSIVE_PREFIXES):
            # Substring hits like "my photoshoot" must still be a whole
            # "my <media noun>" phrase in the original text.
            return _MY_MEDIA_RE.search(query) is not None
        return True

    return _MY_MEDIA_FROM_RE.search(query) is not None


# ---------------------------------------------------------------------------
# Location
# ---------------------------------------------------------------------------

_PREPOSITION_RE = re.compile(r"\b(from|at|in|near)\s+", re.IGNORECASE)

_LOCATION_STOP_WORDS = {
    "and", "or", "with", "where", "when", "that", "this", "a", "show", "find", "get",
}
_LOCATION_TERMINATORS = {"hotel", "resort", "beach", "restaurant"}


def _location_span(text: str) -> list[str]:
    words: list[str] = []
    skipped_article = False
    for raw in text.split():
        word = raw.strip(string.punctuation)
        if not word:
            continue
        lower = word.lower()
        if not words and not skipped_article and lower == "the":
            skipped_article = True
            continue
        if lower in _LOCATION_STOP_WORDS:
            break
        words.append(word)
        if lower in _LOCATION_TERMINATORS or len(words) >= LOCATION_MAX_WORDS:
            break
    return words


def extract_location(query: str, vocabulary: list[str] | None = None) -> str | None:
    """Place name following the leftmost from/at/in/near, typo-corrected."""
    known = KNOWN_LOCATIONS if vocabulary is None else vocabulary
    for match in _PREPOSITION_RE.finditer(query):
        words = _location_span(query[match.end():])
        if not words:
            continue
        candidate = " ".join(words)
        return correct(candidate, known) or candidate
    return None


# ---------------------------------------------------------------------------
# Limit, media type, time period
# ---------------------------------------------------------------------------

_LIMIT_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"(\d+)\s*photos?",
        r"(\d+)\s*pictures?",
        r"(\d+)\s*videos?",
        r"(\d+)\s*images?",
        r"show\s*me\s*(\d+)",
        r"find\s*(\d+)",
        r"top\s*(\d+)",
        r"last\s*(\d+)",
        r"latest\s*(\d+)",
    )
]


def extract_limit(query: str) -> int | None:
    for pattern in _LIMIT_PATTERNS:
        m = pattern.search(query)
        if m:
            value = int(m.group(1))
            if value > 0:
                return value
    return None


def detect_media_type(query: str) -> MediaType:
    lowered = query.lower()
    has_video = "video" in lowered
    has_photo = any(stem in lowered for stem in ("photo", "picture", "image"))

    if has_video and not has_photo:
        return MediaType.VIDEO
    if has_photo and not has_video:
        return MediaType.PHOTO
    return MediaType.ALL


_TIME_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"last\s+(week|month|year)",
        r"this\s+(week|month|year)",
        r"(yesterday|today)",
        r"(\d+)\s+days?\s+ago",
        r"(summer|winter|spring|fall|autumn)",
    )
]


def extract_time_period(query: str) -> str | None:
    """Relative time phrase, left uninterpreted (see time_periods.resolve_time_period)."""
    lowered = query.lower()
    for pattern in _TIME_PATTERNS:
        m = pattern.search(lowered)
        if m:
            return m.group(0)
    return None


# ---------------------------------------------------------------------------
# Descriptive labels
# ---------------------------------------------------------------------------

_LABEL_KEYWORDS: dict[str, list[str]] = {
    "beach": ["beach", "sea", "ocean", "shore", "coast"],
    "sunset": ["sunset", "sunrise", "golden hour", "dusk", "dawn"],
    "food": ["food", "meal", "dinner", "lunch", "breakfast", "restaurant", "eating"],
    "party": ["party", "celebration", "birthday"],
    "wedding": ["wedding", "marriage", "bride", "groom"],
    "mountain": ["mountain", "hiking", "trail", "peak"],
    "snow": ["snow", "skiing", "snowboard"],
    "city": ["city", "urban", "downtown", "street"],
    "nature": ["nature", "forest", "tree", "garden", "park"],
    "water": ["water", "pool", "lake", "river", "swimming"],
    "night": ["night", "evening", "dark"],
    "outdoor": ["outdoor", "outside", "vacation", "trip", "travel"],
    "indoor": ["indoor", "inside", "home", "room"],
    "dog": ["dog", "puppy", "canine"],
    "cat": ["cat", "kitten", "kitty"],
    "person": ["portrait", "selfie", "face"],
}

_LABEL_PATTERNS = {
    label: [re.compile(rf"\b{re.escape(kw)}(s|es)?\b") for kw in keywords]
    for label, keywords in _LABEL_KEYWORDS.items()
}


def extract_labels(query: str) -> list[str]:
    """Visual labels implied by keywords in the query, sorted and unique."""
    lowered = query.lower()
    return sorted(
        label
        for label, patterns in _LABEL_PATTERNS.items()
        if any(p.search(lowered) for p in patterns)
    )


# ---------------------------------------------------------------------------
# Named people
# ---------------------------------------------------------------------------

_WITH_RE = re.compile(r"\bwith\s+", re.IGNORECASE)
_NAME_TOKEN_RE = re.compile(r"[\w'-]+|[,&]")

_NOT_NAMES = {"me", "my", "i", "us", "our", "him", "her", "them", "you", "the", "a", "an"}


def extract_people(query: str) -> list[str]:
    """Capitalized names after "with": "photos with Sarah and John Smith"
    -> ["Sarah", "John Smith"]. Pronouns are never names.
    """
    people: list[str] = []
    for match in _WITH_RE.finditer(query):
        current: list[str] = []
        for token in _NAME_TOKEN_RE.findall(query[match.end():]):
            if token in (",", "&") or token.lower() == "and":
                if current:
                    people.append(" ".join(current))
                    current = []
                continue
            if token[0].isupper() and token.lower() not in _NOT_NAMES:
                current.append(token)
                continue
            break
        if current:
            people.append(" ".join(current))
    return list(dict.fromkeys(people))


# ---------------------------------------------------------------------------
# Composition
# ---------------------------------------------------------------------------


def parse(query: str, vocabulary: list[str] | None = None) -> QueryIntent:
    """Parse a query into a QueryIntent. Never raises; "" yields all defaults."""
    return QueryIntent(
        search_terms=query,
        is_my_photos_request=detect_my_photos_intent(query),
        location=extract_location(query, vocabulary),
        media_type=detect_media_type(query),
        limit=extract_limit(query),
        time_period=extract_time_period(query),
    )
