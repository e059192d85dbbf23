"""Edit-distance correction of free-text tokens against a known vocabulary."""

from config import FUZZY_MIN_SIMILARITY


def levenshtein_distance(a: str, b: str) -> int:
    """Number of single-character insertions, deletions and substitutions
    needed to turn ``a`` into ``b``."""
    if not a:
        return len(b)
    if not b:
        return len(a)

    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            if ca == cb:
                current.append(previous[j - 1])
            else:
                current.append(1 + min(previous[j], current[j - 1], previous[j - 1]))
        previous = current
    return previous[-1]


def similarity(a: str, b: str) -> float:
    """1.0 for identical strings, falling towards 0.0 as edits accumulate."""
    longest = max(len(a), len(b))
    if longest == 0:
        return 1.0
    return 1.0 - levenshtein_distance(a, b) / longest


def correct(candidate: str, vocabulary: list[str]) -> str | None:
    """Return the first vocabulary entry that is close to, but not exactly, the candidate.

    Comparison is case-insensitive. Returns None when the candidate already
    matches an entry exactly (callers keep their own text) or when nothing
    reaches FUZZY_MIN_SIMILARITY.
    """
    lowered = candidate.lower()
    if not lowered:
        return None
    for entry in vocabulary:
        score = similarity(lowered, entry.lower())
        if FUZZY_MIN_SIMILARITY <= score < 1.0:
            return entry
    return None
