import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from config import KNOWN_LOCATIONS
from fuzzy import correct, levenshtein_distance, similarity


def test_distance_empty_strings():
    assert levenshtein_distance("", "") == 0
    assert levenshtein_distance("", "abc") == 3
    assert levenshtein_distance("abc", "") == 3


def test_distance_equal_strings():
    assert levenshtein_distance("Miraggio", "Miraggio") == 0


def test_distance_classic_cases():
    assert levenshtein_distance("kitten", "sitting") == 3
    assert levenshtein_distance("flaw", "lawn") == 2


def test_distance_single_transposition_costs_two():
    assert levenshtein_distance("ab", "ba") == 2


def test_distance_is_symmetric():
    pairs = [("paris", "pariss"), ("tokyo", "kyoto"), ("", "x"), ("greece", "grease")]
    for a, b in pairs:
        assert levenshtein_distance(a, b) == levenshtein_distance(b, a)


def test_distance_counts_code_points():
    assert levenshtein_distance("café", "cafe") == 1
    assert levenshtein_distance("東京", "京都") == 2


def test_similarity_bounds():
    assert similarity("", "") == 1.0
    assert similarity("abc", "abc") == 1.0
    assert similarity("abc", "xyz") == 0.0


def test_correct_typo_to_known_location():
    assert correct("Miraggion", KNOWN_LOCATIONS) == "Miraggio"


def test_correct_is_case_insensitive():
    assert correct("PARISS", ["Paris"]) == "Paris"


def test_correct_exact_match_returns_none():
    assert correct("Miraggio", KNOWN_LOCATIONS) is None
    assert correct("paris", ["Paris"]) is None


def test_correct_threshold_is_inclusive():
    # 1 edit over 4 characters -> similarity 0.75
    assert correct("abcd", ["abce"]) == "abce"
    # 2 edits over 4 characters -> 0.5
    assert correct("abcd", ["abxy"]) is None


def test_correct_first_qualifying_entry_wins():
    assert correct("abcd", ["abce", "abcf"]) == "abce"


def test_correct_unknown_place():
    assert correct("Berlin", KNOWN_LOCATIONS) is None


def test_correct_empty_inputs():
    assert correct("", KNOWN_LOCATIONS) is None
    assert correct("Paris", []) is None
