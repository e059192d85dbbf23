import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from query_parser import (
    MediaType,
    QueryIntent,
    detect_media_type,
    detect_my_photos_intent,
    extract_labels,
    extract_limit,
    extract_location,
    extract_people,
    extract_time_period,
    parse,
)


# -- ownership intent --


def test_photos_of_my_vacation_is_not_mine():
    assert detect_my_photos_intent("photos of my vacation") is False


def test_my_photos_from_place_is_mine():
    assert detect_my_photos_intent("my photos from Miraggio") is True


def test_possessive_object_phrases_are_not_mine():
    for query in (
        "pictures of my dog",
        "videos of my car",
        "photos of my house",
        "photos of my trip to Paris",
    ):
        assert detect_my_photos_intent(query) is False, query


def test_direct_phrases():
    for query in (
        "videos of me",
        "photos with me",
        "pictures of me at the beach",
        "show pictures where I'm smiling",
        "places I am in",
        "my pictures",
        "my video",
    ):
        assert detect_my_photos_intent(query) is True, query


def test_ownership_is_case_insensitive():
    assert detect_my_photos_intent("My Photos from Paris") is True
    assert detect_my_photos_intent("PHOTOS OF ME") is True


def test_my_photoshoot_is_not_a_media_phrase():
    assert detect_my_photos_intent("my photoshoot") is False


def test_my_images_from_pattern():
    assert detect_my_photos_intent("my images from Tokyo") is True
    assert detect_my_photos_intent("my images") is False


# -- location --


def test_location_after_from():
    assert extract_location("photos from Paris") == "Paris"


def test_location_skips_leading_the():
    assert extract_location("pictures at the Louvre") == "Louvre"


def test_location_stops_at_stop_word():
    assert extract_location("photos from Paris and London") == "Paris"
    assert extract_location("photos in Greece with friends") == "Greece"


def test_location_includes_terminator():
    assert extract_location("photos from the grand resort of Crete") == "grand resort"
    assert extract_location("photos from Miraggio hotel") == "Miraggio hotel"
    assert extract_location("dinner at Miraggio hotel last week") == "Miraggio hotel"


def test_location_caps_at_four_words():
    assert extract_location("photos from Santa Maria de la Cruz") == "Santa Maria de la"


def test_location_leftmost_preposition_wins():
    assert extract_location("photos near Tokyo or from Paris") == "Tokyo"


def test_location_empty_span_tries_next_preposition():
    assert extract_location("photos in and from Tokyo") == "Tokyo"


def test_location_strips_punctuation():
    assert extract_location("photos from Paris!") == "Paris"


def test_location_keeps_original_casing():
    assert extract_location("photos near eiffel tower") == "eiffel tower"


def test_location_preposition_needs_word_boundary():
    assert extract_location("vacation photos") is None
    assert extract_location("photos inside") is None


def test_location_fuzzy_corrected():
    assert extract_location("photos from Miraggion") == "Miraggio"


def test_location_custom_vocabulary():
    assert extract_location("photos from Lisbn", ["Lisbon"]) == "Lisbon"
    assert extract_location("photos from Lisbn", []) == "Lisbn"


def test_location_absent():
    assert extract_location("my photos") is None
    assert extract_location("photos from") is None
    assert extract_location("") is None


# -- limit --


def test_limit_patterns():
    assert extract_limit("10 photos") == 10
    assert extract_limit("show me 5 pictures") == 5
    assert extract_limit("3 videos of me") == 3
    assert extract_limit("show me 7") == 7
    assert extract_limit("find 4 sunsets") == 4
    assert extract_limit("top 3") == 3
    assert extract_limit("last 20") == 20
    assert extract_limit("latest 2") == 2


def test_limit_case_insensitive():
    assert extract_limit("TOP 8") == 8


def test_limit_absent_or_zero():
    assert extract_limit("photos from Paris") is None
    assert extract_limit("0 photos") is None
    assert extract_limit("") is None


# -- media type --


def test_media_type():
    assert detect_media_type("videos of me") == MediaType.VIDEO
    assert detect_media_type("photos of me") == MediaType.PHOTO
    assert detect_media_type("Show me IMAGES") == MediaType.PHOTO
    assert detect_media_type("pictures") == MediaType.PHOTO
    assert detect_media_type("photos and videos") == MediaType.ALL
    assert detect_media_type("Paris") == MediaType.ALL
    assert detect_media_type("") == MediaType.ALL


# -- time period --


def test_time_period_patterns():
    assert extract_time_period("photos from last week") == "last week"
    assert extract_time_period("this year") == "this year"
    assert extract_time_period("photos from yesterday") == "yesterday"
    assert extract_time_period("3 days ago") == "3 days ago"
    assert extract_time_period("1 day ago") == "1 day ago"
    assert extract_time_period("beach last summer") == "summer"


def test_time_period_lowercased():
    assert extract_time_period("Photos from LAST MONTH") == "last month"
    assert extract_time_period("Autumn leaves") == "autumn"


def test_time_period_pattern_order():
    assert extract_time_period("today or last year") == "last year"


def test_time_period_absent():
    assert extract_time_period("photos from Paris") is None


# -- labels --


def test_labels_from_keywords():
    assert extract_labels("sunset at the beach") == ["beach", "sunset"]
    assert extract_labels("dinner with friends") == ["food"]
    assert extract_labels("photos of dogs") == ["dog"]
    assert extract_labels("vacation pictures") == ["outdoor"]


def test_labels_whole_words_only():
    assert extract_labels("season") == []
    assert extract_labels("photos from Paris") == []


# -- named people --


def test_people_after_with():
    assert extract_people("photos with Sarah") == ["Sarah"]
    assert extract_people("pictures with Sarah and John Smith in Paris") == ["Sarah", "John Smith"]
    assert extract_people("with Ana, Bo & Cy") == ["Ana", "Bo", "Cy"]


def test_people_ignores_pronouns_and_lowercase_words():
    assert extract_people("photos with me") == []
    assert extract_people("Photos With Me at the beach") == []
    assert extract_people("dinner with friends") == []
    assert extract_people("photos from Paris") == []


def test_people_deduplicated():
    assert extract_people("with Sarah, and later with Sarah") == ["Sarah"]


# -- composition --


def test_parse_empty_query():
    assert parse("") == QueryIntent(search_terms="")


def test_parse_keeps_raw_query():
    assert parse("Beach Photos").search_terms == "Beach Photos"


def test_parse_vacation_in_hotel():
    intent = parse("show me photos of my vacation in Miraggio hotel")
    assert intent.is_my_photos_request is False
    assert intent.location == "Miraggio hotel"
    assert intent.media_type == MediaType.PHOTO


def test_parse_my_photos_from_hotel():
    intent = parse("show me my photos from Miraggio hotel")
    assert intent.is_my_photos_request is True
    assert intent.location is not None
    assert intent.media_type == MediaType.PHOTO


def test_parse_videos_of_me_at_beach():
    intent = parse("find 10 videos of me at the beach last summer")
    assert intent.is_my_photos_request is True
    assert intent.limit == 10
    assert intent.media_type == MediaType.VIDEO
    assert intent.time_period is not None
    assert intent.location == "beach"


def test_parse_never_raises_on_odd_input():
    for query in ("   ", "!!!", "from", "in the", "123", "my"):
        intent = parse(query)
        assert intent.search_terms == query
