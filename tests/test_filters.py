"""
Unit tests for the catalog filter compiler.
"""
import re

from moviemate.filters import (
    MovieFilters,
    parse_decade,
    parse_float,
    parse_int,
    parse_rating,
    parse_year,
)
from moviemate.schemas import Source, Status, max_release_year


def query_for(**params):
    return MovieFilters.from_params(**params).to_query()


def test_default_filter_only_selects_active_movies():
    assert query_for() == {"status": "active"}


def test_search_is_an_or_group_over_text_fields():
    query = query_for(search="  matrix  ")

    fields = [next(iter(clause)) for clause in query["$or"]]
    assert fields == ["title", "plot", "director", "cast", "genres"]
    for clause in query["$or"]:
        assert list(clause.values())[0] == {"$regex": "matrix", "$options": "i"}


def test_blank_search_adds_nothing():
    assert "$or" not in query_for(search="   ")


def test_search_escapes_regex_metacharacters():
    query = query_for(search="Mission: Impossible (1996)?")
    pattern = query["$or"][0]["title"]["$regex"]

    assert re.search(pattern, "mission: impossible (1996)?", re.IGNORECASE)
    assert not re.search(pattern, "Mission: Impossible 1996")


def test_genre_is_case_insensitive_exact_membership():
    query = query_for(genre="sci-fi")
    pattern = query["genres"]

    assert pattern["$options"] == "i"
    assert re.fullmatch(pattern["$regex"], "Sci-Fi", re.IGNORECASE)
    assert not re.search(pattern["$regex"], "Sci-Fi Horror", re.IGNORECASE)


def test_year_is_parsed_or_dropped():
    assert query_for(year="1999")["year"] == 1999
    assert "year" not in query_for(year="nineteen")
    assert "year" not in query_for(year="1999.5")


def test_decade_overrides_year():
    query = query_for(decade="1990", year="1985")
    assert query["year"] == {"$gte": 1990, "$lte": 1999}


def test_decade_accepts_suffix_and_floors_to_start():
    assert parse_decade("1990s") == 1990
    assert parse_decade("1995") == 1990
    assert parse_decade(2003) == 2000
    assert parse_decade("nineties") is None


def test_rating_bounds_are_one_or_two_sided():
    assert query_for(min_rating="7")["imdb.rating"] == {"$gte": 7.0}
    assert query_for(max_rating="5.5")["imdb.rating"] == {"$lte": 5.5}
    assert query_for(min_rating="6", max_rating="8")["imdb.rating"] == {"$gte": 6.0, "$lte": 8.0}


def test_invalid_rating_bounds_are_dropped():
    assert "imdb.rating" not in query_for(min_rating="abc")
    assert "imdb.rating" not in query_for(min_rating="11")
    assert query_for(min_rating="-1", max_rating="9")["imdb.rating"] == {"$lte": 9.0}


def test_source_must_be_a_known_tag():
    assert query_for(source="tmdb")["source"] == "tmdb"
    assert "source" not in query_for(source="netflix")


def test_deleted_status_is_never_selectable():
    assert query_for(status="deleted")["status"] == "active"
    assert query_for(status="pending")["status"] == "pending"


def test_include_deleted_drops_status_restriction():
    assert MovieFilters(include_deleted=True).to_query() == {}


def test_applied_filters_echo_typed_values():
    filters = MovieFilters.from_params(genre="Drama", year="2001", min_rating="x", source="USER")

    assert filters.source is Source.USER
    assert filters.status is Status.ACTIVE
    assert filters.applied() == {
        "genre": "Drama",
        "year": 2001,
        "decade": None,
        "minRating": None,
        "maxRating": None,
        "source": "user",
        "status": "active",
    }


def test_parse_helpers():
    assert parse_int(" 42 ") == 42
    assert parse_int(True) is None
    assert parse_float("nan") is None
    assert parse_float("7.5") == 7.5
    assert parse_rating("10") == 10.0
    assert parse_rating("10.1") is None


def test_out_of_range_years_are_dropped():
    assert "year" not in query_for(year="99999999999999999999")
    assert "year" not in query_for(year="1799")
    assert "year" not in query_for(decade="99999999999999999990s")
    assert parse_year(str(max_release_year() + 1)) is None
    assert parse_year("1800") == 1800
    assert parse_decade("1800s") == 1800
