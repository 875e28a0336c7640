"""Input validation rules."""

from __future__ import annotations

from app.models import MovieCreate, MovieSearchParams, RatingCreate, RegisterRequest
from app.validators import (
    validate_email,
    validate_movie_create,
    validate_movie_search,
    validate_page,
    validate_password,
    validate_rating_create,
    validate_rating_value,
    validate_register,
    validate_year,
)


def _fields(errors) -> set[str]:
    return {error.field for error in errors}


def test_password_policy_requires_mixed_characters() -> None:
    assert validate_password("Sup3r$ecret") == []
    assert _fields(validate_password("short1!")) == {"password"}
    assert _fields(validate_password("alllowercase1!")) == {"password"}
    assert _fields(validate_password("NoDigitsHere!")) == {"password"}
    assert _fields(validate_password("NoSymbols123")) == {"password"}
    assert _fields(validate_password("A1!" + "a" * 126)) == {"password"}


def test_email_format() -> None:
    assert validate_email("someone@example.com") == []
    assert validate_email("not-an-email") != []
    assert validate_email("") != []


def test_rating_value_bounds_and_precision() -> None:
    assert validate_rating_value(0.0) == []
    assert validate_rating_value(10.0) == []
    assert validate_rating_value(7.5) == []
    assert validate_rating_value(10.1) != []
    assert validate_rating_value(-0.5) != []
    assert validate_rating_value(7.25) != []


def test_page_and_year_limits() -> None:
    assert validate_page(1, 10) == []
    assert _fields(validate_page(0, 10)) == {"page"}
    assert _fields(validate_page(1, 101)) == {"limit"}
    assert validate_year(1999) == []
    assert validate_year(1899) != []
    assert validate_year(None) == []


def test_register_collects_every_failure() -> None:
    errors = validate_register(
        RegisterRequest(first_name="A", last_name="", email="nope", password="weak")
    )

    assert _fields(errors) == {"firstName", "lastName", "email", "password"}


def test_movie_create_rejects_bad_numbers() -> None:
    request = MovieCreate(
        tmdb_id=0,
        title=" ",
        vote_average=11,
        runtime=-1,
        genre_ids=[18, -4],
    )

    assert _fields(validate_movie_create(request)) == {
        "tmdbId",
        "title",
        "voteAverage",
        "runtime",
        "genreIds",
    }


def test_movie_search_rejects_inverted_rating_range() -> None:
    params = MovieSearchParams(min_rating=8.0, max_rating=6.0)

    assert _fields(validate_movie_search(params)) == {"minRating"}
    assert validate_movie_search(MovieSearchParams(year=1999, genre_ids=[18])) == []


def test_rating_create_requires_movie() -> None:
    errors = validate_rating_create(RatingCreate(movie_id="", rating=8.0))

    assert _fields(errors) == {"movieId"}
