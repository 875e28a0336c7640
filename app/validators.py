"""Explicit input validators.

Each validator returns a list of :class:`FieldError`; an empty list means the
input is acceptable. Services collect the lists and raise ``BadRequestError``
through :func:`app.errors.raise_for_errors`.
"""

from __future__ import annotations

import re
from typing import Iterable

from .errors import FieldError
from .models import (
    LoginRequest,
    MovieCreate,
    MovieSearchParams,
    MovieUpdate,
    RatingCreate,
    RatingUpdate,
    RegisterRequest,
    UserCreate,
    UserUpdate,
)

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
PASSWORD_SYMBOLS = "@$!%*?&"
MIN_YEAR = 1900
MAX_YEAR = 2100
MAX_PAGE_SIZE = 100


def _is_one_decimal(value: float) -> bool:
    return abs(round(value, 1) - value) < 1e-9


def validate_name(field: str, value: str | None) -> list[FieldError]:
    if value is None or not (2 <= len(value.strip()) <= 100):
        return [FieldError(field, f"{field} must be between 2 and 100 characters")]
    return []


def validate_email(value: str | None, field: str = "email") -> list[FieldError]:
    if not value or len(value) > 255 or not EMAIL_RE.match(value):
        return [FieldError(field, "email must be a valid email address")]
    return []


def validate_password(value: str | None, field: str = "password") -> list[FieldError]:
    """Enforce the password policy: 8-128 characters with mixed character classes."""

    if value is None or not (8 <= len(value) <= 128):
        return [FieldError(field, "password must be between 8 and 128 characters")]
    if not (
        any(char.islower() for char in value)
        and any(char.isupper() for char in value)
        and any(char.isdigit() for char in value)
        and any(char in PASSWORD_SYMBOLS for char in value)
    ):
        return [
            FieldError(
                field,
                "password must contain at least one uppercase letter, one lowercase "
                "letter, one number and one special character",
            )
        ]
    return []


def validate_rating_value(value: float | None, field: str = "rating") -> list[FieldError]:
    if value is None:
        return [FieldError(field, f"{field} is required")]
    if not (0.0 <= value <= 10.0):
        return [FieldError(field, f"{field} must be between 0.0 and 10.0")]
    if not _is_one_decimal(value):
        return [FieldError(field, f"{field} must have at most one decimal place")]
    return []


def validate_page(page: int, limit: int) -> list[FieldError]:
    errors: list[FieldError] = []
    if page < 1:
        errors.append(FieldError("page", "page must be at least 1"))
    if not (1 <= limit <= MAX_PAGE_SIZE):
        errors.append(FieldError("limit", f"limit must be between 1 and {MAX_PAGE_SIZE}"))
    return errors


def validate_year(value: int | None, field: str = "year") -> list[FieldError]:
    if value is not None and not (MIN_YEAR <= value <= MAX_YEAR):
        return [FieldError(field, f"{field} must be between {MIN_YEAR} and {MAX_YEAR}")]
    return []


def validate_register(request: RegisterRequest) -> list[FieldError]:
    return [
        *validate_name("firstName", request.first_name),
        *validate_name("lastName", request.last_name),
        *validate_email(request.email),
        *validate_password(request.password),
    ]


def validate_login(request: LoginRequest) -> list[FieldError]:
    errors: list[FieldError] = []
    if not request.email or not request.email.strip():
        errors.append(FieldError("email", "email is required"))
    if not request.password:
        errors.append(FieldError("password", "password is required"))
    return errors


def validate_user_create(request: UserCreate) -> list[FieldError]:
    errors = [
        *validate_name("firstName", request.first_name),
        *validate_name("lastName", request.last_name),
        *validate_email(request.email),
    ]
    if request.password is None or not (8 <= len(request.password) <= 128):
        errors.append(FieldError("password", "password must be between 8 and 128 characters"))
    return errors


def validate_user_update(request: UserUpdate) -> list[FieldError]:
    errors: list[FieldError] = []
    if request.first_name is not None:
        errors.extend(validate_name("firstName", request.first_name))
    if request.last_name is not None:
        errors.extend(validate_name("lastName", request.last_name))
    if request.email is not None:
        errors.extend(validate_email(request.email))
    if request.password is not None:
        errors.extend(validate_password(request.password))
    return errors


def _validate_movie_numbers(request: MovieCreate | MovieUpdate) -> list[FieldError]:
    errors: list[FieldError] = []
    if request.vote_average is not None:
        errors.extend(validate_rating_value(request.vote_average, "voteAverage"))
    for field, value in (
        ("voteCount", request.vote_count),
        ("popularity", request.popularity),
        ("budget", request.budget),
        ("revenue", request.revenue),
        ("runtime", request.runtime),
    ):
        if value is not None and value < 0:
            errors.append(FieldError(field, f"{field} must not be negative"))
    return errors


def validate_movie_create(request: MovieCreate) -> list[FieldError]:
    errors: list[FieldError] = []
    if request.tmdb_id <= 0:
        errors.append(FieldError("tmdbId", "tmdbId must be a positive integer"))
    if not request.title.strip():
        errors.append(FieldError("title", "title must not be empty"))
    errors.extend(_validate_movie_numbers(request))
    errors.extend(validate_genre_ids(request.genre_ids))
    return errors


def validate_movie_update(request: MovieUpdate) -> list[FieldError]:
    errors: list[FieldError] = []
    if request.title is not None and not request.title.strip():
        errors.append(FieldError("title", "title must not be empty"))
    errors.extend(_validate_movie_numbers(request))
    errors.extend(validate_genre_ids(request.genre_ids))
    return errors


def validate_movie_search(params: MovieSearchParams) -> list[FieldError]:
    errors = validate_page(params.page, params.limit)
    errors.extend(validate_year(params.year))
    errors.extend(validate_genre_ids(params.genre_ids))
    if params.min_rating is not None:
        errors.extend(validate_rating_value(params.min_rating, "minRating"))
    if params.max_rating is not None:
        errors.extend(validate_rating_value(params.max_rating, "maxRating"))
    if (
        params.min_rating is not None
        and params.max_rating is not None
        and params.min_rating > params.max_rating
    ):
        errors.append(FieldError("minRating", "minRating must not exceed maxRating"))
    return errors


def validate_rating_create(request: RatingCreate) -> list[FieldError]:
    errors = validate_rating_value(request.rating)
    if not request.movie_id:
        errors.append(FieldError("movieId", "movieId is required"))
    return errors


def validate_rating_update(request: RatingUpdate) -> list[FieldError]:
    if request.rating is None:
        return []
    return validate_rating_value(request.rating)


def validate_genre_ids(genre_ids: Iterable[int] | None) -> list[FieldError]:
    if genre_ids is None:
        return []
    if any(genre_id <= 0 for genre_id in genre_ids):
        return [FieldError("genreIds", "genreIds must contain positive integers")]
    return []
