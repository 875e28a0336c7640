"""Pydantic models describing request payloads and public response views.

Response views are built from database rows by explicit ``from_record``
constructors. They only declare the fields a client may see, so credential
columns never reach a response.
"""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Generic, Iterable, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .db_models import (
    Genre,
    Movie,
    MovieStatus,
    Rating,
    User,
    UserRole,
    Watchlist,
    WatchlistStatus,
)
from .utils import total_pages

T = TypeVar("T")

POSTER_SIZE = "w500"
BACKDROP_SIZE = "w1280"


class ApiModel(BaseModel):
    """Base model exposing camelCase aliases while accepting snake_case names."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MovieSortBy(str, Enum):
    TITLE_ASC = "title_asc"
    TITLE_DESC = "title_desc"
    RELEASE_DATE_ASC = "release_date_asc"
    RELEASE_DATE_DESC = "release_date_desc"
    RATING_ASC = "rating_asc"
    RATING_DESC = "rating_desc"
    POPULARITY_ASC = "popularity_asc"
    POPULARITY_DESC = "popularity_desc"
    CREATED_ASC = "created_asc"
    CREATED_DESC = "created_desc"


class PageMeta(ApiModel):
    page: int
    limit: int
    total: int
    total_pages: int
    has_next_page: bool
    has_previous_page: bool


class Page(ApiModel, Generic[T]):
    """A page of results plus the total-count side channel."""

    data: list[T]
    meta: PageMeta

    @classmethod
    def build(cls, items: Iterable[T], *, page: int, limit: int, total: int) -> "Page[T]":
        pages = total_pages(total, limit)
        return cls(
            data=list(items),
            meta=PageMeta(
                page=page,
                limit=limit,
                total=total,
                total_pages=pages,
                has_next_page=page < pages,
                has_previous_page=page > 1,
            ),
        )


# Movies -----------------------------------------------------------------


class MovieSearchParams(ApiModel):
    search: str | None = None
    genre_ids: list[int] = Field(default_factory=list)
    year: int | None = None
    min_rating: float | None = None
    max_rating: float | None = None
    language: str | None = None
    include_adult: bool = False
    sort_by: MovieSortBy | None = None
    page: int = 1
    limit: int = 10


class _MovieFields(ApiModel):
    original_title: str | None = None
    release_date: date | None = None
    vote_average: float | None = None
    vote_count: int | None = None
    popularity: float | None = None
    poster_path: str | None = None
    backdrop_path: str | None = None
    adult: bool | None = None
    original_language: str | None = None
    spoken_languages: list[str] | None = None
    production_countries: list[str] | None = None
    budget: int | None = None
    revenue: int | None = None
    runtime: int | None = None
    status: MovieStatus | None = None
    tagline: str | None = None
    homepage: str | None = None
    imdb_id: str | None = None
    genre_ids: list[int] | None = None


class MovieCreate(_MovieFields):
    tmdb_id: int
    title: str
    overview: str = ""


class MovieUpdate(_MovieFields):
    """Partial movie update; only fields explicitly set are written."""

    title: str | None = None
    overview: str | None = None
    last_synced_at: datetime | None = None


class GenreView(ApiModel):
    id: str
    tmdb_id: int
    name: str

    @classmethod
    def from_record(cls, genre: Genre) -> "GenreView":
        return cls(id=genre.id, tmdb_id=genre.tmdb_id, name=genre.name)


class MovieView(ApiModel):
    id: str
    tmdb_id: int
    title: str
    original_title: str | None = None
    overview: str
    release_date: date | None = None
    vote_average: float
    vote_count: int
    popularity: float
    poster_path: str | None = None
    backdrop_path: str | None = None
    adult: bool
    original_language: str | None = None
    spoken_languages: list[str] | None = None
    production_countries: list[str] | None = None
    budget: int | None = None
    revenue: int | None = None
    runtime: int | None = None
    status: str
    tagline: str | None = None
    homepage: str | None = None
    imdb_id: str | None = None
    average_rating: float
    ratings_count: int
    is_active: bool
    created_at: datetime
    updated_at: datetime
    last_synced_at: datetime | None = None
    genres: list[GenreView] = Field(default_factory=list)
    full_poster_url: str | None = None
    full_backdrop_url: str | None = None

    @classmethod
    def from_record(
        cls,
        movie: Movie,
        genres: Iterable[Genre] = (),
        *,
        image_base_url: str = "",
    ) -> "MovieView":
        return cls(
            id=movie.id,
            tmdb_id=movie.tmdb_id,
            title=movie.title,
            original_title=movie.original_title,
            overview=movie.overview or "",
            release_date=movie.release_date,
            vote_average=movie.vote_average or 0.0,
            vote_count=movie.vote_count or 0,
            popularity=movie.popularity or 0.0,
            poster_path=movie.poster_path,
            backdrop_path=movie.backdrop_path,
            adult=bool(movie.adult),
            original_language=movie.original_language,
            spoken_languages=movie.spoken_languages,
            production_countries=movie.production_countries,
            budget=movie.budget,
            revenue=movie.revenue,
            runtime=movie.runtime,
            status=movie.status,
            tagline=movie.tagline,
            homepage=movie.homepage,
            imdb_id=movie.imdb_id,
            average_rating=movie.average_rating or 0.0,
            ratings_count=movie.ratings_count or 0,
            is_active=movie.is_active,
            created_at=movie.created_at,
            updated_at=movie.updated_at,
            last_synced_at=movie.last_synced_at,
            genres=[GenreView.from_record(genre) for genre in genres],
            full_poster_url=_image_url(image_base_url, POSTER_SIZE, movie.poster_path),
            full_backdrop_url=_image_url(
                image_base_url, BACKDROP_SIZE, movie.backdrop_path
            ),
        )


def _image_url(base_url: str, size: str, path: str | None) -> str | None:
    if not path:
        return None
    if path.startswith("http"):
        return path
    return f"{base_url}/{size}{path}"


# Users and auth ---------------------------------------------------------


class RegisterRequest(ApiModel):
    first_name: str
    last_name: str
    email: str
    password: str


class LoginRequest(ApiModel):
    email: str
    password: str


class UserCreate(ApiModel):
    first_name: str
    last_name: str
    email: str
    password: str
    role: UserRole = UserRole.USER
    avatar_url: str | None = None


class UserUpdate(ApiModel):
    first_name: str | None = None
    last_name: str | None = None
    email: str | None = None
    password: str | None = None
    avatar_url: str | None = None


class UserView(ApiModel):
    """Public view of a user; has no credential fields."""

    id: str
    first_name: str
    last_name: str
    full_name: str
    email: str
    role: UserRole
    is_active: bool
    avatar_url: str | None = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_record(cls, user: User) -> "UserView":
        return cls(
            id=user.id,
            first_name=user.first_name,
            last_name=user.last_name,
            full_name=user.full_name,
            email=user.email,
            role=UserRole(user.role),
            is_active=user.is_active,
            avatar_url=user.avatar_url,
            created_at=user.created_at,
            updated_at=user.updated_at,
        )


class UserSummary(ApiModel):
    id: str
    first_name: str
    last_name: str
    full_name: str
    avatar_url: str | None = None

    @classmethod
    def from_record(cls, user: User) -> "UserSummary":
        return cls(
            id=user.id,
            first_name=user.first_name,
            last_name=user.last_name,
            full_name=user.full_name,
            avatar_url=user.avatar_url,
        )


class AuthResponse(ApiModel):
    access_token: str
    token_type: str = "Bearer"
    user: UserView


# Ratings ----------------------------------------------------------------


class RatingCreate(ApiModel):
    movie_id: str
    rating: float
    review: str | None = None


class RatingUpdate(ApiModel):
    rating: float | None = None
    review: str | None = None


class RatingView(ApiModel):
    id: str
    user_id: str
    movie_id: str
    rating: float
    review: str | None = None
    created_at: datetime
    updated_at: datetime
    user: UserSummary | None = None
    movie: MovieView | None = None

    @classmethod
    def from_record(
        cls,
        rating: Rating,
        *,
        user: UserSummary | None = None,
        movie: MovieView | None = None,
    ) -> "RatingView":
        return cls(
            id=rating.id,
            user_id=rating.user_id,
            movie_id=rating.movie_id,
            rating=rating.rating,
            review=rating.review,
            created_at=rating.created_at,
            updated_at=rating.updated_at,
            user=user,
            movie=movie,
        )


class RatingBucket(ApiModel):
    rating: int
    count: int


class RatingStats(ApiModel):
    average_rating: float
    total_ratings: int
    rating_distribution: list[RatingBucket] = Field(default_factory=list)


class ReconcileResult(ApiModel):
    movies: int


# Watchlist --------------------------------------------------------------


class WatchlistCreate(ApiModel):
    movie_id: str
    status: WatchlistStatus = WatchlistStatus.WANT_TO_WATCH
    is_favorite: bool = False
    notes: str | None = None
    watched_at: date | None = None


class WatchlistUpdate(ApiModel):
    status: WatchlistStatus | None = None
    is_favorite: bool | None = None
    notes: str | None = None
    watched_at: date | None = None


class WatchlistView(ApiModel):
    id: str
    user_id: str
    movie_id: str
    status: WatchlistStatus
    is_favorite: bool
    notes: str | None = None
    watched_at: date | None = None
    created_at: datetime
    updated_at: datetime
    movie: MovieView | None = None

    @classmethod
    def from_record(
        cls, entry: Watchlist, *, movie: MovieView | None = None
    ) -> "WatchlistView":
        return cls(
            id=entry.id,
            user_id=entry.user_id,
            movie_id=entry.movie_id,
            status=WatchlistStatus(entry.status),
            is_favorite=entry.is_favorite,
            notes=entry.notes,
            watched_at=entry.watched_at,
            created_at=entry.created_at,
            updated_at=entry.updated_at,
            movie=movie,
        )
