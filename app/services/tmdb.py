"""Client for The Movie Database (TMDB) REST API."""

from __future__ import annotations

import logging
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel, Field, ValidationError

from ..config import Settings
from ..errors import BadRequestError

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class TMDBError(BadRequestError):
    """Raised when TMDB cannot be reached or returns an unusable response."""


class TMDBGenre(BaseModel):
    id: int
    name: str = ""


class TMDBSpokenLanguage(BaseModel):
    iso_639_1: str | None = None
    name: str = ""


class TMDBProductionCountry(BaseModel):
    iso_3166_1: str | None = None
    name: str = ""


class TMDBMovie(BaseModel):
    """Summary record as returned by list and search endpoints."""

    id: int
    title: str = ""
    original_title: str | None = None
    overview: str | None = None
    release_date: str | None = None
    vote_average: float = 0.0
    vote_count: int = 0
    popularity: float = 0.0
    poster_path: str | None = None
    backdrop_path: str | None = None
    adult: bool = False
    original_language: str | None = None
    genre_ids: list[int] = Field(default_factory=list)


class TMDBMovieDetails(TMDBMovie):
    genres: list[TMDBGenre] | None = None
    spoken_languages: list[TMDBSpokenLanguage] | None = None
    production_countries: list[TMDBProductionCountry] | None = None
    budget: int | None = None
    revenue: int | None = None
    runtime: int | None = None
    status: str | None = None
    tagline: str | None = None
    homepage: str | None = None
    imdb_id: str | None = None


class TMDBSearchPage(BaseModel):
    page: int = 1
    results: list[TMDBMovie] = Field(default_factory=list)
    total_pages: int = 0
    total_results: int = 0


class TMDBGenreList(BaseModel):
    genres: list[TMDBGenre] = Field(default_factory=list)


class TMDBClient:
    """Thin wrapper around the TMDB HTTP API.

    Every call is a single request bounded by the HTTP client's timeout; there
    are no retries. Transport errors, non-2xx responses and unparseable
    payloads all raise :class:`TMDBError`.
    """

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient):
        if not settings.tmdb_api_key:
            raise ValueError("TMDB API key is required when initialising TMDBClient")
        self._settings = settings
        self._client = http_client

    async def search_movies(
        self, query: str, page: int = 1, year: int | None = None
    ) -> TMDBSearchPage:
        params: dict[str, Any] = {"query": query, "page": page, "include_adult": "false"}
        if year:
            params["year"] = year
        return await self._get(
            "/search/movie", TMDBSearchPage, params, failure="Failed to search movies from TMDB"
        )

    async def get_movie_details(self, tmdb_id: int) -> TMDBMovieDetails:
        return await self._get(
            f"/movie/{tmdb_id}",
            TMDBMovieDetails,
            failure="Failed to get movie details from TMDB",
        )

    async def get_popular_movies(self, page: int = 1) -> TMDBSearchPage:
        return await self._get(
            "/movie/popular",
            TMDBSearchPage,
            {"page": page},
            failure="Failed to get popular movies from TMDB",
        )

    async def get_top_rated_movies(self, page: int = 1) -> TMDBSearchPage:
        return await self._get(
            "/movie/top_rated",
            TMDBSearchPage,
            {"page": page},
            failure="Failed to get top-rated movies from TMDB",
        )

    async def get_now_playing_movies(self, page: int = 1) -> TMDBSearchPage:
        return await self._get(
            "/movie/now_playing",
            TMDBSearchPage,
            {"page": page},
            failure="Failed to get now playing movies from TMDB",
        )

    async def get_upcoming_movies(self, page: int = 1) -> TMDBSearchPage:
        return await self._get(
            "/movie/upcoming",
            TMDBSearchPage,
            {"page": page},
            failure="Failed to get upcoming movies from TMDB",
        )

    async def get_genres(self) -> TMDBGenreList:
        return await self._get(
            "/genre/movie/list", TMDBGenreList, failure="Failed to get genres from TMDB"
        )

    async def discover_movies(
        self,
        *,
        page: int = 1,
        genre_ids: list[int] | None = None,
        sort_by: str | None = None,
        release_year: int | None = None,
        min_rating: float | None = None,
    ) -> TMDBSearchPage:
        params: dict[str, Any] = {"page": page or 1, "include_adult": "false"}
        if genre_ids:
            params["with_genres"] = ",".join(str(genre_id) for genre_id in genre_ids)
        if sort_by:
            params["sort_by"] = sort_by
        if release_year:
            params["year"] = release_year
        if min_rating:
            params["vote_average.gte"] = min_rating
        return await self._get(
            "/discover/movie",
            TMDBSearchPage,
            params,
            failure="Failed to discover movies from TMDB",
        )

    async def _get(
        self,
        path: str,
        model: type[ModelT],
        params: dict[str, Any] | None = None,
        *,
        failure: str,
    ) -> ModelT:
        request_params = {"api_key": self._settings.tmdb_api_key, **(params or {})}
        logger.debug("Making TMDB API request: GET %s", path)
        try:
            response = await self._client.get(path, params=request_params)
        except httpx.HTTPError as exc:
            logger.error("TMDB request to %s failed: %s", path, exc.__class__.__name__)
            raise TMDBError(failure) from exc

        logger.debug("TMDB API response: %s %s", response.status_code, path)
        if response.status_code >= 400:
            logger.warning(
                "TMDB request to %s returned %s: %s",
                path,
                response.status_code,
                response.text[:200],
            )
            raise TMDBError(failure)

        try:
            return model.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            logger.error("Unexpected TMDB payload from %s: %s", path, exc)
            raise TMDBError(failure) from exc
