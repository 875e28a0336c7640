"""Movie catalogue: search, CRUD and synchronisation with TMDB."""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Iterable, Sequence

from sqlalchemy import Select, delete, extract, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..config import Settings
from ..db_models import Genre, Movie, MovieGenre, MovieStatus
from ..errors import BadRequestError, ConflictError, NotFoundError, ServiceError, raise_for_errors
from ..models import (
    GenreView,
    MovieCreate,
    MovieSearchParams,
    MovieSortBy,
    MovieUpdate,
    MovieView,
    Page,
)
from ..utils import parse_date, utcnow
from ..validators import (
    validate_movie_create,
    validate_movie_search,
    validate_movie_update,
    validate_year,
)
from .tmdb import TMDBClient, TMDBGenreList, TMDBMovieDetails, TMDBSearchPage

logger = logging.getLogger(__name__)

SORT_ORDER = {
    MovieSortBy.TITLE_ASC: Movie.title.asc(),
    MovieSortBy.TITLE_DESC: Movie.title.desc(),
    MovieSortBy.RELEASE_DATE_ASC: Movie.release_date.asc(),
    MovieSortBy.RELEASE_DATE_DESC: Movie.release_date.desc(),
    MovieSortBy.RATING_ASC: Movie.average_rating.asc(),
    MovieSortBy.RATING_DESC: Movie.average_rating.desc(),
    MovieSortBy.POPULARITY_ASC: Movie.popularity.asc(),
    MovieSortBy.POPULARITY_DESC: Movie.popularity.desc(),
    MovieSortBy.CREATED_ASC: Movie.created_at.asc(),
    MovieSortBy.CREATED_DESC: Movie.created_at.desc(),
}
DEFAULT_SORT = MovieSortBy.POPULARITY_DESC

# Columns that reject NULL; a null in a partial update leaves them untouched.
NON_NULLABLE_FIELDS = frozenset(
    {
        "title",
        "overview",
        "vote_average",
        "vote_count",
        "popularity",
        "adult",
        "status",
    }
)

TMDB_STATUS_MAP = {
    "rumored": MovieStatus.RUMORED,
    "planned": MovieStatus.PLANNED,
    "in production": MovieStatus.IN_PRODUCTION,
    "post production": MovieStatus.POST_PRODUCTION,
    "released": MovieStatus.RELEASED,
    "canceled": MovieStatus.CANCELED,
    "cancelled": MovieStatus.CANCELED,
}


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def active_movies() -> Select[tuple[Movie]]:
    return select(Movie).where(Movie.is_active.is_(True), Movie.deleted_at.is_(None))


def build_search_query(params: MovieSearchParams) -> Select[tuple[Movie]]:
    """Return the filtered and ordered movie query described by ``params``.

    Pagination is applied by the caller so the same statement can feed the
    total count.
    """

    stmt = active_movies()

    term = (params.search or "").strip()
    if term:
        pattern = f"%{_escape_like(term)}%"
        stmt = stmt.where(
            or_(
                Movie.title.ilike(pattern, escape="\\"),
                Movie.original_title.ilike(pattern, escape="\\"),
            )
        )

    if params.genre_ids:
        matching = (
            select(MovieGenre.movie_id)
            .join(Genre, Genre.id == MovieGenre.genre_id)
            .where(Genre.tmdb_id.in_(params.genre_ids))
        )
        stmt = stmt.where(Movie.id.in_(matching))

    if params.year is not None:
        stmt = stmt.where(extract("year", Movie.release_date) == params.year)

    if params.min_rating is not None:
        stmt = stmt.where(Movie.average_rating >= params.min_rating)
    if params.max_rating is not None:
        stmt = stmt.where(Movie.average_rating <= params.max_rating)

    if params.language:
        stmt = stmt.where(Movie.original_language == params.language)

    if not params.include_adult:
        stmt = stmt.where(Movie.adult.is_(False))

    return stmt.order_by(SORT_ORDER[params.sort_by or DEFAULT_SORT])


def normalise_tmdb_status(label: str | None) -> MovieStatus | None:
    """Map a TMDB status label such as ``"Post Production"`` onto ``MovieStatus``."""

    if not label:
        return None
    key = label.strip().lower().replace("_", " ").replace("-", " ")
    return TMDB_STATUS_MAP.get(key)


def _tmdb_fields(details: TMDBMovieDetails) -> dict[str, Any]:
    return {
        "tmdb_id": details.id,
        "title": details.title,
        "original_title": details.original_title,
        "overview": details.overview,
        "release_date": parse_date(details.release_date),
        "vote_average": details.vote_average,
        "vote_count": details.vote_count,
        "popularity": details.popularity,
        "poster_path": details.poster_path or None,
        "backdrop_path": details.backdrop_path or None,
        "adult": details.adult,
        "original_language": details.original_language,
        "spoken_languages": (
            [language.name for language in details.spoken_languages]
            if details.spoken_languages is not None
            else None
        ),
        "production_countries": (
            [country.name for country in details.production_countries]
            if details.production_countries is not None
            else None
        ),
        "budget": details.budget,
        "revenue": details.revenue,
        "runtime": details.runtime,
        "status": normalise_tmdb_status(details.status),
        "tagline": details.tagline,
        "homepage": details.homepage or None,
        "imdb_id": details.imdb_id or None,
        "genre_ids": (
            [genre.id for genre in details.genres] if details.genres is not None else None
        ),
    }


def map_tmdb_to_create(details: TMDBMovieDetails) -> MovieCreate:
    """Translate a TMDB details payload into a creation request."""

    fields = {key: value for key, value in _tmdb_fields(details).items() if value is not None}
    fields.setdefault("overview", "")
    # TMDB occasionally reports vote averages with more than one decimal.
    if "vote_average" in fields:
        fields["vote_average"] = round(fields["vote_average"], 1)
    return MovieCreate(**fields)


def map_tmdb_to_update(details: TMDBMovieDetails) -> MovieUpdate:
    """Translate a TMDB details payload into an update of every mutable field."""

    fields = map_tmdb_to_create(details).model_dump(exclude_unset=True)
    fields.pop("tmdb_id", None)
    fields["last_synced_at"] = utcnow()
    return MovieUpdate(**fields)


def _column_values(values: dict[str, Any]) -> dict[str, Any]:
    converted: dict[str, Any] = {}
    for key, value in values.items():
        if isinstance(value, MovieStatus):
            value = value.value
        converted[key] = value
    return converted


class MovieService:
    """Coordinates movie persistence, search and TMDB synchronisation."""

    def __init__(
        self,
        settings: Settings,
        session_factory: async_sessionmaker[AsyncSession],
        tmdb: TMDBClient | None = None,
    ):
        self._settings = settings
        self._session_factory = session_factory
        self._tmdb = tmdb

    # Local catalogue ----------------------------------------------------

    async def create(self, request: MovieCreate) -> MovieView:
        raise_for_errors(validate_movie_create(request))

        async with self._session_factory() as session:
            if await self._find_by_tmdb_id(session, request.tmdb_id) is not None:
                raise ConflictError("Movie with this TMDB ID already exists")

            try:
                values = request.model_dump(exclude={"genre_ids"})
                movie = Movie(
                    **_column_values(
                        {key: value for key, value in values.items() if value is not None}
                    )
                )
                session.add(movie)
                await session.flush()
                if request.genre_ids:
                    await self._replace_genres(session, movie.id, request.genre_ids)
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise ConflictError("Movie with this TMDB ID already exists") from exc
            except Exception as exc:
                await session.rollback()
                logger.exception("Failed to create movie %s", request.tmdb_id)
                raise BadRequestError("Failed to create movie") from exc

            logger.info("Created movie %s (TMDB %s)", movie.id, movie.tmdb_id)
            return (await self._views(session, [movie]))[0]

    async def search(self, params: MovieSearchParams) -> Page[MovieView]:
        raise_for_errors(validate_movie_search(params))

        stmt = build_search_query(params)
        count_stmt = select(func.count()).select_from(stmt.order_by(None).subquery())
        page_stmt = stmt.offset((params.page - 1) * params.limit).limit(params.limit)

        async with self._session_factory() as session:
            total = (await session.execute(count_stmt)).scalar_one()
            movies = list((await session.execute(page_stmt)).scalars())
            views = await self._views(session, movies)

        return Page[MovieView].build(
            views, page=params.page, limit=params.limit, total=total
        )

    async def get(self, movie_id: str) -> MovieView:
        async with self._session_factory() as session:
            movie = await self._get_active(session, movie_id)
            return (await self._views(session, [movie]))[0]

    async def get_by_tmdb_id(self, tmdb_id: int) -> MovieView | None:
        async with self._session_factory() as session:
            movie = await self._find_by_tmdb_id(session, tmdb_id)
            if movie is None:
                return None
            return (await self._views(session, [movie]))[0]

    async def update(self, movie_id: str, request: MovieUpdate) -> MovieView:
        raise_for_errors(validate_movie_update(request))

        async with self._session_factory() as session:
            movie = await self._get_active(session, movie_id)
            await self._apply_update(session, movie, request)
            return (await self._views(session, [movie]))[0]

    async def remove(self, movie_id: str) -> None:
        async with self._session_factory() as session:
            movie = await self._get_active(session, movie_id)
            try:
                movie.is_active = False
                movie.deleted_at = utcnow()
                await session.commit()
            except Exception as exc:
                await session.rollback()
                logger.exception("Failed to delete movie %s", movie_id)
                raise BadRequestError("Failed to delete movie") from exc
        logger.info("Soft-deleted movie %s", movie_id)

    # TMDB synchronisation ----------------------------------------------

    async def sync_from_tmdb(self, tmdb_id: int) -> MovieView:
        """Create or refresh the local copy of a TMDB movie.

        Running the sync twice for the same id updates the existing row in
        place. Every failure is reported as a bad request.
        """

        tmdb = self._require_tmdb()
        try:
            details = await tmdb.get_movie_details(tmdb_id)
            async with self._session_factory() as session:
                existing = await self._find_by_tmdb_id(session, tmdb_id)
                if existing is not None:
                    await self._apply_update(session, existing, map_tmdb_to_update(details))
                    logger.info("Refreshed movie %s from TMDB %s", existing.id, tmdb_id)
                    return (await self._views(session, [existing]))[0]
            return await self.create(map_tmdb_to_create(details))
        except Exception as exc:
            logger.error("Failed to sync movie %s from TMDB: %s", tmdb_id, exc)
            raise BadRequestError("Failed to sync movie from TMDB") from exc

    async def sync_genres(self) -> list[GenreView]:
        """Upsert the TMDB movie genre list into the local genre table."""

        genre_list = await self._require_tmdb().get_genres()
        return await self.upsert_genres(genre_list)

    async def upsert_genres(self, genre_list: TMDBGenreList) -> list[GenreView]:
        async with self._session_factory() as session:
            result = await session.execute(select(Genre))
            existing = {genre.tmdb_id: genre for genre in result.scalars()}
            for entry in genre_list.genres:
                genre = existing.get(entry.id)
                if genre is None:
                    genre = Genre(tmdb_id=entry.id, name=entry.name)
                    session.add(genre)
                    existing[entry.id] = genre
                elif entry.name and genre.name != entry.name:
                    genre.name = entry.name
            await session.commit()
            genres = sorted(existing.values(), key=lambda genre: genre.name)
            logger.info("Genre table holds %s genres", len(genres))
            return [GenreView.from_record(genre) for genre in genres]

    async def list_genres(self) -> list[GenreView]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(Genre).where(Genre.is_active.is_(True)).order_by(Genre.name)
            )
            return [GenreView.from_record(genre) for genre in result.scalars()]

    async def search_tmdb(
        self, query: str | None, page: int = 1, year: int | None = None
    ) -> TMDBSearchPage:
        if not query or not query.strip():
            raise BadRequestError("Search query is required")
        raise_for_errors(validate_year(year))
        return await self._require_tmdb().search_movies(query.strip(), page, year)

    async def popular(self, page: int = 1) -> TMDBSearchPage:
        return await self._require_tmdb().get_popular_movies(page)

    async def top_rated(self, page: int = 1) -> TMDBSearchPage:
        return await self._require_tmdb().get_top_rated_movies(page)

    async def now_playing(self, page: int = 1) -> TMDBSearchPage:
        return await self._require_tmdb().get_now_playing_movies(page)

    async def upcoming(self, page: int = 1) -> TMDBSearchPage:
        return await self._require_tmdb().get_upcoming_movies(page)

    async def discover(
        self,
        *,
        page: int = 1,
        genre_ids: list[int] | None = None,
        sort_by: str | None = None,
        release_year: int | None = None,
        min_rating: float | None = None,
    ) -> TMDBSearchPage:
        return await self._require_tmdb().discover_movies(
            page=page,
            genre_ids=genre_ids,
            sort_by=sort_by,
            release_year=release_year,
            min_rating=min_rating,
        )

    # Helpers shared with other services ---------------------------------

    def view(self, movie: Movie, genres: Iterable[Genre] = ()) -> MovieView:
        return MovieView.from_record(
            movie, genres, image_base_url=self._settings.tmdb_image_base_url
        )

    async def views_by_id(
        self, session: AsyncSession, movie_ids: Iterable[str]
    ) -> dict[str, MovieView]:
        ids = set(movie_ids)
        if not ids:
            return {}
        result = await session.execute(select(Movie).where(Movie.id.in_(ids)))
        movies = list(result.scalars())
        views = await self._views(session, movies)
        return {view.id: view for view in views}

    async def _views(self, session: AsyncSession, movies: Sequence[Movie]) -> list[MovieView]:
        genres = await self._genres_for(session, [movie.id for movie in movies])
        return [self.view(movie, genres.get(movie.id, ())) for movie in movies]

    @staticmethod
    async def _genres_for(
        session: AsyncSession, movie_ids: Sequence[str]
    ) -> dict[str, list[Genre]]:
        if not movie_ids:
            return {}
        stmt = (
            select(MovieGenre.movie_id, Genre)
            .join(Genre, Genre.id == MovieGenre.genre_id)
            .where(MovieGenre.movie_id.in_(movie_ids))
            .order_by(Genre.name)
        )
        grouped: dict[str, list[Genre]] = defaultdict(list)
        for movie_id, genre in (await session.execute(stmt)).all():
            grouped[movie_id].append(genre)
        return grouped

    @staticmethod
    async def _find_by_tmdb_id(session: AsyncSession, tmdb_id: int) -> Movie | None:
        result = await session.execute(select(Movie).where(Movie.tmdb_id == tmdb_id))
        return result.scalar_one_or_none()

    @staticmethod
    async def _get_active(session: AsyncSession, movie_id: str) -> Movie:
        result = await session.execute(active_movies().where(Movie.id == movie_id))
        movie = result.scalar_one_or_none()
        if movie is None:
            raise NotFoundError("Movie not found")
        return movie

    async def _apply_update(
        self, session: AsyncSession, movie: Movie, request: MovieUpdate
    ) -> None:
        movie_id = movie.id
        values = request.model_dump(exclude_unset=True, exclude={"genre_ids"})
        try:
            for key, value in _column_values(values).items():
                if value is None and key in NON_NULLABLE_FIELDS:
                    continue
                setattr(movie, key, value)
            if request.genre_ids is not None:
                await self._replace_genres(session, movie_id, request.genre_ids)
            await session.commit()
        except ServiceError:
            await session.rollback()
            raise
        except Exception as exc:
            await session.rollback()
            logger.exception("Failed to update movie %s", movie_id)
            raise BadRequestError("Failed to update movie") from exc

    @staticmethod
    async def _replace_genres(
        session: AsyncSession, movie_id: str, genre_ids: Sequence[int]
    ) -> None:
        """Replace the movie's genre links with the genres matching ``genre_ids``.

        Unknown TMDB genre ids are dropped. The caller commits, so the delete
        and the inserts land in one transaction.
        """

        await session.execute(delete(MovieGenre).where(MovieGenre.movie_id == movie_id))
        if not genre_ids:
            return

        result = await session.execute(
            select(Genre.id).where(Genre.tmdb_id.in_(set(genre_ids)))
        )
        session.add_all(
            MovieGenre(movie_id=movie_id, genre_id=genre_id) for genre_id in result.scalars()
        )
        await session.flush()

    def _require_tmdb(self) -> TMDBClient:
        if self._tmdb is None:
            raise BadRequestError("TMDB integration is not configured")
        return self._tmdb
