"""Movie ratings and the denormalised rating aggregates on movies."""

from __future__ import annotations

import logging
import math
from collections import Counter

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..db_models import Movie, Rating, User
from ..errors import (
    BadRequestError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    raise_for_errors,
)
from ..models import (
    Page,
    RatingBucket,
    RatingCreate,
    RatingStats,
    RatingUpdate,
    RatingView,
    ReconcileResult,
    UserSummary,
)
from ..utils import round_rating
from ..validators import validate_page, validate_rating_create, validate_rating_update
from .movies import MovieService, active_movies

logger = logging.getLogger(__name__)


async def recompute_rating_stats(session: AsyncSession, movie_id: str) -> tuple[float, int]:
    """Overwrite the movie's ``average_rating``/``ratings_count`` from its ratings.

    Runs in the caller's session; the caller commits together with the rating
    write that triggered the recompute.
    """

    result = await session.execute(
        select(func.avg(Rating.rating), func.count(Rating.id)).where(
            Rating.movie_id == movie_id
        )
    )
    average, count = result.one()
    average_rating = round_rating(average)
    ratings_count = int(count or 0)
    movie = await session.get(Movie, movie_id)
    if movie is None:
        raise NotFoundError("Movie not found")
    movie.average_rating = average_rating
    movie.ratings_count = ratings_count
    await session.flush()
    logger.debug(
        "Movie %s rating stats: average=%s count=%s", movie_id, average_rating, ratings_count
    )
    return average_rating, ratings_count


class RatingService:
    """Rating CRUD; every mutation refreshes the rated movie's aggregates."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        movies: MovieService,
    ):
        self._session_factory = session_factory
        self._movies = movies

    async def create(self, request: RatingCreate, user_id: str) -> RatingView:
        raise_for_errors(validate_rating_create(request))

        async with self._session_factory() as session:
            movie = await session.scalar(active_movies().where(Movie.id == request.movie_id))
            if movie is None:
                raise NotFoundError("Movie not found")

            if await self._find_for_user(session, user_id, request.movie_id) is not None:
                raise ConflictError("You have already rated this movie")

            rating = Rating(
                user_id=user_id,
                movie_id=request.movie_id,
                rating=request.rating,
                review=request.review,
            )
            try:
                session.add(rating)
                await session.flush()
                await recompute_rating_stats(session, request.movie_id)
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise ConflictError("You have already rated this movie") from exc
            except Exception as exc:
                await session.rollback()
                logger.exception("Failed to create rating for movie %s", request.movie_id)
                raise BadRequestError("Failed to create rating") from exc

            return await self._view(session, rating, with_user=True, with_movie=True)

    async def list_all(self, page: int = 1, limit: int = 10) -> Page[RatingView]:
        return await self._page(None, None, page, limit, with_user=True, with_movie=True)

    async def list_for_user(
        self, user_id: str, page: int = 1, limit: int = 10
    ) -> Page[RatingView]:
        return await self._page(user_id, None, page, limit, with_movie=True)

    async def list_for_movie(
        self, movie_id: str, page: int = 1, limit: int = 10
    ) -> Page[RatingView]:
        return await self._page(None, movie_id, page, limit, with_user=True)

    async def get(self, rating_id: str) -> RatingView:
        async with self._session_factory() as session:
            rating = await self._get(session, rating_id)
            return await self._view(session, rating, with_user=True, with_movie=True)

    async def get_for_user_and_movie(self, user_id: str, movie_id: str) -> RatingView | None:
        async with self._session_factory() as session:
            rating = await self._find_for_user(session, user_id, movie_id)
            if rating is None:
                return None
            return await self._view(session, rating, with_movie=True)

    async def update(self, rating_id: str, request: RatingUpdate, user_id: str) -> RatingView:
        raise_for_errors(validate_rating_update(request))

        async with self._session_factory() as session:
            rating = await self._get(session, rating_id)
            if rating.user_id != user_id:
                raise ForbiddenError("You can only update your own ratings")

            movie_id = rating.movie_id
            try:
                for key, value in request.model_dump(exclude_unset=True).items():
                    if key == "rating" and value is None:
                        continue
                    setattr(rating, key, value)
                await session.flush()
                await recompute_rating_stats(session, movie_id)
                await session.commit()
            except Exception as exc:
                await session.rollback()
                logger.exception("Failed to update rating %s", rating_id)
                raise BadRequestError("Failed to update rating") from exc

            return await self._view(session, rating, with_user=True, with_movie=True)

    async def remove(self, rating_id: str, user_id: str) -> None:
        async with self._session_factory() as session:
            rating = await self._get(session, rating_id)
            if rating.user_id != user_id:
                raise ForbiddenError("You can only delete your own ratings")

            movie_id = rating.movie_id
            try:
                await session.delete(rating)
                await session.flush()
                await recompute_rating_stats(session, movie_id)
                await session.commit()
            except Exception as exc:
                await session.rollback()
                logger.exception("Failed to delete rating %s", rating_id)
                raise BadRequestError("Failed to delete rating") from exc
        logger.info("Deleted rating %s for movie %s", rating_id, movie_id)

    async def movie_stats(self, movie_id: str) -> RatingStats:
        async with self._session_factory() as session:
            if await session.scalar(active_movies().where(Movie.id == movie_id)) is None:
                raise NotFoundError("Movie not found")

            average, total = (
                await session.execute(
                    select(func.avg(Rating.rating), func.count(Rating.id)).where(
                        Rating.movie_id == movie_id
                    )
                )
            ).one()

            # SQLite builds without math functions have no FLOOR.
            per_value = await session.execute(
                select(Rating.rating, func.count(Rating.id))
                .where(Rating.movie_id == movie_id)
                .group_by(Rating.rating)
            )
            buckets: Counter[int] = Counter()
            for value, count in per_value.all():
                buckets[math.floor(value)] += int(count)

        return RatingStats(
            average_rating=round_rating(average),
            total_ratings=int(total or 0),
            rating_distribution=[
                RatingBucket(rating=value, count=count)
                for value, count in sorted(buckets.items())
            ],
        )

    async def reconcile_all(self) -> ReconcileResult:
        """Recompute the rating aggregates of every movie."""

        async with self._session_factory() as session:
            movie_ids = list((await session.execute(select(Movie.id))).scalars())
            for movie_id in movie_ids:
                await recompute_rating_stats(session, movie_id)
            await session.commit()
        logger.info("Reconciled rating aggregates for %s movies", len(movie_ids))
        return ReconcileResult(movies=len(movie_ids))

    async def _page(
        self,
        user_id: str | None,
        movie_id: str | None,
        page: int,
        limit: int,
        *,
        with_user: bool = False,
        with_movie: bool = False,
    ) -> Page[RatingView]:
        raise_for_errors(validate_page(page, limit))

        stmt = select(Rating)
        if user_id is not None:
            stmt = stmt.where(Rating.user_id == user_id)
        if movie_id is not None:
            stmt = stmt.where(Rating.movie_id == movie_id)

        async with self._session_factory() as session:
            total = (
                await session.execute(select(func.count()).select_from(stmt.subquery()))
            ).scalar_one()
            result = await session.execute(
                stmt.order_by(Rating.created_at.desc())
                .offset((page - 1) * limit)
                .limit(limit)
            )
            ratings = list(result.scalars())
            views = await self._views(
                session, ratings, with_user=with_user, with_movie=with_movie
            )
        return Page[RatingView].build(views, page=page, limit=limit, total=total)

    async def _view(
        self,
        session: AsyncSession,
        rating: Rating,
        *,
        with_user: bool = False,
        with_movie: bool = False,
    ) -> RatingView:
        views = await self._views(
            session, [rating], with_user=with_user, with_movie=with_movie
        )
        return views[0]

    async def _views(
        self,
        session: AsyncSession,
        ratings: list[Rating],
        *,
        with_user: bool,
        with_movie: bool,
    ) -> list[RatingView]:
        users: dict[str, UserSummary] = {}
        if with_user and ratings:
            result = await session.execute(
                select(User).where(User.id.in_({rating.user_id for rating in ratings}))
            )
            users = {user.id: UserSummary.from_record(user) for user in result.scalars()}
        movies = (
            await self._movies.views_by_id(session, (rating.movie_id for rating in ratings))
            if with_movie
            else {}
        )
        return [
            RatingView.from_record(
                rating, user=users.get(rating.user_id), movie=movies.get(rating.movie_id)
            )
            for rating in ratings
        ]

    @staticmethod
    async def _get(session: AsyncSession, rating_id: str) -> Rating:
        rating = await session.get(Rating, rating_id)
        if rating is None:
            raise NotFoundError("Rating not found")
        return rating

    @staticmethod
    async def _find_for_user(
        session: AsyncSession, user_id: str, movie_id: str
    ) -> Rating | None:
        result = await session.execute(
            select(Rating).where(Rating.user_id == user_id, Rating.movie_id == movie_id)
        )
        return result.scalar_one_or_none()
