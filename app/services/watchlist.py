"""Per-user watchlists."""

from __future__ import annotations

import logging

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..db_models import Movie, Watchlist, WatchlistStatus
from ..errors import (
    BadRequestError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    raise_for_errors,
)
from ..models import Page, WatchlistCreate, WatchlistUpdate, WatchlistView
from ..validators import validate_page
from .movies import MovieService, active_movies

logger = logging.getLogger(__name__)


class WatchlistService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        movies: MovieService,
    ):
        self._session_factory = session_factory
        self._movies = movies

    async def add(self, request: WatchlistCreate, user_id: str) -> WatchlistView:
        async with self._session_factory() as session:
            if await session.scalar(active_movies().where(Movie.id == request.movie_id)) is None:
                raise NotFoundError("Movie not found")

            existing = await session.scalar(
                select(Watchlist).where(
                    Watchlist.user_id == user_id, Watchlist.movie_id == request.movie_id
                )
            )
            if existing is not None:
                raise ConflictError("Movie is already in your watchlist")

            entry = Watchlist(
                user_id=user_id,
                movie_id=request.movie_id,
                status=request.status.value,
                is_favorite=request.is_favorite,
                notes=request.notes,
                watched_at=request.watched_at,
            )
            try:
                session.add(entry)
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise ConflictError("Movie is already in your watchlist") from exc
            except Exception as exc:
                await session.rollback()
                logger.exception("Failed to add movie %s to watchlist", request.movie_id)
                raise BadRequestError("Failed to add movie to watchlist") from exc

            return await self._view(session, entry)

    async def list_for_user(
        self,
        user_id: str,
        *,
        status: WatchlistStatus | None = None,
        favorites_only: bool = False,
        page: int = 1,
        limit: int = 10,
    ) -> Page[WatchlistView]:
        raise_for_errors(validate_page(page, limit))

        stmt = select(Watchlist).where(Watchlist.user_id == user_id)
        if status is not None:
            stmt = stmt.where(Watchlist.status == status.value)
        if favorites_only:
            stmt = stmt.where(Watchlist.is_favorite.is_(True))

        async with self._session_factory() as session:
            total = (
                await session.execute(select(func.count()).select_from(stmt.subquery()))
            ).scalar_one()
            result = await session.execute(
                stmt.order_by(Watchlist.created_at.desc())
                .offset((page - 1) * limit)
                .limit(limit)
            )
            entries = list(result.scalars())
            movies = await self._movies.views_by_id(
                session, (entry.movie_id for entry in entries)
            )
        views = [
            WatchlistView.from_record(entry, movie=movies.get(entry.movie_id))
            for entry in entries
        ]
        return Page[WatchlistView].build(views, page=page, limit=limit, total=total)

    async def get(self, entry_id: str, user_id: str) -> WatchlistView:
        async with self._session_factory() as session:
            entry = await self._get_owned(session, entry_id, user_id)
            return await self._view(session, entry)

    async def update(
        self, entry_id: str, request: WatchlistUpdate, user_id: str
    ) -> WatchlistView:
        async with self._session_factory() as session:
            entry = await self._get_owned(session, entry_id, user_id)
            try:
                for key, value in request.model_dump(exclude_unset=True).items():
                    if key in {"status", "is_favorite"} and value is None:
                        continue
                    if isinstance(value, WatchlistStatus):
                        value = value.value
                    setattr(entry, key, value)
                await session.commit()
            except Exception as exc:
                await session.rollback()
                logger.exception("Failed to update watchlist entry %s", entry_id)
                raise BadRequestError("Failed to update watchlist entry") from exc
            return await self._view(session, entry)

    async def remove(self, entry_id: str, user_id: str) -> None:
        async with self._session_factory() as session:
            entry = await self._get_owned(session, entry_id, user_id)
            try:
                await session.delete(entry)
                await session.commit()
            except Exception as exc:
                await session.rollback()
                logger.exception("Failed to delete watchlist entry %s", entry_id)
                raise BadRequestError("Failed to delete watchlist entry") from exc

    async def _view(self, session: AsyncSession, entry: Watchlist) -> WatchlistView:
        movies = await self._movies.views_by_id(session, [entry.movie_id])
        return WatchlistView.from_record(entry, movie=movies.get(entry.movie_id))

    @staticmethod
    async def _get_owned(session: AsyncSession, entry_id: str, user_id: str) -> Watchlist:
        entry = await session.get(Watchlist, entry_id)
        if entry is None:
            raise NotFoundError("Watchlist entry not found")
        if entry.user_id != user_id:
            raise ForbiddenError("You can only manage your own watchlist")
        return entry
