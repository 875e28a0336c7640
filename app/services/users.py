"""User accounts."""

from __future__ import annotations

import logging

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..config import Settings
from ..db_models import Rating, User, Watchlist
from ..errors import BadRequestError, ConflictError, NotFoundError, raise_for_errors
from ..models import Page, UserCreate, UserUpdate, UserView
from ..security import hash_password_async
from ..utils import utcnow
from ..validators import validate_page, validate_user_create, validate_user_update
from .ratings import recompute_rating_stats

logger = logging.getLogger(__name__)


def _normalise_email(email: str) -> str:
    return email.strip().lower()


class UserService:
    def __init__(
        self, settings: Settings, session_factory: async_sessionmaker[AsyncSession]
    ):
        self._settings = settings
        self._session_factory = session_factory

    async def create(
        self, request: UserCreate, *, password_hash: str | None = None
    ) -> User:
        """Persist a new user.

        ``password_hash`` lets callers that already hashed the password skip
        the second hashing round.
        """

        raise_for_errors(validate_user_create(request))
        email = _normalise_email(request.email)

        async with self._session_factory() as session:
            if await self._find_by_email(session, email) is not None:
                raise ConflictError("User with this email already exists")

            if password_hash is None:
                password_hash = await hash_password_async(
                    request.password, self._settings.bcrypt_rounds
                )
            user = User(
                first_name=request.first_name.strip(),
                last_name=request.last_name.strip(),
                email=email,
                password_hash=password_hash,
                role=request.role.value,
                avatar_url=request.avatar_url,
            )
            try:
                session.add(user)
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise ConflictError("User with this email already exists") from exc
            except Exception as exc:
                await session.rollback()
                logger.exception("Failed to create user")
                raise BadRequestError("Failed to create user") from exc

        logger.info("Created user %s", user.id)
        return user

    async def list_users(self, page: int = 1, limit: int = 10) -> Page[UserView]:
        raise_for_errors(validate_page(page, limit))

        stmt = select(User).where(User.deleted_at.is_(None))
        async with self._session_factory() as session:
            total = (
                await session.execute(select(func.count()).select_from(stmt.subquery()))
            ).scalar_one()
            result = await session.execute(
                stmt.order_by(User.created_at.desc()).offset((page - 1) * limit).limit(limit)
            )
            users = [UserView.from_record(user) for user in result.scalars()]
        return Page[UserView].build(users, page=page, limit=limit, total=total)

    async def get(self, user_id: str) -> User:
        user = await self.find_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    async def find_by_id(self, user_id: str) -> User | None:
        async with self._session_factory() as session:
            user = await session.get(User, user_id)
        if user is None or user.deleted_at is not None:
            return None
        return user

    async def find_by_email(self, email: str) -> User | None:
        async with self._session_factory() as session:
            return await self._find_by_email(session, _normalise_email(email))

    async def update(self, user_id: str, request: UserUpdate) -> User:
        raise_for_errors(validate_user_update(request))

        async with self._session_factory() as session:
            user = await self._get(session, user_id)
            values = request.model_dump(exclude_unset=True)

            email = values.get("email")
            if email is not None:
                email = _normalise_email(email)
                values["email"] = email
                if email != user.email and await self._find_by_email(session, email):
                    raise ConflictError("User with this email already exists")

            password = values.pop("password", None)
            if password is not None:
                values["password_hash"] = await hash_password_async(
                    password, self._settings.bcrypt_rounds
                )

            try:
                for key, value in values.items():
                    if value is None and key != "avatar_url":
                        continue
                    setattr(user, key, value)
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise ConflictError("User with this email already exists") from exc
            except Exception as exc:
                await session.rollback()
                logger.exception("Failed to update user %s", user_id)
                raise BadRequestError("Failed to update user") from exc
            return user

    async def set_active(self, user_id: str, active: bool) -> User:
        async with self._session_factory() as session:
            user = await self._get(session, user_id)
            try:
                user.is_active = active
                await session.commit()
            except Exception as exc:
                await session.rollback()
                logger.exception("Failed to change active flag of user %s", user_id)
                raise BadRequestError("Failed to update user") from exc
        logger.info("User %s %s", user_id, "activated" if active else "deactivated")
        return user

    async def remove(self, user_id: str) -> None:
        """Soft-delete the user and delete their ratings and watchlist entries.

        Aggregates of every movie the user had rated are recomputed in the
        same transaction.
        """

        async with self._session_factory() as session:
            user = await self._get(session, user_id)
            try:
                rated = await session.execute(
                    select(Rating.movie_id).where(Rating.user_id == user_id)
                )
                movie_ids = sorted(set(rated.scalars()))
                await session.execute(delete(Rating).where(Rating.user_id == user_id))
                await session.execute(delete(Watchlist).where(Watchlist.user_id == user_id))
                for movie_id in movie_ids:
                    await recompute_rating_stats(session, movie_id)
                user.is_active = False
                user.refresh_token = None
                user.deleted_at = utcnow()
                await session.commit()
            except Exception as exc:
                await session.rollback()
                logger.exception("Failed to delete user %s", user_id)
                raise BadRequestError("Failed to delete user") from exc
        logger.info("Deleted user %s and ratings for %s movies", user_id, len(movie_ids))

    @staticmethod
    async def _get(session: AsyncSession, user_id: str) -> User:
        user = await session.get(User, user_id)
        if user is None or user.deleted_at is not None:
            raise NotFoundError("User not found")
        return user

    @staticmethod
    async def _find_by_email(session: AsyncSession, email: str) -> User | None:
        result = await session.execute(select(User).where(User.email == email))
        return result.scalar_one_or_none()
