"""Initial data for a fresh database."""

from __future__ import annotations

import logging

from .config import Settings
from .database import Database
from .db_models import UserRole
from .errors import ConflictError
from .models import UserCreate
from .services.movies import MovieService
from .services.tmdb import TMDBGenre, TMDBGenreList
from .services.users import UserService

logger = logging.getLogger(__name__)

DEFAULT_GENRES: tuple[tuple[int, str], ...] = (
    (28, "Action"),
    (12, "Adventure"),
    (16, "Animation"),
    (35, "Comedy"),
    (80, "Crime"),
    (99, "Documentary"),
    (18, "Drama"),
    (10751, "Family"),
    (14, "Fantasy"),
    (36, "History"),
    (27, "Horror"),
    (10402, "Music"),
    (9648, "Mystery"),
    (10749, "Romance"),
    (878, "Science Fiction"),
    (10770, "TV Movie"),
    (53, "Thriller"),
    (10752, "War"),
    (37, "Western"),
)


async def seed_database(settings: Settings) -> int:
    """Create the schema, load the TMDB genre list and an optional admin.

    Returns the number of genres stored afterwards. Safe to run repeatedly.
    """

    database = Database(settings.database_url)
    try:
        await database.create_all()
        movies = MovieService(settings, database.session_factory)
        genres = await movies.upsert_genres(
            TMDBGenreList(
                genres=[TMDBGenre(id=tmdb_id, name=name) for tmdb_id, name in DEFAULT_GENRES]
            )
        )

        if settings.admin_email and settings.admin_password:
            users = UserService(settings, database.session_factory)
            try:
                admin = await users.create(
                    UserCreate(
                        first_name="Admin",
                        last_name="User",
                        email=settings.admin_email,
                        password=settings.admin_password,
                        role=UserRole.ADMIN,
                    )
                )
            except ConflictError:
                logger.info("Admin user %s already exists", settings.admin_email)
            else:
                logger.info("Created admin user %s", admin.id)
        return len(genres)
    finally:
        await database.dispose()
