"""Pytest configuration and test helpers."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, AsyncIterator

import pytest


# Ensure the application package is importable when running tests without an
# editable install. This mirrors the expected runtime layout where ``app`` sits
# at the project root.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.config import Settings  # noqa: E402
from app.database import Database  # noqa: E402
from app.models import UserCreate  # noqa: E402
from app.services.movies import MovieService  # noqa: E402
from app.services.tmdb import TMDBGenre, TMDBGenreList  # noqa: E402
from app.services.users import UserService  # noqa: E402

STRONG_PASSWORD = "Sup3r$ecret"


@pytest.fixture
def anyio_backend() -> str:
    """Force AnyIO tests to run on asyncio without requiring trio."""

    return "asyncio"


def build_settings(tmp_path: Path, **overrides: Any) -> Settings:
    """Return a settings object backed by a throwaway SQLite file."""

    base: dict[str, Any] = {
        "DATABASE_URL": f"sqlite+aiosqlite:///{tmp_path / 'movies.db'}",
        "JWT_SECRET": "test-secret",
        "BCRYPT_ROUNDS": 4,
        "LOG_LEVEL": "DEBUG",
    }
    base.update(overrides)
    return Settings(_env_file=None, **base)  # type: ignore[arg-type]


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return build_settings(tmp_path)


@pytest.fixture
async def database(settings: Settings) -> AsyncIterator[Database]:
    db = Database(settings.database_url)
    await db.create_all()
    try:
        yield db
    finally:
        await db.dispose()


async def seed_genres(movies: MovieService, *pairs: tuple[int, str]) -> None:
    await movies.upsert_genres(
        TMDBGenreList(genres=[TMDBGenre(id=tmdb_id, name=name) for tmdb_id, name in pairs])
    )


async def create_user(users: UserService, email: str, **overrides: Any):
    fields: dict[str, Any] = {
        "first_name": "Test",
        "last_name": "User",
        "email": email,
        "password": STRONG_PASSWORD,
    }
    fields.update(overrides)
    return await users.create(UserCreate(**fields))
