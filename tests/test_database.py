from __future__ import annotations

import asyncio

import pytest
from sqlalchemy import create_engine, inspect
from sqlalchemy.exc import IntegrityError

from app.database import Database
from app.db_models import Rating


def test_create_all_builds_every_table(tmp_path) -> None:
    database_path = tmp_path / "schema.db"
    database = Database(f"sqlite+aiosqlite:///{database_path}")
    asyncio.run(database.create_all())
    asyncio.run(database.dispose())

    inspector_engine = create_engine(f"sqlite:///{database_path}")
    try:
        inspector = inspect(inspector_engine)
        tables = set(inspector.get_table_names())
        rating_uniques = {
            constraint["name"] for constraint in inspector.get_unique_constraints("ratings")
        }
    finally:
        inspector_engine.dispose()

    assert {"users", "movies", "genres", "movie_genres", "ratings", "watchlists"} <= tables
    assert "uq_rating_user_movie" in rating_uniques


def test_sqlite_foreign_keys_are_enforced(tmp_path) -> None:
    """Rows pointing at missing parents are rejected."""

    async def scenario() -> None:
        database = Database(f"sqlite+aiosqlite:///{tmp_path / 'fk.db'}")
        await database.create_all()
        try:
            async with database.session() as session:
                session.add(Rating(user_id="nobody", movie_id="nothing", rating=5.0))
                with pytest.raises(IntegrityError):
                    await session.commit()
        finally:
            await database.dispose()

    asyncio.run(scenario())
