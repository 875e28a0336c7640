"""Synchronising local movies with TMDB."""

from __future__ import annotations

import copy

import httpx
import pytest

from app.config import Settings
from app.database import Database
from app.errors import BadRequestError
from app.models import MovieSearchParams
from app.services.movies import MovieService
from app.services.tmdb import TMDBClient

from conftest import build_settings, seed_genres
from test_tmdb_client import BASE_URL, FIGHT_CLUB


class FakeTMDB:
    """In-memory TMDB backend served through ``httpx.MockTransport``."""

    def __init__(self) -> None:
        self.movies = {550: copy.deepcopy(FIGHT_CLUB)}
        self.calls: list[str] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request.url.path)
        if request.url.path.endswith("/genre/movie/list"):
            return httpx.Response(
                200,
                json={"genres": [{"id": 18, "name": "Drama"}, {"id": 53, "name": "Thriller"}]},
            )
        tmdb_id = int(request.url.path.rsplit("/", 1)[-1])
        if tmdb_id not in self.movies:
            return httpx.Response(404, json={"status_message": "not found"})
        return httpx.Response(200, json=self.movies[tmdb_id])


def build_service(
    tmp_path, database: Database, backend: FakeTMDB
) -> tuple[MovieService, httpx.AsyncClient]:
    settings: Settings = build_settings(tmp_path, TMDB_API_KEY="tmdb-key")
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(backend), base_url=BASE_URL)
    tmdb = TMDBClient(settings, http_client)
    return MovieService(settings, database.session_factory, tmdb), http_client


@pytest.mark.anyio("asyncio")
async def test_sync_creates_then_updates_in_place(tmp_path, database: Database) -> None:
    backend = FakeTMDB()
    movies, http_client = build_service(tmp_path, database, backend)
    await seed_genres(movies, (18, "Drama"), (53, "Thriller"))

    async with http_client:
        created = await movies.sync_from_tmdb(550)

        backend.movies[550]["tagline"] = "How much can you know about yourself?"
        backend.movies[550]["genres"] = [{"id": 18, "name": "Drama"}, {"id": 53, "name": "Thriller"}]
        refreshed = await movies.sync_from_tmdb(550)

    assert created.status == "released"
    assert created.vote_average == 8.4
    assert [genre.name for genre in created.genres] == ["Drama"]
    assert refreshed.id == created.id
    assert refreshed.tagline == "How much can you know about yourself?"
    assert [genre.name for genre in refreshed.genres] == ["Drama", "Thriller"]
    assert refreshed.last_synced_at is not None

    page = await movies.search(MovieSearchParams())
    assert page.meta.total == 1


@pytest.mark.anyio("asyncio")
async def test_sync_failure_is_reported_as_bad_request(tmp_path, database: Database) -> None:
    movies, http_client = build_service(tmp_path, database, FakeTMDB())

    async with http_client:
        with pytest.raises(BadRequestError, match="Failed to sync movie from TMDB"):
            await movies.sync_from_tmdb(1234)


@pytest.mark.anyio("asyncio")
async def test_sync_genres_upserts_by_tmdb_id(tmp_path, database: Database) -> None:
    movies, http_client = build_service(tmp_path, database, FakeTMDB())
    await seed_genres(movies, (18, "Old Drama Name"))

    async with http_client:
        genres = await movies.sync_genres()

    assert [(genre.tmdb_id, genre.name) for genre in genres] == [
        (18, "Drama"),
        (53, "Thriller"),
    ]
    assert len(await movies.list_genres()) == 2
