"""End-to-end behaviour of the HTTP API."""

from __future__ import annotations

import asyncio
from pathlib import Path

import httpx
import pytest
from fastapi.testclient import TestClient

from app.main import create_app
from app.seeds import DEFAULT_GENRES, seed_database

from conftest import STRONG_PASSWORD, build_settings
from test_movie_sync import FakeTMDB

ADMIN_EMAIL = "admin@example.com"
PREFIX = "/api/v1"


@pytest.fixture
def client(tmp_path: Path):
    settings = build_settings(
        tmp_path,
        TMDB_API_KEY="tmdb-key",
        ADMIN_EMAIL=ADMIN_EMAIL,
        ADMIN_PASSWORD=STRONG_PASSWORD,
    )
    asyncio.run(seed_database(settings))
    app = create_app(settings, tmdb_transport=httpx.MockTransport(FakeTMDB()))
    with TestClient(app) as test_client:
        yield test_client


def _login(client: TestClient, email: str) -> dict[str, str]:
    response = client.post(
        f"{PREFIX}/auth/login", json={"email": email, "password": STRONG_PASSWORD}
    )
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['accessToken']}"}


def _register(client: TestClient, email: str) -> dict[str, str]:
    response = client.post(
        f"{PREFIX}/auth/register",
        json={
            "firstName": "Jane",
            "lastName": "Doe",
            "email": email,
            "password": STRONG_PASSWORD,
        },
    )
    assert response.status_code == 201, response.text
    body = response.json()
    assert body["tokenType"] == "Bearer"
    assert "passwordHash" not in body["user"]
    return {"Authorization": f"Bearer {body['accessToken']}"}


def test_seed_is_idempotent(tmp_path: Path) -> None:
    settings = build_settings(tmp_path, ADMIN_EMAIL=ADMIN_EMAIL, ADMIN_PASSWORD=STRONG_PASSWORD)

    assert asyncio.run(seed_database(settings)) == len(DEFAULT_GENRES)
    assert asyncio.run(seed_database(settings)) == len(DEFAULT_GENRES)


def test_health_and_genres_are_public(client: TestClient) -> None:
    assert client.get(f"{PREFIX}/health").json()["status"] == "ok"

    genres = client.get(f"{PREFIX}/movies/genres").json()
    assert len(genres) == len(DEFAULT_GENRES)
    assert {"id", "tmdbId", "name"} <= set(genres[0])


def test_protected_routes_require_token(client: TestClient) -> None:
    response = client.get(f"{PREFIX}/auth/profile")

    assert response.status_code == 401
    assert response.json() == {
        "statusCode": 401,
        "error": "Unauthorized",
        "message": "Missing bearer token",
    }

    bad = client.get(
        f"{PREFIX}/auth/profile", headers={"Authorization": "Bearer not-a-token"}
    )
    assert bad.status_code == 401
    assert bad.json()["message"] == "Invalid token"


def test_validation_errors_carry_field_details(client: TestClient) -> None:
    response = client.post(
        f"{PREFIX}/auth/register",
        json={"firstName": "J", "lastName": "Doe", "email": "bad", "password": "weak"},
    )

    assert response.status_code == 400
    body = response.json()
    assert body["message"] == "Validation failed"
    assert {detail["field"] for detail in body["details"]} == {
        "firstName",
        "email",
        "password",
    }

    missing = client.post(f"{PREFIX}/auth/login", json={"email": "x@example.com"})
    assert missing.status_code == 400
    assert missing.json()["details"][0]["field"] == "password"


def test_admin_only_routes_are_forbidden_for_users(client: TestClient) -> None:
    headers = _register(client, "jane@example.com")

    response = client.post(
        f"{PREFIX}/movies", json={"tmdbId": 550, "title": "Fight Club"}, headers=headers
    )

    assert response.status_code == 403
    assert response.json()["message"] == "Admin access required"
    assert client.get(f"{PREFIX}/users", headers=headers).status_code == 403


def test_movie_rating_and_watchlist_flow(client: TestClient) -> None:
    admin = _login(client, ADMIN_EMAIL)
    jane = _register(client, "jane@example.com")
    john = _register(client, "john@example.com")

    synced = client.post(f"{PREFIX}/movies/sync/550", headers=admin)
    assert synced.status_code == 201, synced.text
    movie = synced.json()
    assert movie["title"] == "Fight Club"
    assert movie["status"] == "released"
    assert [genre["name"] for genre in movie["genres"]] == ["Drama"]
    assert movie["fullPosterUrl"].endswith("/w500/pB8BM7pdSp6B6Ih7QZ4DrQ3PmJK.jpg")

    duplicate = client.post(
        f"{PREFIX}/movies", json={"tmdbId": 550, "title": "Fight Club"}, headers=admin
    )
    assert duplicate.status_code == 409

    for headers, value in ((jane, 9.0), (john, 7.0)):
        rated = client.post(
            f"{PREFIX}/ratings", json={"movieId": movie["id"], "rating": value}, headers=headers
        )
        assert rated.status_code == 201, rated.text

    again = client.post(
        f"{PREFIX}/ratings", json={"movieId": movie["id"], "rating": 1.0}, headers=jane
    )
    assert again.status_code == 409

    detail = client.get(f"{PREFIX}/movies/{movie['id']}").json()
    assert detail["averageRating"] == 8.0
    assert detail["ratingsCount"] == 2

    stats = client.get(f"{PREFIX}/movies/{movie['id']}/stats").json()
    assert stats["totalRatings"] == 2

    listing = client.get(
        f"{PREFIX}/movies", params={"genreIds": 18, "year": 1999, "sortBy": "rating_desc"}
    ).json()
    assert listing["meta"]["total"] == 1
    assert listing["meta"]["hasNextPage"] is False
    assert listing["data"][0]["id"] == movie["id"]

    mine = client.get(f"{PREFIX}/ratings/my-ratings", headers=jane).json()
    assert mine["meta"]["total"] == 1

    added = client.post(f"{PREFIX}/watchlist", json={"movieId": movie["id"]}, headers=jane)
    assert added.status_code == 201
    entry_id = added.json()["id"]
    assert added.json()["status"] == "want_to_watch"
    assert client.get(f"{PREFIX}/watchlist/{entry_id}", headers=john).status_code == 403
    assert client.delete(f"{PREFIX}/watchlist/{entry_id}", headers=jane).status_code == 204

    assert client.delete(f"{PREFIX}/movies/{movie['id']}", headers=admin).status_code == 204
    assert client.get(f"{PREFIX}/movies/{movie['id']}").status_code == 404


def test_tmdb_failures_surface_as_bad_request(client: TestClient) -> None:
    admin = _login(client, ADMIN_EMAIL)

    response = client.post(f"{PREFIX}/movies/sync/1234", headers=admin)

    assert response.status_code == 400
    assert response.json()["message"] == "Failed to sync movie from TMDB"

    search = client.get(f"{PREFIX}/movies/search/tmdb")
    assert search.status_code == 400
    assert search.json()["message"] == "Search query is required"


def test_reading_another_user_requires_admin(client: TestClient) -> None:
    admin = _login(client, ADMIN_EMAIL)
    jane = _register(client, "jane@example.com")
    john = _register(client, "john@example.com")
    jane_id = client.get(f"{PREFIX}/users/me", headers=jane).json()["id"]
    john_id = client.get(f"{PREFIX}/users/me", headers=john).json()["id"]

    forbidden = client.get(f"{PREFIX}/users/{john_id}", headers=jane)
    assert forbidden.status_code == 403
    assert forbidden.json()["message"] == "Admin access required"

    own = client.get(f"{PREFIX}/users/{jane_id}", headers=jane)
    assert own.status_code == 200
    assert own.json()["email"] == "jane@example.com"

    as_admin = client.get(f"{PREFIX}/users/{john_id}", headers=admin)
    assert as_admin.status_code == 200
    assert as_admin.json()["email"] == "john@example.com"
