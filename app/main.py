"""Entry point for the FastAPI-powered Movies API."""

from __future__ import annotations

import logging
import time
from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import dataclass
from typing import Any

import httpx
from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .config import Settings, settings as default_settings
from .database import Database
from .db_models import User, WatchlistStatus
from .errors import BadRequestError, FieldError, ServiceError, UnauthorizedError
from .models import (
    AuthResponse,
    GenreView,
    LoginRequest,
    MovieCreate,
    MovieSearchParams,
    MovieSortBy,
    MovieUpdate,
    MovieView,
    Page,
    RatingCreate,
    RatingStats,
    RatingUpdate,
    RatingView,
    ReconcileResult,
    RegisterRequest,
    UserUpdate,
    UserView,
    WatchlistCreate,
    WatchlistUpdate,
    WatchlistView,
)
from .security import TokenService
from .services.auth import AuthService
from .services.movies import MovieService
from .services.ratings import RatingService
from .services.tmdb import TMDBClient, TMDBSearchPage
from .services.users import UserService
from .services.watchlist import WatchlistService

logging.basicConfig(level=default_settings.log_level)
logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(slots=True)
class ServiceContainer:
    """Services assembled once per process and shared by every request."""

    movies: MovieService
    ratings: RatingService
    watchlist: WatchlistService
    users: UserService
    auth: AuthService


def build_services(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    tmdb: TMDBClient | None,
) -> ServiceContainer:
    movies = MovieService(settings, session_factory, tmdb)
    users = UserService(settings, session_factory)
    return ServiceContainer(
        movies=movies,
        ratings=RatingService(session_factory, movies),
        watchlist=WatchlistService(session_factory, movies),
        users=users,
        auth=AuthService(settings, users, TokenService(settings)),
    )


@asynccontextmanager
async def lifespan(fastapi_app: FastAPI):
    settings: Settings = fastapi_app.state.settings
    exit_stack = AsyncExitStack()

    tmdb: TMDBClient | None = None
    if settings.tmdb_api_key:
        client_kwargs: dict[str, Any] = {
            "base_url": str(settings.tmdb_base_url),
            "timeout": httpx.Timeout(settings.tmdb_timeout),
        }
        transport = getattr(fastapi_app.state, "tmdb_transport", None)
        if transport is not None:
            client_kwargs["transport"] = transport
        tmdb_http_client = await exit_stack.enter_async_context(
            httpx.AsyncClient(**client_kwargs)
        )
        tmdb = TMDBClient(settings, tmdb_http_client)
    else:
        logger.warning("TMDB_API_KEY is not set; TMDB endpoints are disabled")

    database = Database(settings.database_url)
    exit_stack.push_async_callback(database.dispose)
    try:
        await database.create_all()
    except Exception:
        await exit_stack.aclose()
        raise

    fastapi_app.state.database = database
    fastapi_app.state.services = build_services(settings, database.session_factory, tmdb)
    fastapi_app.state.started_at = time.monotonic()

    try:
        yield
    finally:  # pragma: no cover - teardown path exercised at runtime
        await exit_stack.aclose()


def create_app(
    settings: Settings | None = None,
    *,
    tmdb_transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    settings = settings or default_settings
    fastapi_app = FastAPI(
        title=settings.app_name,
        description="Movie database API with ratings, watchlists and TMDB integration",
        version="1.0.0",
        lifespan=lifespan,
    )
    fastapi_app.state.settings = settings
    fastapi_app.state.tmdb_transport = tmdb_transport

    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=[origin.strip() for origin in settings.cors_origin.split(",")],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_error_handlers(fastapi_app)
    register_routes(fastapi_app, settings)
    return fastapi_app


def register_error_handlers(fastapi_app: FastAPI) -> None:
    @fastapi_app.exception_handler(ServiceError)
    async def service_error_handler(_: Request, exc: ServiceError) -> JSONResponse:
        return JSONResponse(exc.to_payload(), status_code=exc.status_code)

    @fastapi_app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        _: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = [
            FieldError(
                ".".join(str(part) for part in error.get("loc", ())[1:]) or "body",
                str(error.get("msg", "Invalid value")),
            )
            for error in exc.errors()
        ]
        error = BadRequestError("Validation failed", errors=errors)
        return JSONResponse(error.to_payload(), status_code=error.status_code)


def get_services(request: Request) -> ServiceContainer:
    services = getattr(request.app.state, "services", None)
    if not isinstance(services, ServiceContainer):
        raise RuntimeError("Services not initialised")
    return services


async def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> User:
    if credentials is None or not credentials.credentials:
        raise UnauthorizedError("Missing bearer token")
    return await get_services(request).auth.resolve_token(credentials.credentials)


async def get_admin_user(user: User = Depends(get_current_user)) -> User:
    return AuthService.require_admin(user)


def register_routes(fastapi_app: FastAPI, settings: Settings) -> None:
    router = APIRouter(prefix=settings.api_prefix)

    @router.get("/health")
    async def healthcheck(request: Request) -> dict[str, Any]:
        started_at = getattr(request.app.state, "started_at", time.monotonic())
        return {"status": "ok", "uptime": round(time.monotonic() - started_at, 3)}

    # Auth ----------------------------------------------------------------

    @router.post("/auth/register", status_code=201)
    async def register(request: Request, payload: RegisterRequest) -> AuthResponse:
        return await get_services(request).auth.register(payload)

    @router.post("/auth/login")
    async def login(request: Request, payload: LoginRequest) -> AuthResponse:
        return await get_services(request).auth.login(payload)

    @router.get("/auth/profile")
    async def profile(
        request: Request, user: User = Depends(get_current_user)
    ) -> UserView:
        return UserView.from_record(await get_services(request).auth.get_profile(user.id))

    @router.post("/auth/refresh")
    async def refresh(request: Request, user: User = Depends(get_current_user)) -> AuthResponse:
        return await get_services(request).auth.refresh(user)

    # Users ---------------------------------------------------------------

    @router.get("/users")
    async def list_users(
        request: Request,
        page: int = 1,
        limit: int = 10,
        _: User = Depends(get_admin_user),
    ) -> Page[UserView]:
        return await get_services(request).users.list_users(page, limit)

    @router.get("/users/me")
    async def read_me(user: User = Depends(get_current_user)) -> UserView:
        return UserView.from_record(user)

    @router.patch("/users/me")
    async def update_me(
        request: Request, payload: UserUpdate, user: User = Depends(get_current_user)
    ) -> UserView:
        updated = await get_services(request).users.update(user.id, payload)
        return UserView.from_record(updated)

    @router.get("/users/{user_id}")
    async def read_user(
        request: Request, user_id: str, user: User = Depends(get_current_user)
    ) -> UserView:
        if user.id != user_id:
            AuthService.require_admin(user)
        return UserView.from_record(await get_services(request).users.get(user_id))

    @router.patch("/users/{user_id}")
    async def update_user(
        request: Request,
        user_id: str,
        payload: UserUpdate,
        _: User = Depends(get_admin_user),
    ) -> UserView:
        return UserView.from_record(await get_services(request).users.update(user_id, payload))

    @router.patch("/users/{user_id}/activate")
    async def activate_user(
        request: Request, user_id: str, _: User = Depends(get_admin_user)
    ) -> UserView:
        return UserView.from_record(await get_services(request).users.set_active(user_id, True))

    @router.patch("/users/{user_id}/deactivate")
    async def deactivate_user(
        request: Request, user_id: str, _: User = Depends(get_admin_user)
    ) -> UserView:
        return UserView.from_record(
            await get_services(request).users.set_active(user_id, False)
        )

    @router.delete("/users/{user_id}", status_code=204)
    async def delete_user(
        request: Request, user_id: str, _: User = Depends(get_admin_user)
    ) -> None:
        await get_services(request).users.remove(user_id)

    # Movies --------------------------------------------------------------

    @router.get("/movies")
    async def list_movies(
        request: Request,
        search: str | None = None,
        genre_ids: list[int] = Query(default=[], alias="genreIds"),
        year: int | None = None,
        min_rating: float | None = Query(default=None, alias="minRating"),
        max_rating: float | None = Query(default=None, alias="maxRating"),
        language: str | None = None,
        include_adult: bool = Query(default=False, alias="includeAdult"),
        sort_by: MovieSortBy | None = Query(default=None, alias="sortBy"),
        page: int = 1,
        limit: int = 10,
    ) -> Page[MovieView]:
        params = MovieSearchParams(
            search=search,
            genre_ids=genre_ids,
            year=year,
            min_rating=min_rating,
            max_rating=max_rating,
            language=language,
            include_adult=include_adult,
            sort_by=sort_by,
            page=page,
            limit=limit,
        )
        return await get_services(request).movies.search(params)

    @router.post("/movies", status_code=201)
    async def create_movie(
        request: Request, payload: MovieCreate, _: User = Depends(get_admin_user)
    ) -> MovieView:
        return await get_services(request).movies.create(payload)

    @router.get("/movies/genres")
    async def list_genres(request: Request) -> list[GenreView]:
        return await get_services(request).movies.list_genres()

    @router.post("/movies/genres/sync")
    async def sync_genres(
        request: Request, _: User = Depends(get_admin_user)
    ) -> list[GenreView]:
        return await get_services(request).movies.sync_genres()

    @router.get("/movies/search/tmdb")
    async def search_tmdb(
        request: Request, query: str | None = None, page: int = 1, year: int | None = None
    ) -> TMDBSearchPage:
        return await get_services(request).movies.search_tmdb(query, page, year)

    @router.get("/movies/popular")
    async def popular_movies(request: Request, page: int = 1) -> TMDBSearchPage:
        return await get_services(request).movies.popular(page)

    @router.get("/movies/top-rated")
    async def top_rated_movies(request: Request, page: int = 1) -> TMDBSearchPage:
        return await get_services(request).movies.top_rated(page)

    @router.get("/movies/now-playing")
    async def now_playing_movies(request: Request, page: int = 1) -> TMDBSearchPage:
        return await get_services(request).movies.now_playing(page)

    @router.get("/movies/upcoming")
    async def upcoming_movies(request: Request, page: int = 1) -> TMDBSearchPage:
        return await get_services(request).movies.upcoming(page)

    @router.get("/movies/discover")
    async def discover_movies(
        request: Request,
        page: int = 1,
        genre_ids: list[int] = Query(default=[], alias="genreIds"),
        sort_by: str | None = Query(default=None, alias="sortBy"),
        year: int | None = None,
        min_rating: float | None = Query(default=None, alias="minRating"),
    ) -> TMDBSearchPage:
        return await get_services(request).movies.discover(
            page=page,
            genre_ids=genre_ids,
            sort_by=sort_by,
            release_year=year,
            min_rating=min_rating,
        )

    @router.post("/movies/sync/{tmdb_id}", status_code=201)
    async def sync_movie(
        request: Request, tmdb_id: int, _: User = Depends(get_admin_user)
    ) -> MovieView:
        return await get_services(request).movies.sync_from_tmdb(tmdb_id)

    @router.get("/movies/{movie_id}")
    async def read_movie(request: Request, movie_id: str) -> MovieView:
        return await get_services(request).movies.get(movie_id)

    @router.get("/movies/{movie_id}/stats")
    async def movie_rating_stats(request: Request, movie_id: str) -> RatingStats:
        return await get_services(request).ratings.movie_stats(movie_id)

    @router.patch("/movies/{movie_id}")
    async def update_movie(
        request: Request,
        movie_id: str,
        payload: MovieUpdate,
        _: User = Depends(get_admin_user),
    ) -> MovieView:
        return await get_services(request).movies.update(movie_id, payload)

    @router.delete("/movies/{movie_id}", status_code=204)
    async def delete_movie(
        request: Request, movie_id: str, _: User = Depends(get_admin_user)
    ) -> None:
        await get_services(request).movies.remove(movie_id)

    # Ratings -------------------------------------------------------------

    @router.post("/ratings", status_code=201)
    async def create_rating(
        request: Request, payload: RatingCreate, user: User = Depends(get_current_user)
    ) -> RatingView:
        return await get_services(request).ratings.create(payload, user.id)

    @router.get("/ratings")
    async def list_ratings(
        request: Request,
        page: int = 1,
        limit: int = 10,
        _: User = Depends(get_current_user),
    ) -> Page[RatingView]:
        return await get_services(request).ratings.list_all(page, limit)

    @router.get("/ratings/my-ratings")
    async def my_ratings(
        request: Request,
        page: int = 1,
        limit: int = 10,
        user: User = Depends(get_current_user),
    ) -> Page[RatingView]:
        return await get_services(request).ratings.list_for_user(user.id, page, limit)

    @router.post("/ratings/reconcile")
    async def reconcile_ratings(
        request: Request, _: User = Depends(get_admin_user)
    ) -> ReconcileResult:
        return await get_services(request).ratings.reconcile_all()

    @router.get("/ratings/movie/{movie_id}")
    async def ratings_for_movie(
        request: Request,
        movie_id: str,
        page: int = 1,
        limit: int = 10,
        _: User = Depends(get_current_user),
    ) -> Page[RatingView]:
        return await get_services(request).ratings.list_for_movie(movie_id, page, limit)

    @router.get("/ratings/movie/{movie_id}/my-rating")
    async def my_rating_for_movie(
        request: Request, movie_id: str, user: User = Depends(get_current_user)
    ) -> RatingView | None:
        return await get_services(request).ratings.get_for_user_and_movie(user.id, movie_id)

    @router.get("/ratings/{rating_id}")
    async def read_rating(
        request: Request, rating_id: str, _: User = Depends(get_current_user)
    ) -> RatingView:
        return await get_services(request).ratings.get(rating_id)

    @router.patch("/ratings/{rating_id}")
    async def update_rating(
        request: Request,
        rating_id: str,
        payload: RatingUpdate,
        user: User = Depends(get_current_user),
    ) -> RatingView:
        return await get_services(request).ratings.update(rating_id, payload, user.id)

    @router.delete("/ratings/{rating_id}", status_code=204)
    async def delete_rating(
        request: Request, rating_id: str, user: User = Depends(get_current_user)
    ) -> None:
        await get_services(request).ratings.remove(rating_id, user.id)

    # Watchlist -----------------------------------------------------------

    @router.post("/watchlist", status_code=201)
    async def add_to_watchlist(
        request: Request, payload: WatchlistCreate, user: User = Depends(get_current_user)
    ) -> WatchlistView:
        return await get_services(request).watchlist.add(payload, user.id)

    @router.get("/watchlist")
    async def list_watchlist(
        request: Request,
        status: WatchlistStatus | None = None,
        favorites: bool = False,
        page: int = 1,
        limit: int = 10,
        user: User = Depends(get_current_user),
    ) -> Page[WatchlistView]:
        return await get_services(request).watchlist.list_for_user(
            user.id, status=status, favorites_only=favorites, page=page, limit=limit
        )

    @router.get("/watchlist/{entry_id}")
    async def read_watchlist_entry(
        request: Request, entry_id: str, user: User = Depends(get_current_user)
    ) -> WatchlistView:
        return await get_services(request).watchlist.get(entry_id, user.id)

    @router.patch("/watchlist/{entry_id}")
    async def update_watchlist_entry(
        request: Request,
        entry_id: str,
        payload: WatchlistUpdate,
        user: User = Depends(get_current_user),
    ) -> WatchlistView:
        return await get_services(request).watchlist.update(entry_id, payload, user.id)

    @router.delete("/watchlist/{entry_id}", status_code=204)
    async def delete_watchlist_entry(
        request: Request, entry_id: str, user: User = Depends(get_current_user)
    ) -> None:
        await get_services(request).watchlist.remove(entry_id, user.id)

    fastapi_app.include_router(router)


app = create_app()


if __name__ == "__main__":  # pragma: no cover - manual execution
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=default_settings.server_host,
        port=default_settings.server_port,
        reload=default_settings.environment == "development",
    )
