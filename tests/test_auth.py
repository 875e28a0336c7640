"""Registration, login and token resolution."""

from __future__ import annotations

import pytest

from app.config import Settings
from app.database import Database
from app.db_models import UserRole
from app.errors import BadRequestError, ConflictError, ForbiddenError, UnauthorizedError
from app.models import LoginRequest, RegisterRequest
from app.security import TokenService
from app.services.auth import AuthService
from app.services.users import UserService

from conftest import STRONG_PASSWORD, create_user


def _auth(settings: Settings, database: Database) -> tuple[AuthService, UserService]:
    users = UserService(settings, database.session_factory)
    return AuthService(settings, users, TokenService(settings)), users


def _register(email: str = "Jane@Example.com") -> RegisterRequest:
    return RegisterRequest(
        first_name="Jane", last_name="Doe", email=email, password=STRONG_PASSWORD
    )


@pytest.mark.anyio("asyncio")
async def test_register_then_login(settings: Settings, database: Database) -> None:
    auth, _ = _auth(settings, database)

    registered = await auth.register(_register())
    logged_in = await auth.login(
        LoginRequest(email="jane@example.com", password=STRONG_PASSWORD)
    )

    assert registered.token_type == "Bearer"
    assert registered.user.email == "jane@example.com"
    assert registered.user.role is UserRole.USER
    assert registered.user.full_name == "Jane Doe"
    assert logged_in.user.id == registered.user.id

    resolved = await auth.resolve_token(logged_in.access_token)
    assert resolved.id == registered.user.id
    assert "password_hash" not in registered.user.model_dump()


@pytest.mark.anyio("asyncio")
async def test_duplicate_registration_conflicts(settings: Settings, database: Database) -> None:
    auth, _ = _auth(settings, database)
    await auth.register(_register())

    with pytest.raises(ConflictError):
        await auth.register(_register("jane@example.com"))


@pytest.mark.anyio("asyncio")
async def test_weak_password_is_rejected(settings: Settings, database: Database) -> None:
    auth, _ = _auth(settings, database)
    request = _register()
    request.password = "password"

    with pytest.raises(BadRequestError) as excinfo:
        await auth.register(request)

    assert excinfo.value.errors[0].field == "password"


@pytest.mark.anyio("asyncio")
async def test_bad_credentials_are_unauthorized(settings: Settings, database: Database) -> None:
    auth, users = _auth(settings, database)
    await auth.register(_register())

    with pytest.raises(UnauthorizedError, match="Invalid credentials"):
        await auth.login(LoginRequest(email="jane@example.com", password="Wr0ng$pass"))
    with pytest.raises(UnauthorizedError, match="Invalid credentials"):
        await auth.login(LoginRequest(email="nobody@example.com", password=STRONG_PASSWORD))


@pytest.mark.anyio("asyncio")
async def test_inactive_users_cannot_log_in_or_use_tokens(
    settings: Settings, database: Database
) -> None:
    auth, users = _auth(settings, database)
    registered = await auth.register(_register())

    await users.set_active(registered.user.id, False)

    with pytest.raises(UnauthorizedError):
        await auth.login(LoginRequest(email="jane@example.com", password=STRONG_PASSWORD))
    with pytest.raises(UnauthorizedError):
        await auth.resolve_token(registered.access_token)


@pytest.mark.anyio("asyncio")
async def test_admin_gate(settings: Settings, database: Database) -> None:
    _, users = _auth(settings, database)
    admin = await create_user(users, "admin@example.com", role=UserRole.ADMIN)
    member = await create_user(users, "member@example.com")

    assert AuthService.require_admin(admin) is admin
    with pytest.raises(ForbiddenError, match="Admin access required"):
        AuthService.require_admin(member)
