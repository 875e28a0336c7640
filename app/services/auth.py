"""Registration, login and access-token resolution."""

from __future__ import annotations

import logging

from ..config import Settings
from ..db_models import User, UserRole
from ..errors import ConflictError, ForbiddenError, UnauthorizedError, raise_for_errors
from ..models import AuthResponse, LoginRequest, RegisterRequest, UserCreate, UserView
from ..security import TokenPayload, TokenService, hash_password_async, verify_password_async
from ..validators import validate_login, validate_register
from .users import UserService

logger = logging.getLogger(__name__)


class AuthService:
    def __init__(self, settings: Settings, users: UserService, tokens: TokenService):
        self._settings = settings
        self._users = users
        self._tokens = tokens

    async def register(self, request: RegisterRequest) -> AuthResponse:
        raise_for_errors(validate_register(request))

        if await self._users.find_by_email(request.email) is not None:
            raise ConflictError("User with this email already exists")

        password_hash = await hash_password_async(
            request.password, self._settings.bcrypt_rounds
        )
        user = await self._users.create(
            UserCreate(
                first_name=request.first_name,
                last_name=request.last_name,
                email=request.email,
                password=request.password,
            ),
            password_hash=password_hash,
        )
        logger.info("Registered user %s", user.id)
        return self._respond(user)

    async def login(self, request: LoginRequest) -> AuthResponse:
        raise_for_errors(validate_login(request))

        user = await self.validate_user(request.email, request.password)
        if user is None:
            raise UnauthorizedError("Invalid credentials")
        return self._respond(user)

    async def validate_user(self, email: str, password: str) -> User | None:
        """Return the active user matching the credentials, or ``None``."""

        user = await self._users.find_by_email(email)
        if user is None or not user.is_active or user.deleted_at is not None:
            return None
        if not await verify_password_async(password, user.password_hash):
            return None
        return user

    async def refresh(self, user: User) -> AuthResponse:
        return self._respond(user)

    async def get_profile(self, user_id: str) -> User:
        user = await self._users.find_by_id(user_id)
        if user is None:
            raise UnauthorizedError("User not found")
        return user

    async def resolve_token(self, token: str) -> User:
        """Return the active user a bearer token belongs to."""

        payload = self._tokens.verify(token)
        user = await self._users.find_by_id(payload.sub)
        if user is None or not user.is_active:
            raise UnauthorizedError("User not found or inactive")
        return user

    @staticmethod
    def require_admin(user: User) -> User:
        if user.role != UserRole.ADMIN.value:
            raise ForbiddenError("Admin access required")
        return user

    def issue_token(self, user: User) -> str:
        return self._tokens.issue(
            TokenPayload(sub=user.id, email=user.email, role=user.role)
        )

    def _respond(self, user: User) -> AuthResponse:
        return AuthResponse(access_token=self.issue_token(user), user=UserView.from_record(user))
