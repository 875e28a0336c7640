"""Password hashing and access-token helpers."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import bcrypt
import jwt

from .config import Settings
from .errors import UnauthorizedError

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class TokenPayload:
    """Claims carried by an access token."""

    sub: str
    email: str
    role: str


def hash_password(password: str, rounds: int = 12) -> str:
    """Hash ``password`` with bcrypt using ``rounds`` as the work factor."""

    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        logger.warning("Stored password hash is not a valid bcrypt hash")
        return False


async def hash_password_async(password: str, rounds: int = 12) -> str:
    return await asyncio.to_thread(hash_password, password, rounds)


async def verify_password_async(password: str, password_hash: str) -> bool:
    return await asyncio.to_thread(verify_password, password, password_hash)


class TokenService:
    """Issues and verifies signed JWT access tokens."""

    def __init__(self, settings: Settings):
        self._secret = settings.jwt_secret
        self._algorithm = settings.jwt_algorithm
        self._expires_in = timedelta(seconds=settings.jwt_expires_in)

    def issue(self, payload: TokenPayload) -> str:
        now = datetime.now(timezone.utc)
        claims = {
            "sub": payload.sub,
            "email": payload.email,
            "role": payload.role,
            "iat": now,
            "exp": now + self._expires_in,
        }
        return jwt.encode(claims, self._secret, algorithm=self._algorithm)

    def verify(self, token: str) -> TokenPayload:
        """Decode ``token`` and return its claims, raising ``UnauthorizedError``."""

        try:
            claims = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                options={"require": ["exp", "sub"]},
            )
        except jwt.ExpiredSignatureError as exc:
            raise UnauthorizedError("Token has expired") from exc
        except jwt.InvalidTokenError as exc:
            raise UnauthorizedError("Invalid token") from exc

        subject = claims.get("sub")
        email = claims.get("email")
        role = claims.get("role")
        if not (isinstance(subject, str) and isinstance(email, str) and isinstance(role, str)):
            raise UnauthorizedError("Invalid token")
        return TokenPayload(sub=subject, email=email, role=role)
