"""Error taxonomy raised by services and rendered at the HTTP boundary."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Sequence


@dataclass(slots=True, frozen=True)
class FieldError:
    """A single validation failure attached to one input field."""

    field: str
    message: str

    def to_payload(self) -> dict[str, str]:
        return asdict(self)


class ServiceError(Exception):
    """Base class for errors that map onto a client-facing status code."""

    status_code = 500
    error = "Internal Server Error"

    def __init__(
        self, message: str, *, errors: Sequence[FieldError] | None = None
    ) -> None:
        super().__init__(message)
        self.message = message
        self.errors: list[FieldError] = list(errors or [])

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "statusCode": self.status_code,
            "error": self.error,
            "message": self.message,
        }
        if self.errors:
            payload["details"] = [error.to_payload() for error in self.errors]
        return payload


class BadRequestError(ServiceError):
    status_code = 400
    error = "Bad Request"


class UnauthorizedError(ServiceError):
    status_code = 401
    error = "Unauthorized"


class ForbiddenError(ServiceError):
    status_code = 403
    error = "Forbidden"


class NotFoundError(ServiceError):
    status_code = 404
    error = "Not Found"


class ConflictError(ServiceError):
    status_code = 409
    error = "Conflict"


def raise_for_errors(errors: Sequence[FieldError], message: str = "Validation failed") -> None:
    """Raise a ``BadRequestError`` carrying ``errors`` when any were collected."""

    if errors:
        raise BadRequestError(message, errors=errors)
