"""Domain error codes shared by the services and the HTTP layer."""

from dataclasses import dataclass
from enum import Enum


class ErrorCode(Enum):
    """Domain error codes."""

    INVALID_INPUT = "INVALID_INPUT"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    FORBIDDEN = "FORBIDDEN"
    UNAUTHENTICATED = "UNAUTHENTICATED"


HTTP_STATUS_BY_CODE = {
    ErrorCode.INVALID_INPUT: 400,
    ErrorCode.UNAUTHENTICATED: 401,
    ErrorCode.FORBIDDEN: 403,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.CONFLICT: 409,
}


@dataclass(frozen=True, eq=False)
class DomainError(Exception):
    """Base domain error with code and user-safe message."""

    code: ErrorCode
    message: str

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"

    @property
    def status_code(self) -> int:
        return HTTP_STATUS_BY_CODE[self.code]


class InvalidInputError(DomainError):
    """Raised when a field is malformed or out of range."""

    def __init__(self, message: str) -> None:
        super().__init__(code=ErrorCode.INVALID_INPUT, message=message)


class NotFoundError(DomainError):
    """Raised when a referenced entity does not exist."""

    def __init__(self, message: str) -> None:
        super().__init__(code=ErrorCode.NOT_FOUND, message=message)


class ConflictError(DomainError):
    """Raised when a write would break an occupancy or uniqueness rule."""

    def __init__(self, message: str) -> None:
        super().__init__(code=ErrorCode.CONFLICT, message=message)


class ForbiddenError(DomainError):
    """Raised when the actor may not touch the resource."""

    def __init__(self, message: str = "Forbidden") -> None:
        super().__init__(code=ErrorCode.FORBIDDEN, message=message)


class UnauthenticatedError(DomainError):
    """Raised when no usable identity accompanies the request."""

    def __init__(self, message: str = "Access token required") -> None:
        super().__init__(code=ErrorCode.UNAUTHENTICATED, message=message)
