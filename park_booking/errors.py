"""Domain error codes for the booking engine."""

from dataclasses import dataclass
from enum import Enum

from fastapi import HTTPException, status


class ErrorCode(Enum):
    """Domain error codes."""

    NOT_FOUND = "NotFound"
    CAPACITY_EXCEEDED = "CapacityExceeded"
    VALIDATION_FAILED = "ValidationFailed"
    INVALID_TRANSITION = "InvalidTransition"
    DEPENDENCY_FAILURE = "DependencyFailure"
    CONFLICT_DUPLICATE = "ConflictDuplicate"


@dataclass(frozen=True)
class DomainError(Exception):
    """Base domain error with code and user-safe message."""

    code: ErrorCode
    message: str

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"

    def to_detail(self) -> dict:
        return {"code": self.code.value, "message": self.message}


class NotFoundError(DomainError):
    """Raised when an attraction or booking is absent."""

    def __init__(self, message: str) -> None:
        super().__init__(code=ErrorCode.NOT_FOUND, message=message)


class CapacityExceededError(DomainError):
    """Raised when a slot cannot admit the requested number of tickets."""

    def __init__(self, available: int) -> None:
        super().__init__(
            code=ErrorCode.CAPACITY_EXCEEDED,
            message=f"Only {available} tickets left for this slot.",
        )
        object.__setattr__(self, "available", available)

    def to_detail(self) -> dict:
        detail = super().to_detail()
        detail["available"] = self.available
        return detail


class ValidationFailedError(DomainError):
    """Raised for malformed input that reaches the engine."""

    def __init__(self, message: str) -> None:
        super().__init__(code=ErrorCode.VALIDATION_FAILED, message=message)


class InvalidTransitionError(DomainError):
    """Raised when a booking status change is not in the transition table."""

    def __init__(self, current: str, target: str, reason: str | None = None) -> None:
        message = f"Booking cannot move from {current} to {target}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(code=ErrorCode.INVALID_TRANSITION, message=message)
        object.__setattr__(self, "current", current)
        object.__setattr__(self, "target", target)


class DependencyFailureError(DomainError):
    """Raised when the datastore or object store fails."""

    def __init__(self, message: str) -> None:
        super().__init__(code=ErrorCode.DEPENDENCY_FAILURE, message=message)


class ConflictDuplicateError(DomainError):
    """Raised on a booking identity or credential collision. Safe to retry."""

    def __init__(self, message: str = "Booking identity collision, please retry") -> None:
        super().__init__(code=ErrorCode.CONFLICT_DUPLICATE, message=message)


# HTTP status for each error code. Routers go through domain_error_to_http
# instead of mapping errors themselves.
HTTP_STATUS_BY_CODE: dict[ErrorCode, int] = {
    ErrorCode.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.CAPACITY_EXCEEDED: status.HTTP_409_CONFLICT,
    ErrorCode.VALIDATION_FAILED: status.HTTP_400_BAD_REQUEST,
    ErrorCode.INVALID_TRANSITION: status.HTTP_409_CONFLICT,
    ErrorCode.DEPENDENCY_FAILURE: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorCode.CONFLICT_DUPLICATE: status.HTTP_409_CONFLICT,
}


def domain_error_to_http(exc: DomainError) -> HTTPException:
    """Map a DomainError to an HTTPException carrying its code and message."""
    return HTTPException(
        status_code=HTTP_STATUS_BY_CODE.get(exc.code, status.HTTP_500_INTERNAL_SERVER_ERROR),
        detail=exc.to_detail(),
    )
