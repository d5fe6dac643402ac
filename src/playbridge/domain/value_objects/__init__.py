"""Value objects shared across the pipeline."""

from dataclasses import dataclass
from enum import Enum

from playbridge.domain.exceptions import (
    DomainException,
    DuplicateEntityException,
    EntityNotFoundException,
    ExternalServiceError,
    InvalidStateException,
    PersistenceError,
    RateLimitExceededError,
    ValidationException,
)


class ErrorKind(str, Enum):
    """Error taxonomy as seen by callers of per-item operations."""

    INPUT = "input"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    INVALID_STATE = "invalid_state"
    EXTERNAL = "external"
    RATE_LIMITED = "rate_limited"
    PERSISTENCE = "persistence"

    @classmethod
    def from_exception(cls, exc: DomainException) -> "ErrorKind":
        """Map a domain exception onto its taxonomy bucket."""
        # Order matters: RateLimitExceededError is an ExternalServiceError
        if isinstance(exc, RateLimitExceededError):
            return cls.RATE_LIMITED
        if isinstance(exc, ExternalServiceError):
            return cls.EXTERNAL
        if isinstance(exc, EntityNotFoundException):
            return cls.NOT_FOUND
        if isinstance(exc, DuplicateEntityException):
            return cls.CONFLICT
        if isinstance(exc, InvalidStateException):
            return cls.INVALID_STATE
        if isinstance(exc, PersistenceError):
            return cls.PERSISTENCE
        if isinstance(exc, ValidationException):
            return cls.INPUT
        return cls.EXTERNAL


# Hey future me - Result is for operations where failure is an expected,
# per-item outcome (one queue item's back-end refused, a cancel raced a
# completion). Callers branch on .ok instead of wrapping every call in
# try/except. Whole-operation failures still raise domain exceptions.
@dataclass(frozen=True)
class Result[T]:
    """Explicit success-or-error value."""

    value: T | None = None
    error_kind: ErrorKind | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        """True for success results."""
        return self.error_kind is None

    @classmethod
    def success(cls, value: T) -> "Result[T]":
        """Build a success result."""
        return cls(value=value)

    @classmethod
    def failure(cls, kind: ErrorKind, error: str) -> "Result[T]":
        """Build an error result."""
        return cls(error_kind=kind, error=error)

    @classmethod
    def from_exception(cls, exc: DomainException) -> "Result[T]":
        """Build an error result from a domain exception."""
        return cls(error_kind=ErrorKind.from_exception(exc), error=exc.message)


__all__ = ["ErrorKind", "Result"]
