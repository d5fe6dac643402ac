"""Domain exceptions.

Grouped by how callers are expected to react:

- Input errors (``ValidationException`` and the playlist parse family) are
  surfaced immediately; no job is created for them.
- ``DuplicateEntityException`` is a conflict the caller can resolve (rename,
  skip) and is never folded into a generic failure.
- ``ExternalServiceError`` and friends are raised at adapter boundaries only;
  the pipeline records them per song / per queue item.
- ``PersistenceError`` is fatal to the current operation.
"""

from typing import Any


class DomainException(Exception):
    """Base exception for all domain exceptions."""

    # Hey future me, message is kept as an attribute so handlers can use it
    # without parsing str(exc). Never raise this directly, pick a subclass.
    def __init__(self, message: str, *args: Any) -> None:
        super().__init__(message, *args)
        self.message = message


class EntityNotFoundException(DomainException):
    """Raised when an entity is not found."""

    def __init__(self, entity_type: str, entity_id: Any) -> None:
        super().__init__(f"{entity_type} with id {entity_id} not found")
        self.entity_type = entity_type
        self.entity_id = entity_id


class ValidationException(DomainException):
    """Raised when input or entity validation fails.

    HTTP Status: 422
    """

    pass


class PlaylistParseError(ValidationException):
    """Raised when playlist text cannot be parsed at all.

    ``warnings`` carries the per-line problems collected before giving up.
    """

    def __init__(self, message: str, warnings: list[str] | None = None) -> None:
        super().__init__(message)
        self.warnings = warnings or []


class EmptyPlaylistError(PlaylistParseError):
    """Raised when the input is empty or no song could be recovered from it."""

    def __init__(
        self,
        message: str = "Playlist contains no songs",
        warnings: list[str] | None = None,
    ) -> None:
        super().__init__(message, warnings)


class UnsupportedFormatError(ValidationException):
    """Raised when a playlist format is unknown or cannot be detected."""

    def __init__(self, format_name: str | None = None) -> None:
        if format_name:
            message = f"Unsupported playlist format: {format_name}"
        else:
            message = "Could not detect playlist format"
        super().__init__(message)
        self.format_name = format_name


class InvalidStateException(DomainException):
    """Raised when an entity is in an invalid state for the requested operation.

    Example: finalizing the review of an import job that was cancelled.

    HTTP Status: 409
    """

    pass


class DuplicateEntityException(DomainException):
    """Raised when trying to create a duplicate entity.

    HTTP Status: 409 (Conflict)
    """

    def __init__(self, entity_type: str, entity_id: Any) -> None:
        super().__init__(f"{entity_type} with id {entity_id} already exists")
        self.entity_type = entity_type
        self.entity_id = entity_id


class ExternalServiceError(DomainException):
    """External service (media server, download back-end) returned an error.

    HTTP Status: 502 (Bad Gateway)

    Example:
        raise ExternalServiceError("lidarr", "Artist lookup failed", status_code=503)
    """

    def __init__(
        self, service: str, message: str, status_code: int | None = None
    ) -> None:
        super().__init__(f"{service}: {message}")
        self.service = service
        self.status_code = status_code


class RateLimitExceededError(ExternalServiceError):
    """External service rate limit was exceeded.

    HTTP Status: 429
    """

    def __init__(
        self, service: str, retry_after: float | None = None
    ) -> None:
        message = "rate limit exceeded"
        if retry_after is not None:
            message += f" - retry after {retry_after:.0f}s"
        super().__init__(service, message, status_code=429)
        self.retry_after = retry_after


class AuthenticationError(ExternalServiceError):
    """Credentials for an external service were rejected or are missing.

    HTTP Status: 502 (the caller is authenticated, the upstream is not)
    """

    def __init__(self, service: str, message: str = "authentication failed") -> None:
        super().__init__(service, message, status_code=401)


class ConfigurationError(DomainException):
    """Application misconfiguration.

    HTTP Status: 503 (Service Unavailable)

    Example:
        raise ConfigurationError("Lidarr URL or API key not configured")
    """

    pass


class PersistenceError(DomainException):
    """Reading or writing job state failed.

    The job is left in its last durable state so a retry can resume.

    HTTP Status: 500
    """

    pass


__all__ = [
    "AuthenticationError",
    "ConfigurationError",
    "DomainException",
    "DuplicateEntityException",
    "EmptyPlaylistError",
    "EntityNotFoundException",
    "ExternalServiceError",
    "InvalidStateException",
    "PersistenceError",
    "PlaylistParseError",
    "RateLimitExceededError",
    "UnsupportedFormatError",
    "ValidationException",
]
