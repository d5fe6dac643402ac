"""Custom exception handlers for the FastAPI application.

Converts the domain taxonomy into HTTP responses so no endpoint has to
try/except around controller calls.
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from playbridge.domain.exceptions import (
    ConfigurationError,
    DomainException,
    DuplicateEntityException,
    EntityNotFoundException,
    ExternalServiceError,
    InvalidStateException,
    PersistenceError,
    RateLimitExceededError,
    ValidationException,
)
from playbridge.domain.value_objects import ErrorKind

logger = logging.getLogger(__name__)

# Result.error_kind -> HTTP status, for endpoints returning per-item Results
ERROR_KIND_STATUS = {
    ErrorKind.INPUT: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.INVALID_STATE: status.HTTP_409_CONFLICT,
    ErrorKind.EXTERNAL: status.HTTP_502_BAD_GATEWAY,
    ErrorKind.RATE_LIMITED: status.HTTP_429_TOO_MANY_REQUESTS,
    ErrorKind.PERSISTENCE: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def _error_response(status_code: int, exc: DomainException) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.message, "error_type": type(exc).__name__},
    )


# Hey future me, handlers are looked up by the exception's MRO, so the most
# specific class wins: RateLimitExceededError gets 429 even though it is an
# ExternalServiceError, EmptyPlaylistError gets 422 via ValidationException.
def register_exception_handlers(app: FastAPI) -> None:
    """Register handlers for every domain exception family."""

    @app.exception_handler(ValidationException)
    async def validation_exception_handler(
        request: Request, exc: ValidationException
    ) -> JSONResponse:
        """Input errors: 422."""
        logger.warning("Validation error at %s: %s", request.url.path, exc.message)
        return _error_response(status.HTTP_422_UNPROCESSABLE_ENTITY, exc)

    @app.exception_handler(EntityNotFoundException)
    async def entity_not_found_exception_handler(
        request: Request, exc: EntityNotFoundException
    ) -> JSONResponse:
        """Unknown (or foreign) job or playlist: 404."""
        logger.info(
            "Entity not found at %s: %s %s", request.url.path, exc.entity_type, exc.entity_id
        )
        return _error_response(status.HTTP_404_NOT_FOUND, exc)

    @app.exception_handler(DuplicateEntityException)
    async def duplicate_entity_exception_handler(
        request: Request, exc: DuplicateEntityException
    ) -> JSONResponse:
        """Name collisions: 409."""
        logger.warning(
            "Duplicate entity at %s: %s %s", request.url.path, exc.entity_type, exc.entity_id
        )
        return _error_response(status.HTTP_409_CONFLICT, exc)

    @app.exception_handler(InvalidStateException)
    async def invalid_state_exception_handler(
        request: Request, exc: InvalidStateException
    ) -> JSONResponse:
        """Operation not allowed in the job's current state: 409."""
        logger.warning("Invalid state at %s: %s", request.url.path, exc.message)
        return _error_response(status.HTTP_409_CONFLICT, exc)

    @app.exception_handler(RateLimitExceededError)
    async def rate_limit_exception_handler(
        request: Request, exc: RateLimitExceededError
    ) -> JSONResponse:
        """Upstream rate limit: 429, with Retry-After when known."""
        logger.warning("Rate limited at %s: %s", request.url.path, exc.message)
        response = _error_response(status.HTTP_429_TOO_MANY_REQUESTS, exc)
        if exc.retry_after is not None:
            response.headers["Retry-After"] = str(int(exc.retry_after))
        return response

    @app.exception_handler(ExternalServiceError)
    async def external_service_exception_handler(
        request: Request, exc: ExternalServiceError
    ) -> JSONResponse:
        """Adapter or back-end failures: 502."""
        logger.error("External service error at %s: %s", request.url.path, exc.message)
        return _error_response(status.HTTP_502_BAD_GATEWAY, exc)

    @app.exception_handler(ConfigurationError)
    async def configuration_exception_handler(
        request: Request, exc: ConfigurationError
    ) -> JSONResponse:
        """Missing adapter or back-end configuration: 503."""
        logger.error("Configuration error at %s: %s", request.url.path, exc.message)
        return _error_response(status.HTTP_503_SERVICE_UNAVAILABLE, exc)

    @app.exception_handler(PersistenceError)
    async def persistence_exception_handler(
        request: Request, exc: PersistenceError
    ) -> JSONResponse:
        """Database failures: 500, job left in its last durable state."""
        logger.error("Persistence error at %s: %s", request.url.path, exc.message)
        return _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, exc)
