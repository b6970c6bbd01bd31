"""Domain errors and their HTTP rendering."""

from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from .logging import get_logger

logger = get_logger(__name__)


class TimeTrackError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code = status.HTTP_400_BAD_REQUEST
    code = "BAD_REQUEST"

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        return {"error": {"code": self.code, "message": self.message, "details": self.details}}


class ValidationError(TimeTrackError):
    """Malformed or inconsistent input, e.g. an end time before the start time."""

    code = "VALIDATION_ERROR"


class NotFoundError(TimeTrackError):
    """Resource is missing or owned by someone else; callers cannot tell which."""

    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, resource: str) -> None:
        super().__init__(
            f"{resource} not found",
            code=f"{resource.upper().replace(' ', '_')}_NOT_FOUND",
        )
        self.resource = resource


class ConflictError(TimeTrackError):
    code = "TIMER_ALREADY_RUNNING"


class AlreadyExistsError(TimeTrackError):
    status_code = status.HTTP_409_CONFLICT
    code = "ALREADY_EXISTS"


class NotRunningError(TimeTrackError):
    code = "TIMER_NOT_RUNNING"


class AuthenticationError(TimeTrackError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "AUTH_INVALID_TOKEN"


class ConfigurationError(TimeTrackError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "CONFIGURATION_ERROR"


async def _handle_timetrack_error(request: Request, exc: TimeTrackError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    headers = None
    if isinstance(exc, AuthenticationError):
        headers = {"WWW-Authenticate": "Bearer"}
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(TimeTrackError, _handle_timetrack_error)
