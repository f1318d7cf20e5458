import enum
import logging
import re
import traceback
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException as StarletteHTTPException

from settings import settings

logger = logging.getLogger(__name__)


class ErrorKind(str, enum.Enum):
    VALIDATION = "validation"
    AUTHENTICATION = "authentication"
    AUTHORIZATION = "authorization"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    RATE_LIMIT = "rate_limit"
    INTERNAL = "internal"


STATUS_CODES = {
    ErrorKind.VALIDATION: status.HTTP_400_BAD_REQUEST,
    ErrorKind.AUTHENTICATION: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.AUTHORIZATION: status.HTTP_403_FORBIDDEN,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.RATE_LIMIT: status.HTTP_429_TOO_MANY_REQUESTS,
    ErrorKind.INTERNAL: status.HTTP_500_INTERNAL_SERVER_ERROR,
}

GENERIC_MESSAGE = "Something went wrong!"


class AppError(Exception):
    """A failure that should reach the client as a JSON error envelope.

    There is one error type; ``kind`` decides the HTTP status. ``extra`` is
    merged into the response body (e.g. ``retryAfter`` for rate limits) and
    ``headers`` into the response headers.
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        headers: Optional[Dict[str, str]] = None,
        extra: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.headers = headers or {}
        self.extra = extra or {}

    @property
    def status_code(self) -> int:
        return STATUS_CODES[self.kind]

    @property
    def operational(self) -> bool:
        return self.kind is not ErrorKind.INTERNAL

    def __repr__(self):
        return f"AppError({self.kind.value!r}, {self.message!r})"


def not_found(resource: str = "Resource") -> AppError:
    return AppError(ErrorKind.NOT_FOUND, f"{resource} not found")


def validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    # Only the first violation is reported
    first = errors[0]
    message = first.get("msg") or "Invalid request"
    prefix = "Value error, "
    if message.startswith(prefix):
        message = message[len(prefix):]
    return message


_UNIQUE_PATTERNS = (
    re.compile(r"UNIQUE constraint failed: \w+\.(\w+)"),  # sqlite
    re.compile(r"Key \((\w+)\)=\(.*\) already exists"),  # postgresql
    re.compile(r"Duplicate entry .* for key '(?:\w+\.)?(?:ix_\w+_)?(\w+)'"),  # mysql
)


def duplicate_field(exc: IntegrityError) -> Optional[str]:
    text = str(exc.orig) if exc.orig is not None else str(exc)
    for pattern in _UNIQUE_PATTERNS:
        match = pattern.search(text)
        if match:
            return match.group(1)
    return None


def translate(exc: Exception) -> AppError:
    """Map any exception raised while serving a request to an AppError."""
    if isinstance(exc, AppError):
        return exc
    if isinstance(exc, RequestValidationError):
        errors = exc.errors()
        if errors and errors[0].get("loc", ("",))[0] == "path":
            return not_found()
        return AppError(ErrorKind.VALIDATION, validation_message(exc))
    if isinstance(exc, IntegrityError):
        field = duplicate_field(exc)
        if field:
            return AppError(ErrorKind.CONFLICT, f"{field} already exists")
        return AppError(ErrorKind.CONFLICT, "Resource conflict")
    if isinstance(exc, StarletteHTTPException):
        if exc.status_code == status.HTTP_404_NOT_FOUND:
            return not_found("Route")
        if exc.status_code == status.HTTP_401_UNAUTHORIZED:
            return AppError(ErrorKind.AUTHENTICATION, "Invalid or missing token")
        if exc.status_code == status.HTTP_403_FORBIDDEN:
            return AppError(ErrorKind.AUTHORIZATION, str(exc.detail))
    return AppError(ErrorKind.INTERNAL, GENERIC_MESSAGE)


def error_body(error: AppError, exc: Optional[Exception] = None) -> Dict[str, Any]:
    body = {
        "status": "error" if error.status_code >= 500 or error.kind is ErrorKind.RATE_LIMIT else "fail",
        "message": error.message,
    }
    body.update(error.extra)
    if exc is not None and not error.operational and not settings.is_production:
        body["error"] = repr(exc)
        body["stack"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return body


def log_error(request: Request, error: AppError, exc: Exception):
    client = request.client.host if request.client else "unknown"
    user_id = getattr(request.state, "user_id", None) or "anonymous"
    if error.operational:
        logger.info(
            "%s %s -> %s %s (ip=%s user=%s)",
            request.method, request.url.path, error.status_code, error.message, client, user_id,
        )
    else:
        logger.error(
            "%s %s -> unhandled error (ip=%s user=%s)",
            request.method, request.url.path, client, user_id,
            exc_info=(type(exc), exc, exc.__traceback__),
        )


async def handle_exception(request: Request, exc: Exception) -> JSONResponse:
    error = translate(exc)
    log_error(request, error, exc)
    return JSONResponse(
        status_code=error.status_code,
        content=error_body(error, exc),
        headers=error.headers or None,
    )


async def handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code in (status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN, status.HTTP_404_NOT_FOUND):
        return await handle_exception(request, exc)
    # 405 and friends keep the framework's status and detail
    return JSONResponse(
        status_code=exc.status_code,
        content={"status": "fail" if exc.status_code < 500 else "error", "message": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


def install_error_handlers(app: FastAPI):
    app.add_exception_handler(AppError, handle_exception)
    app.add_exception_handler(RequestValidationError, handle_exception)
    app.add_exception_handler(IntegrityError, handle_exception)
    app.add_exception_handler(StarletteHTTPException, handle_http_exception)
    app.add_exception_handler(Exception, handle_exception)
