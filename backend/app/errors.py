"""Exception handlers: every error leaves the API as ``{"message", "code"}``."""

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from gigmarket.errors import (
    DuplicateApplicationError,
    DuplicateReviewError,
    IncompleteTasksError,
    InvalidRequestError,
    InvalidTransitionError,
    JobNotOpenError,
    MarketplaceError,
    NotFoundError,
    PaymentGatewayError,
    PayoutAccountRequiredError,
    UnauthorizedError,
)
from gigmarket.types import VersionConflictError

from .logging_config import get_logger

logger = get_logger("errors")

# Checked in order; the first matching base class wins.
ERROR_STATUS_CODES = (
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (UnauthorizedError, status.HTTP_403_FORBIDDEN),
    (InvalidTransitionError, status.HTTP_409_CONFLICT),
    (JobNotOpenError, status.HTTP_409_CONFLICT),
    (DuplicateApplicationError, status.HTTP_409_CONFLICT),
    (DuplicateReviewError, status.HTTP_409_CONFLICT),
    (IncompleteTasksError, status.HTTP_400_BAD_REQUEST),
    (PayoutAccountRequiredError, status.HTTP_400_BAD_REQUEST),
    (InvalidRequestError, status.HTTP_400_BAD_REQUEST),
    (PaymentGatewayError, status.HTTP_502_BAD_GATEWAY),
)

HTTP_ERROR_CODES = {
    status.HTTP_401_UNAUTHORIZED: "unauthenticated",
    status.HTTP_403_FORBIDDEN: "unauthorized",
    status.HTTP_404_NOT_FOUND: "not_found",
    status.HTTP_405_METHOD_NOT_ALLOWED: "method_not_allowed",
    status.HTTP_429_TOO_MANY_REQUESTS: "rate_limited",
}


def status_for(exc: MarketplaceError) -> int:
    for error_type, status_code in ERROR_STATUS_CODES:
        if isinstance(exc, error_type):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def error_body(message: str, code: str) -> dict:
    return {"message": message, "code": code}


async def marketplace_error_handler(request: Request, exc: MarketplaceError) -> JSONResponse:
    status_code = status_for(exc)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.code}: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected: {exc.code}: {exc.message}")
    return JSONResponse(status_code=status_code, content=error_body(exc.message, exc.code))


async def version_conflict_handler(request: Request, exc: VersionConflictError) -> JSONResponse:
    logger.warning(f"{request.method} {request.url.path} lost a concurrent update: {exc}")
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content=error_body("Record was modified by another request. Please refresh and try again.", "version_conflict"),
    )


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    code = HTTP_ERROR_CODES.get(exc.status_code, "http_error")
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(str(exc.detail), code),
        headers=getattr(exc, "headers", None),
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    problems = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        problems.append(f"{location}: {error.get('msg')}" if location else error.get("msg", ""))
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=error_body("; ".join(problems) or "Invalid request", "validation_error"),
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"{request.method} {request.url.path} raised an unhandled error")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body("Internal server error", "internal_error"),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(MarketplaceError, marketplace_error_handler)
    app.add_exception_handler(VersionConflictError, version_conflict_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
