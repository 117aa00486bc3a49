"""
Exception handlers turning service errors into `{"error": {...}}` responses.
"""

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from structlog import get_logger

from studydino.core.errors import (
    Conflict,
    NotFound,
    StudyDinoError,
    Transient,
    Unauthorized,
    Validation,
)
from studydino.core.wire import WireModel


class ErrorBody(WireModel):
    kind: str
    message: str


class ErrorResponse(WireModel):
    error: ErrorBody


def error_response(
    status_code: int, kind: str, message: str, headers: dict | None = None
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=ErrorBody(kind=kind, message=message)).model_dump(
            mode="json", by_alias=True
        ),
        headers=headers,
    )


async def unauthorized_handler(request: Request, exc: Unauthorized) -> JSONResponse:
    await get_logger().ainfo(
        "api.unauthorized", path=request.url.path, error=exc.message
    )
    return error_response(
        status_code=exc.status_code,
        kind=exc.kind,
        message=exc.message,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def transient_handler(request: Request, exc: Transient) -> JSONResponse:
    await get_logger().awarning(
        "api.transient_error",
        path=request.url.path,
        error_type=type(exc).__name__,
        error=exc.message,
    )
    return error_response(
        status_code=exc.status_code, kind=exc.kind, message=exc.message
    )


async def service_error_handler(request: Request, exc: StudyDinoError) -> JSONResponse:
    await get_logger().ainfo(
        "api.request_failed",
        path=request.url.path,
        kind=exc.kind,
        error_type=type(exc).__name__,
        error=exc.message,
    )
    return error_response(
        status_code=exc.status_code, kind=exc.kind, message=exc.message
    )


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = exc.errors()
    await get_logger().ainfo(
        "api.invalid_request", path=request.url.path, number_of_errors=len(errors)
    )

    if errors:
        first = errors[0]
        location = ".".join(str(x) for x in first.get("loc", ()) if x != "body")
        message = f"{location}: {first.get('msg')}" if location else first.get("msg")
    else:
        message = "Invalid request"

    return error_response(
        status_code=status.HTTP_400_BAD_REQUEST,
        kind=Validation.kind,
        message=message,
    )


def add_exception_handlers(app: FastAPI) -> FastAPI:
    """
    Install one handler per error base class, plus request body validation
    (reported as a `validation` error with status 400).
    """
    app.add_exception_handler(Unauthorized, unauthorized_handler)
    app.add_exception_handler(Conflict, service_error_handler)
    app.add_exception_handler(NotFound, service_error_handler)
    app.add_exception_handler(Validation, service_error_handler)
    app.add_exception_handler(Transient, transient_handler)
    app.add_exception_handler(StudyDinoError, service_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    return app
