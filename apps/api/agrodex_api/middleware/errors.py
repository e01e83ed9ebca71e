"""Exception handlers rendering structured error bodies."""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from agrodex_api.errors import AgroDexError
from agrodex_api.middleware.correlation import CORRELATION_HEADER, get_correlation_id

logger = logging.getLogger(__name__)


def _error_response(request: Request, status_code: int, body: dict) -> JSONResponse:
    correlation_id = get_correlation_id(request)
    return JSONResponse(
        status_code=status_code,
        content={"id": correlation_id, **body},
        headers={CORRELATION_HEADER: correlation_id},
    )


def _describe_validation_error(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid value")
    return f"{location}: {message}" if location else message


def register_exception_handlers(app: FastAPI) -> None:
    """Install handlers for pipeline errors, validation errors and unexpected failures."""

    @app.exception_handler(AgroDexError)
    async def handle_agrodex_error(request: Request, exc: AgroDexError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed at {exc.stage}: {exc.message}")
        else:
            logger.info(f"{request.method} {request.url.path} rejected at {exc.stage}: {exc.message}")
        return _error_response(request, exc.status_code, exc.to_body())

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation_error(request: Request, exc: RequestValidationError):
        return _error_response(
            request,
            status.HTTP_400_BAD_REQUEST,
            {
                "stage": "validation",
                "error": _describe_validation_error(exc),
                "details": [
                    {"loc": list(error.get("loc", ())), "msg": error.get("msg")}
                    for error in exc.errors()
                ],
            },
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        return _error_response(
            request,
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            {"stage": "exception", "error": "Internal server error", "details": type(exc).__name__},
        )
