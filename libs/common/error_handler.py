"""
Exception handlers shared by service apps.

Every error response carries ``{"error": kind, "detail": ...}``. Domain
errors expose ``status_code`` and ``to_dict()`` and are rendered as-is.
Framework HTTP and validation errors are mapped onto the same shape.
Anything else becomes a generic 500 carrying the request id so the failure
can be found in the logs.
"""

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from libs.common.logging import get_logger, get_request_id

logger = get_logger(__name__)

HTTP_ERROR_KINDS = {
    401: "unauthorized",
    403: "forbidden",
    404: "not_found",
    405: "method_not_allowed",
}


def add_exception_handlers(app: FastAPI, *domain_errors: type[Exception]) -> None:
    """Register JSON handlers for the given domain error types and for crashes."""

    async def domain_error_handler(request: Request, exc: Exception) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    async def http_error_handler(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": HTTP_ERROR_KINDS.get(exc.status_code, "http_error"),
                "detail": exc.detail,
            },
            headers=getattr(exc, "headers", None),
        )

    async def validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=422,
            content={
                "error": "validation_error",
                "detail": jsonable_encoder(exc.errors()),
            },
        )

    async def unhandled_error_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        logger.exception(
            "Unhandled error on %s %s", request.method, request.url.path
        )
        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_error",
                "detail": "Internal server error",
                "request_id": get_request_id(),
            },
        )

    for error_type in domain_errors:
        app.add_exception_handler(error_type, domain_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
