"""Exception handlers: the single translation point from errors to responses."""

from typing import Any, List, Optional
from uuid import uuid4

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from account_service.errors import ApiError, UnauthorizedError

logger = structlog.get_logger(__name__)

_STATUS_TO_CODE = {
    400: "validation_error",
    401: "unauthorized",
    403: "forbidden",
    404: "not_found",
    405: "method_not_allowed",
    409: "conflict",
    500: "internal_error",
    502: "upstream_error",
}


def _correlation_id(request: Request) -> str:
    return getattr(request.state, "correlation_id", None) or str(uuid4())


def error_response(
    request: Request,
    status_code: int,
    message: str,
    *,
    code: Optional[str] = None,
    errors: Optional[List[Any]] = None,
    headers: Optional[dict] = None,
) -> JSONResponse:
    """Build the JSON error envelope."""
    correlation_id = _correlation_id(request)
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "statusCode": status_code,
            "error": code or _STATUS_TO_CODE.get(status_code, "internal_error"),
            "message": message,
            "errors": errors or [],
            "correlation_id": correlation_id,
        },
        headers={"X-Correlation-Id": correlation_id, **(headers or {})},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Install handlers for domain, validation, HTTP and unexpected errors."""

    @app.exception_handler(ApiError)
    async def handle_api_error(request: Request, exc: ApiError) -> JSONResponse:
        log = logger.error if exc.status_code >= 500 else logger.info
        log(
            "request_failed",
            path=request.url.path,
            method=request.method,
            status_code=exc.status_code,
            error=exc.error_code,
            message=exc.message,
        )
        headers = (
            {"WWW-Authenticate": "Bearer"}
            if isinstance(exc, UnauthorizedError)
            else None
        )
        return error_response(
            request,
            exc.status_code,
            exc.message,
            code=exc.error_code,
            errors=exc.errors,
            headers=headers,
        )

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Report the first invalid field as a 400."""
        errors = exc.errors()
        if errors:
            first_error = errors[0]
            field = ".".join(str(loc) for loc in first_error.get("loc", ["unknown"]))
            message = f"Field '{field}': {first_error.get('msg', 'Validation failed')}"
        else:
            message = "Request validation failed"

        logger.warning("validation_error", path=request.url.path, detail=message)
        return error_response(
            request,
            400,
            message,
            code="validation_error",
            errors=[
                {"loc": list(e.get("loc", [])), "msg": e.get("msg")} for e in errors
            ],
        )

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        return error_response(
            request,
            exc.status_code,
            str(exc.detail),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(
            "unhandled_exception",
            path=request.url.path,
            method=request.method,
            error_type=type(exc).__name__,
        )
        return error_response(request, 500, "Internal server error")
