"""Error kinds and the centralized handlers that turn them into the error envelope.

Every non-2xx response has the shape
``{"error": kind, "message": text, "timestamp": iso8601, "details"?: [...]}``.
"""

import logging
from datetime import datetime, timezone
from http import HTTPStatus
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import Settings

logger = logging.getLogger(__name__)


class ApiError(Exception):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    kind = "Internal Server Error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(ApiError):
    status_code = status.HTTP_404_NOT_FOUND
    kind = "Not Found"


class BadRequestError(ApiError):
    status_code = status.HTTP_400_BAD_REQUEST
    kind = "Bad Request"


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def error_response(
    status_code: int,
    error: str,
    message: str,
    details: Optional[List[Dict[str, Any]]] = None,
) -> JSONResponse:
    body: Dict[str, Any] = {"error": error, "message": message, "timestamp": utc_timestamp()}
    if details is not None:
        body["details"] = details
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body))


def validation_details(exc: RequestValidationError) -> List[Dict[str, Any]]:
    details = []
    for err in exc.errors():
        # drop the "body"/"query"/"path" prefix
        loc = [str(part) for part in err.get("loc", ())[1:]]
        detail: Dict[str, Any] = {
            "field": ".".join(loc) or str(err.get("loc", ("body",))[0]),
            "message": err.get("msg", "Invalid value"),
        }
        if err.get("type") != "missing":
            detail["value"] = err.get("input")
        details.append(detail)
    return details


def register_error_handlers(app: FastAPI, settings: Settings) -> None:
    def log_fault(request: Request, exc: Exception) -> None:
        logger.error(
            "%s %s failed: %s",
            request.method,
            request.url.path,
            exc,
            exc_info=exc if not settings.is_production else None,
        )

    @app.exception_handler(ApiError)
    async def api_error_handler(request: Request, exc: ApiError):
        return error_response(exc.status_code, exc.kind, exc.message)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        if any(err.get("type") == "json_invalid" for err in exc.errors()):
            return error_response(status.HTTP_400_BAD_REQUEST, "Bad Request", "Invalid JSON in request body")
        return error_response(
            status.HTTP_400_BAD_REQUEST,
            "Validation Error",
            "Request validation failed",
            validation_details(exc),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        # a known path with the wrong method is as unmatched as an unknown path
        if exc.status_code in (status.HTTP_404_NOT_FOUND, status.HTTP_405_METHOD_NOT_ALLOWED):
            return error_response(
                status.HTTP_404_NOT_FOUND,
                "Not Found",
                f"Route {request.method} {request.url.path} not found",
            )
        phrase = HTTPStatus(exc.status_code).phrase
        message = exc.detail if isinstance(exc.detail, str) else phrase
        response = error_response(exc.status_code, phrase, message)
        if exc.headers:
            response.headers.update(exc.headers)
        return response

    @app.exception_handler(SQLAlchemyError)
    async def database_error_handler(request: Request, exc: SQLAlchemyError):
        log_fault(request, exc)
        message = str(exc) if settings.is_development else "An internal database error occurred"
        return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Database Error", message)

    # Must be the first middleware added (innermost), so the 500 envelope still
    # passes through CORS and the security headers. Never re-raises.
    @app.middleware("http")
    async def unexpected_error_handler(request: Request, call_next):
        try:
            return await call_next(request)
        except Exception as exc:
            log_fault(request, exc)
            message = str(exc) if settings.is_development else "An unexpected error occurred"
            return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal Server Error", message)
