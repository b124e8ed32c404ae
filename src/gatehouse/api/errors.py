"""
Exception handlers.

Translates every failure into the uniform error body
``{timestamp, status, error, message, path, errors?}``.
"""

from datetime import datetime, timezone
from http import HTTPStatus
from typing import Any

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from gatehouse.auth.schemas import ErrorResponse, FieldErrorItem
from gatehouse.errors import GatehouseError, ValidationError

logger = structlog.get_logger()

_BEARER_CHALLENGE = {"WWW-Authenticate": "Bearer"}


def error_response(
    request: Request,
    status_code: int,
    message: str,
    errors: list[FieldErrorItem] | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    """Build the uniform error body."""
    body = ErrorResponse(
        timestamp=datetime.now(timezone.utc),
        status=status_code,
        error=HTTPStatus(status_code).phrase,
        message=message,
        path=request.url.path,
        errors=errors,
    )
    if status_code == 401:
        headers = {**_BEARER_CHALLENGE, **(headers or {})}
    content = body.model_dump(mode="json", by_alias=True, exclude_none=True)
    if errors:
        # Items keep rejectedValue even when it is null
        content["errors"] = [e.model_dump(mode="json", by_alias=True) for e in errors]
    return JSONResponse(
        status_code=status_code,
        content=content,
        headers=headers,
    )


async def handle_gatehouse_error(request: Request, exc: GatehouseError) -> JSONResponse:
    errors = None
    if isinstance(exc, ValidationError):
        errors = [
            FieldErrorItem(field=v.field, message=v.message, rejected_value=v.rejected_value)
            for v in exc.violations
        ]
    if exc.status_code >= 500:
        logger.error("Request failed", path=request.url.path, error=exc.message)
    return error_response(request, exc.status_code, exc.message, errors)


async def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = []
    malformed = False
    for err in exc.errors():
        if err.get("type") == "json_invalid":
            malformed = True
            continue
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path")]
        errors.append(
            FieldErrorItem(
                field=".".join(loc) or "body",
                message=err.get("msg", "Invalid value"),
                rejected_value=_safe_rejected(loc, err.get("input")),
            )
        )

    if malformed:
        return error_response(request, 400, "Malformed JSON request or invalid request body")
    return error_response(request, 400, "Validation failed for one or more fields", errors)


async def handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    message = exc.detail if isinstance(exc.detail, str) else HTTPStatus(exc.status_code).phrase
    return error_response(request, exc.status_code, message, headers=getattr(exc, "headers", None))


async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error", path=request.url.path, method=request.method)
    return error_response(request, 500, "An unexpected error occurred")


def _safe_rejected(loc: list[str], value: Any) -> Any:
    # Request bodies may carry passwords; never echo those or whole objects
    if any("password" in part.lower() for part in loc):
        return None
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    return None


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(GatehouseError, handle_gatehouse_error)
    app.add_exception_handler(RequestValidationError, handle_request_validation)
    app.add_exception_handler(StarletteHTTPException, handle_http_exception)
    app.add_exception_handler(Exception, handle_unexpected)
