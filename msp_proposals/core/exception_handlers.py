"""
Error responses for the proposal API.

WHAT: Turns every failure (domain errors, request validation, routing
errors and crashes) into the same JSON envelope:
``{"error", "message", "status_code", "details", "request_id"}``.

WHY: The proposal editor shows gate reasons and approval refusals inline,
so it needs one shape to read regardless of where the error came from.
The request ID ties the response to the server log lines of the same edit.
"""

import logging
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from msp_proposals.core.exceptions import AppException
from msp_proposals.middleware.request_context import get_request_context


logger = logging.getLogger(__name__)


def _current_request_id() -> Optional[str]:
    ctx = get_request_context()
    return ctx.request_id if ctx else None


def _error_response(
    status_code: int,
    error: str,
    message: Any,
    details: Optional[dict] = None,
) -> JSONResponse:
    body = {
        "error": error,
        "message": message,
        "status_code": status_code,
        "details": details,
        "request_id": _current_request_id(),
    }
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body))


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """
    Render an AppException with its own status code and filtered context.

    Client errors are expected traffic (gate failures, refused approvals)
    and are logged at INFO; only 5xx is an error.
    """
    payload = exc.to_dict()
    level = logging.ERROR if exc.status_code >= 500 else logging.INFO
    logger.log(
        level,
        f"[{_current_request_id() or '-'}] {request.method} {request.url.path} -> "
        f"{exc.status_code} {payload['error']}: {exc.message}",
    )
    return _error_response(exc.status_code, payload["error"], payload["message"], payload["details"])


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """
    Report malformed request bodies as 400 ValidationError.

    Each pydantic error becomes ``{"field", "message", "type"}`` with the
    location joined by dots (``body.items.0.quantity``).
    """
    errors = [
        {
            "field": ".".join(str(part) for part in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]
    return _error_response(400, "ValidationError", "Request validation failed", {"errors": errors})


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    # Unknown routes and wrong methods are raised by Starlette before routing
    return _error_response(exc.status_code, "HTTPException", exc.detail)


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(
        f"[{_current_request_id() or '-'}] Unhandled error on {request.method} {request.url.path}",
        exc_info=exc,
    )
    return _error_response(500, "InternalServerError", "An unexpected error occurred")


def register_exception_handlers(app: FastAPI) -> None:
    """Attach all handlers above to the application."""
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
