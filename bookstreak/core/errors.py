"""Error normalization and handlers."""

import logging
from typing import Dict, Optional
from uuid import uuid4

from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.requests import Request

from bookstreak.core.logging import get_request_id, log_event


class AppError(Exception):
    code = "app_error"
    status_code = 500

    def __init__(self, message: str, *, code: Optional[str] = None, status_code: Optional[int] = None, request_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code
        self.request_id = request_id


class ValidationError(AppError, ValueError):
    code = "validation_error"
    status_code = 400


class NotFoundError(AppError, LookupError):
    code = "not_found"
    status_code = 404


class ConflictError(AppError):
    code = "conflict"
    status_code = 409


class InvalidStateError(AppError):
    """A stored row violates an invariant (e.g. a log dated after the as-of day).

    Reads report these as anomalies instead of raising.
    """
    code = "invalid_state"
    status_code = 500


# Freeze consumption failures. All are caller-correctable; retrying without
# changing the request fails identically.

class InsufficientFreezesError(ConflictError):
    code = "insufficient_freezes"


class AlreadyQualifyingError(ConflictError):
    code = "already_qualifying"


class DuplicateFreezeError(ConflictError):
    code = "duplicate_freeze"


class NotEligibleError(AppError):
    code = "not_eligible"
    status_code = 422


_HTTP_CODES = {401: "unauthorized", 403: "forbidden", 404: "not_found", 405: "method_not_allowed"}


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or get_request_id() or str(uuid4())


def _respond(
    request: Request,
    status_code: int,
    code: str,
    message: str,
    *,
    request_id: Optional[str] = None,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    """Build the error envelope every failure shares and log it once."""
    rid = request_id or _request_id(request)
    log_event(
        "error" if status_code >= 500 else "warning",
        "request.error",
        request_id=rid,
        error_code=code,
        extra={"status": status_code, "path": request.url.path, "error_message": message},
    )
    response = JSONResponse(
        status_code=status_code,
        content={"error": {"code": code, "message": message, "request_id": rid}, "detail": message},
        headers=headers,
    )
    response.headers["x-request-id"] = rid
    return response


async def app_error_handler(request: Request, exc: AppError):
    return _respond(request, exc.status_code, exc.code, exc.message, request_id=exc.request_id)


async def http_error_handler(request: Request, exc: StarletteHTTPException):
    code = _HTTP_CODES.get(exc.status_code, "http_error")
    return _respond(request, exc.status_code, code, str(exc.detail or "HTTP error"), headers=exc.headers)


async def request_validation_handler(request: Request, exc: RequestValidationError):
    """400 with the first failing field named, e.g. "date: Input should be a valid date"."""
    message = "Invalid request"
    errors = exc.errors()
    if errors:
        first = errors[0]
        field = ".".join(str(p) for p in first.get("loc", ()) if p not in ("body", "query", "path"))
        message = f"{field}: {first.get('msg')}" if field else str(first.get("msg"))
    return _respond(request, 400, "validation_error", message)


async def unhandled_exception_handler(request: Request, exc: Exception):
    logging.getLogger("bookstreak").error("unhandled.exception", exc_info=exc)
    return _respond(request, 500, "internal_error", "Unexpected error")
