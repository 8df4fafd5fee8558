"""Error taxonomy and normalized error handlers."""

import logging
from typing import Optional
from uuid import uuid4

from fastapi import HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.requests import Request

from sheetshare.core.logging import get_request_id


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


class InvalidArgumentError(AppError, ValueError):
    """Malformed role, empty event set, malformed identifier. Never retried."""
    code = "invalid_argument"
    status_code = 400


class NotFoundError(AppError, LookupError):
    code = "not_found"
    status_code = 404


class DanglingReferenceError(NotFoundError):
    """The referenced upload no longer exists."""


class ExpiredError(AppError):
    code = "expired"
    status_code = 410


class ConflictError(AppError):
    code = "conflict"
    status_code = 409


class InternalError(AppError):
    """Storage or unexpected failure; the message never carries details."""
    code = "internal_error"
    status_code = 500


class StoreError(Exception):
    """Raised by document store implementations on backend failure."""


def _extract_request_id(request: Request, fallback: Optional[str] = None) -> str:
    return (
        getattr(request.state, "request_id", None)
        or get_request_id()
        or fallback
        or str(uuid4())
    )


def _error_payload(code: str, message: str, request_id: str) -> dict:
    return {
        "error": {"code": code, "message": message, "request_id": request_id},
        "detail": message,
    }


def _json_error(status_code: int, code: str, message: str, rid: str) -> JSONResponse:
    response = JSONResponse(status_code=status_code, content=_error_payload(code, message, rid))
    response.headers["x-request-id"] = rid
    return response


async def app_error_handler(request: Request, exc: AppError):
    rid = exc.request_id or _extract_request_id(request)
    logger = logging.getLogger("sheetshare")
    log_level = logging.ERROR if exc.status_code >= 500 else logging.WARNING
    logger.log(
        log_level,
        "app.error",
        extra={"request_id": rid, "error_code": exc.code, "error_message": exc.message, "status": exc.status_code},
    )
    return _json_error(exc.status_code, exc.code, exc.message, rid)


async def store_error_handler(request: Request, exc: StoreError):
    rid = _extract_request_id(request)
    logger = logging.getLogger("sheetshare")
    logger.error("store.error", exc_info=exc, extra={"request_id": rid, "error_code": InternalError.code})
    return _json_error(InternalError.status_code, InternalError.code, "Unexpected error", rid)


async def http_error_handler(request: Request, exc: HTTPException):
    rid = _extract_request_id(request)
    code = "not_found" if exc.status_code == 404 else "http_error"
    message = exc.detail if exc.detail else "HTTP error"
    logger = logging.getLogger("sheetshare")
    logger.warning("http.error", extra={"request_id": rid, "error_code": code, "status": exc.status_code})
    return _json_error(exc.status_code, code, message, rid)


async def request_validation_handler(request: Request, exc: RequestValidationError):
    rid = _extract_request_id(request)
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = f"{location}: {first.get('msg', 'invalid request')}" if location else first.get("msg", "invalid request")
    logging.getLogger("sheetshare").warning("request.invalid", extra={"request_id": rid, "error_code": "invalid_argument"})
    return _json_error(400, "invalid_argument", message, rid)


async def unhandled_exception_handler(request: Request, exc: Exception):
    rid = _extract_request_id(request)
    logger = logging.getLogger("sheetshare")
    logger.error("unhandled.exception", exc_info=True, extra={"request_id": rid, "error_code": InternalError.code})
    return _json_error(InternalError.status_code, InternalError.code, "Unexpected error", rid)
