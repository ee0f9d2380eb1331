"""Typed API errors and the single point that turns failures into responses.

Every failure leaving the service has the same JSON body::

    {"success": false, "statusCode": 404, "message": "...", "data": null,
     "errors": [...], "stack": "..."}

``stack`` is only included outside production.
"""
from __future__ import annotations

import logging
import re
import traceback
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from pymongo.errors import DuplicateKeyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from .database import InvalidIdentifierError

logger = logging.getLogger("movie_api.errors")

GENERIC_MESSAGE = "Something went wrong"
_DUPLICATE_VALUE_PATTERN = re.compile(r"dup key: \{\s*[^:]+:\s*(\"(?:[^\"\\]|\\.)*\"|'[^']*'|[^ }]+)")


class APIError(Exception):
    """Base class for failures that already carry a status code and message."""

    status_code: int = 500

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        errors: Optional[Sequence[Dict[str, Any]]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.errors: List[Dict[str, Any]] = list(errors or [])
        self.headers = headers


class BadRequestError(APIError):
    status_code = 400


class UnauthorizedError(APIError):
    status_code = 401

    def __init__(self, message: str = "Not authorized to access this route", **kwargs: Any) -> None:
        kwargs.setdefault("headers", {"WWW-Authenticate": "Bearer"})
        super().__init__(message, **kwargs)


class ForbiddenError(APIError):
    status_code = 403


class NotFoundError(APIError):
    status_code = 404


class ConflictError(APIError):
    # Duplicates are reported as 400 on the wire, like other input problems.
    status_code = 400


class TooManyRequestsError(APIError):
    status_code = 429


class RequestTimeoutError(APIError):
    status_code = 504


class InternalError(APIError):
    status_code = 500


@dataclass
class NormalizedError:
    status_code: int
    message: str
    errors: List[Dict[str, Any]] = field(default_factory=list)
    stack: Optional[str] = None
    headers: Optional[Dict[str, str]] = None

    def to_body(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "success": False,
            "statusCode": self.status_code,
            "message": self.message,
            "data": None,
            "errors": self.errors,
        }
        if self.stack is not None:
            body["stack"] = self.stack
        return body


def _field_name(loc: Sequence[Any]) -> str:
    parts = [str(part) for part in loc if part not in ("body", "query", "path")]
    return ".".join(parts) or "body"


def describe_validation_errors(errors: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Reduce pydantic error entries to ``{"field", "message"}`` pairs."""

    return [
        {"field": _field_name(error.get("loc", ())), "message": str(error.get("msg", "Invalid value"))}
        for error in errors
    ]


def _duplicate_value(exc: DuplicateKeyError) -> Optional[str]:
    details = exc.details or {}
    key_value = details.get("keyValue")
    if isinstance(key_value, dict) and key_value:
        value = next(iter(key_value.values()))
        return f'"{value}"'
    match = _DUPLICATE_VALUE_PATTERN.search(str(details.get("errmsg") or exc))
    if match:
        return match.group(1)
    return None


def _format_trace(exc: BaseException) -> str:
    return "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))


def normalize_error(exc: BaseException, *, expose_trace: bool) -> NormalizedError:
    """Map any failure to a :class:`NormalizedError`; the first matching rule wins."""

    if isinstance(exc, APIError):
        normalized = NormalizedError(
            status_code=exc.status_code or 500,
            message=exc.message or GENERIC_MESSAGE,
            errors=list(exc.errors),
            headers=exc.headers,
        )
    elif isinstance(exc, (RequestValidationError, ValidationError)):
        errors = describe_validation_errors(exc.errors())
        joined = ". ".join(f"{item['field']}: {item['message']}" for item in errors)
        normalized = NormalizedError(status_code=400, message=f"Invalid input data. {joined}", errors=errors)
    elif isinstance(exc, InvalidIdentifierError):
        normalized = NormalizedError(
            status_code=400,
            message=f"Invalid {exc.field}: {exc.value}.",
            errors=[{"field": exc.field, "message": "Invalid identifier"}],
        )
    elif isinstance(exc, DuplicateKeyError):
        value = _duplicate_value(exc)
        if value:
            message = f"Duplicate field value: {value}. Please use another value!"
        else:
            message = "Duplicate field value. Please use another value!"
        normalized = NormalizedError(status_code=400, message=message)
    else:
        status_code = getattr(exc, "status_code", None)
        if not isinstance(status_code, int) or not status_code:
            status_code = 500
        detail = getattr(exc, "detail", None)
        message = detail if isinstance(detail, str) and detail else str(exc)
        normalized = NormalizedError(
            status_code=status_code,
            message=message or GENERIC_MESSAGE,
            headers=getattr(exc, "headers", None),
        )

    if expose_trace:
        normalized.stack = _format_trace(exc)
    return normalized


def error_response(exc: BaseException, *, expose_trace: bool) -> JSONResponse:
    normalized = normalize_error(exc, expose_trace=expose_trace)
    if normalized.status_code >= 500:
        logger.error("Request failed with %s: %s", normalized.status_code, normalized.message, exc_info=exc)
    return JSONResponse(
        status_code=normalized.status_code,
        content=normalized.to_body(),
        headers=normalized.headers,
    )


def install_error_handlers(app: FastAPI, *, expose_trace: bool) -> None:
    """Route the known failure types through :func:`error_response`.

    Anything else is answered by :class:`movie_api.middleware.UnhandledErrorMiddleware`.
    """

    async def handle_error(_: Request, exc: Exception) -> JSONResponse:
        return error_response(exc, expose_trace=expose_trace)

    async def handle_http_exception(_: Request, exc: StarletteHTTPException) -> JSONResponse:
        if exc.status_code == 404 and exc.detail == "Not Found":
            exc = NotFoundError("Route not found")
        return error_response(exc, expose_trace=expose_trace)

    for exc_type in (
        APIError,
        RequestValidationError,
        ValidationError,
        InvalidIdentifierError,
        DuplicateKeyError,
    ):
        app.add_exception_handler(exc_type, handle_error)
    app.add_exception_handler(StarletteHTTPException, handle_http_exception)


__all__ = [
    "APIError",
    "BadRequestError",
    "ConflictError",
    "ForbiddenError",
    "InternalError",
    "NormalizedError",
    "NotFoundError",
    "RequestTimeoutError",
    "TooManyRequestsError",
    "UnauthorizedError",
    "describe_validation_errors",
    "error_response",
    "install_error_handlers",
    "normalize_error",
]
