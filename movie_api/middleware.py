"""ASGI middleware: access logging, security headers, rate limiting, timeouts and unhandled errors."""
from __future__ import annotations

import logging
import time
from typing import Iterable, Tuple

import anyio
from starlette.datastructures import Headers, MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from .errors import RequestTimeoutError, TooManyRequestsError, error_response
from .rate_limit import FixedWindowRateLimiter

access_logger = logging.getLogger("movie_api.requests")
logger = logging.getLogger("movie_api.middleware")


def client_address(scope: Scope) -> str:
    # Forwarded headers are applied upstream by ProxyHeadersMiddleware for trusted peers only.
    client = scope.get("client")
    if client:
        return str(client[0])
    return "unknown"


class AccessLogMiddleware:
    """Log ``METHOD path status length - N ms`` for every HTTP request."""

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        started = time.perf_counter()
        status_code = 500
        content_length = "-"

        async def send_wrapper(message: Message) -> None:
            nonlocal status_code, content_length
            if message["type"] == "http.response.start":
                status_code = message["status"]
                content_length = Headers(raw=message.get("headers", [])).get("content-length", "-")
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            elapsed_ms = (time.perf_counter() - started) * 1000
            access_logger.info(
                "%s %s %s %s - %.1f ms",
                scope["method"],
                scope["path"],
                status_code,
                content_length,
                elapsed_ms,
            )


class SecurityHeadersMiddleware:
    """Attach a fixed set of hardening headers to every response."""

    _BASE_HEADERS: Tuple[Tuple[str, str], ...] = (
        ("X-Content-Type-Options", "nosniff"),
        ("X-Frame-Options", "SAMEORIGIN"),
        ("Referrer-Policy", "no-referrer"),
        ("Cross-Origin-Resource-Policy", "same-origin"),
        ("X-DNS-Prefetch-Control", "off"),
    )

    def __init__(self, app: ASGIApp, *, hsts: bool = False) -> None:
        self.app = app
        headers = list(self._BASE_HEADERS)
        if hsts:
            headers.append(("Strict-Transport-Security", "max-age=15552000; includeSubDomains"))
        self.headers: Iterable[Tuple[str, str]] = tuple(headers)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        async def send_wrapper(message: Message) -> None:
            if message["type"] == "http.response.start":
                response_headers = MutableHeaders(scope=message)
                for name, value in self.headers:
                    response_headers.setdefault(name, value)
            await send(message)

        await self.app(scope, receive, send_wrapper)


class RateLimitMiddleware:
    """Reject clients that exceed the configured request budget with 429."""

    EXCLUDED_PATHS = frozenset({"/health"})

    def __init__(self, app: ASGIApp, *, limiter: FixedWindowRateLimiter, expose_trace: bool = False) -> None:
        self.app = app
        self.limiter = limiter
        self.expose_trace = expose_trace

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or scope["path"] in self.EXCLUDED_PATHS:
            await self.app(scope, receive, send)
            return

        key = client_address(scope)
        decision = self.limiter.hit(key)
        rate_headers = {
            "RateLimit-Limit": str(decision.limit),
            "RateLimit-Remaining": str(decision.remaining),
            "RateLimit-Reset": str(decision.reset_after),
        }

        if not decision.allowed:
            logger.warning("Rate limit exceeded for %s on %s", key, scope["path"])
            exc = TooManyRequestsError(
                "Too many requests, please try again later.",
                headers={**rate_headers, "Retry-After": str(max(1, decision.reset_after))},
            )
            response = error_response(exc, expose_trace=self.expose_trace)
            await response(scope, receive, send)
            return

        async def send_wrapper(message: Message) -> None:
            if message["type"] == "http.response.start":
                response_headers = MutableHeaders(scope=message)
                for name, value in rate_headers.items():
                    response_headers[name] = value
            await send(message)

        await self.app(scope, receive, send_wrapper)


class RequestTimeoutMiddleware:
    """Cancel requests that have not started responding within ``timeout`` seconds."""

    def __init__(self, app: ASGIApp, *, timeout: float) -> None:
        self.app = app
        self.timeout = timeout

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or not self.timeout:
            await self.app(scope, receive, send)
            return

        response_started = False

        async def send_wrapper(message: Message) -> None:
            nonlocal response_started
            if message["type"] == "http.response.start":
                response_started = True
            await send(message)

        with anyio.move_on_after(self.timeout) as cancel_scope:
            await self.app(scope, receive, send_wrapper)

        if cancel_scope.cancelled_caught:
            logger.warning("%s %s timed out after %ss", scope["method"], scope["path"], self.timeout)
            if not response_started:
                response = error_response(RequestTimeoutError("Request timed out"), expose_trace=False)
                await response(scope, receive, send)


class UnhandledErrorMiddleware:
    """Answer unexpected exceptions with the error envelope.

    Sits inside the header-adding middleware so 500 responses carry the same
    security, CORS and rate-limit headers as any other response.
    """

    def __init__(self, app: ASGIApp, *, expose_trace: bool = False) -> None:
        self.app = app
        self.expose_trace = expose_trace

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        response_started = False

        async def send_wrapper(message: Message) -> None:
            nonlocal response_started
            if message["type"] == "http.response.start":
                response_started = True
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        except Exception as exc:
            if response_started:
                raise
            response = error_response(exc, expose_trace=self.expose_trace)
            await response(scope, receive, send)


__all__ = [
    "AccessLogMiddleware",
    "RateLimitMiddleware",
    "RequestTimeoutMiddleware",
    "SecurityHeadersMiddleware",
    "UnhandledErrorMiddleware",
    "client_address",
]
