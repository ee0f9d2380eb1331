"""FastAPI application exposing the movie catalog under ``/api/v1``."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional, Union

from fastapi import APIRouter, Depends, FastAPI, Query, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from .accounts import AuthHandler
from .auth import Authenticator, guards, require_role
from .config import Settings
from .database import Database
from .errors import install_error_handlers
from .middleware import (
    AccessLogMiddleware,
    RateLimitMiddleware,
    RequestTimeoutMiddleware,
    SecurityHeadersMiddleware,
    UnhandledErrorMiddleware,
)
from .models import Role
from .movies import MovieHandler
from .rate_limit import FixedWindowRateLimiter
from .responses import (
    ApiResponse,
    AuthPayload,
    MoviePage,
    MovieResponse,
    movie_to_response,
    user_to_response,
)
from .schemas import LoginRequest, MovieCreate, MovieUpdate, RegisterRequest
from .security import PasswordHasher, TokenService
from .validation import ValidationGate

logger = logging.getLogger("movie_api.api")

API_PREFIX = "/api/v1"
WELCOME_MESSAGE = "🎬 Movie API is running"


def _build_auth_router(accounts: AuthHandler) -> APIRouter:
    router = APIRouter(prefix="/auth", tags=["Auth"])

    @router.post(
        "/register",
        response_model=ApiResponse[AuthPayload],
        status_code=status.HTTP_201_CREATED,
        summary="Register a new user",
    )
    async def register(
        payload: Dict[str, Any] = Depends(ValidationGate(RegisterRequest)),
    ) -> ApiResponse[AuthPayload]:
        user, token = await accounts.register(payload)
        return ApiResponse[AuthPayload](
            status_code=status.HTTP_201_CREATED,
            data=AuthPayload(user=user_to_response(user), token=token),
            message="User registered successfully",
        )

    @router.post("/login", response_model=ApiResponse[AuthPayload], summary="Log in")
    async def login(payload: Optional[LoginRequest] = None) -> ApiResponse[AuthPayload]:
        credentials = payload or LoginRequest()
        user, token = await accounts.login(credentials.email, credentials.password)
        return ApiResponse[AuthPayload](
            data=AuthPayload(user=user_to_response(user), token=token),
            message="User logged in successfully",
        )

    return router


def _build_movie_router(
    movies: MovieHandler,
    *,
    authenticate: Authenticator,
) -> APIRouter:
    router = APIRouter(prefix="/movies", tags=["Movies"], dependencies=guards(authenticate))
    admin_only = guards(require_role(Role.ADMIN))

    @router.get("", response_model=ApiResponse[MoviePage], summary="List movies")
    async def list_movies(
        page: int = Query(1, ge=1, description="Page number, starting at 1"),
        limit: Optional[int] = Query(None, ge=1, description="Number of movies per page"),
    ) -> ApiResponse[MoviePage]:
        result = await movies.list_movies(page=page, limit=limit)
        return ApiResponse[MoviePage](
            data=MoviePage(
                movies=[movie_to_response(movie) for movie in result.movies],
                current_page=result.current_page,
                total_pages=result.total_pages,
                total_movies=result.total_movies,
            )
        )

    # Declared before ``/{movie_id}`` so that "find" is not taken for an id.
    @router.get(
        "/find",
        response_model=ApiResponse[Union[MovieResponse, List[MovieResponse]]],
        summary="Find movies by id or title",
    )
    async def find_movies(
        q: Optional[str] = Query(None, description="Movie id or part of a title"),
    ) -> ApiResponse[Union[MovieResponse, List[MovieResponse]]]:
        result = await movies.find_movies(q)
        data: Union[MovieResponse, List[MovieResponse]]
        if isinstance(result, list):
            data = [movie_to_response(movie) for movie in result]
        else:
            data = movie_to_response(result)
        return ApiResponse[Union[MovieResponse, List[MovieResponse]]](data=data)

    @router.get("/{movie_id}", response_model=ApiResponse[MovieResponse], summary="Get a movie")
    async def read_movie(movie_id: str) -> ApiResponse[MovieResponse]:
        movie = await movies.get_movie(movie_id)
        return ApiResponse[MovieResponse](data=movie_to_response(movie))

    @router.post(
        "",
        response_model=ApiResponse[MovieResponse],
        status_code=status.HTTP_201_CREATED,
        dependencies=admin_only,
        summary="Create a movie",
    )
    async def create_movie(
        payload: Dict[str, Any] = Depends(ValidationGate(MovieCreate)),
    ) -> ApiResponse[MovieResponse]:
        movie = await movies.create_movie(payload)
        return ApiResponse[MovieResponse](
            status_code=status.HTTP_201_CREATED,
            data=movie_to_response(movie),
            message="Movie created successfully",
        )

    @router.put(
        "/{movie_id}",
        response_model=ApiResponse[MovieResponse],
        dependencies=admin_only,
        summary="Update a movie",
    )
    async def update_movie(
        movie_id: str,
        payload: Dict[str, Any] = Depends(ValidationGate(MovieUpdate)),
    ) -> ApiResponse[MovieResponse]:
        movie = await movies.update_movie(movie_id, payload)
        return ApiResponse[MovieResponse](data=movie_to_response(movie), message="Movie updated successfully")

    @router.delete(
        "/{movie_id}",
        response_model=ApiResponse[None],
        dependencies=admin_only,
        summary="Delete a movie",
    )
    async def delete_movie(movie_id: str) -> ApiResponse[None]:
        await movies.delete_movie(movie_id)
        return ApiResponse[None](data=None, message="Movie deleted successfully")

    return router


def create_app(
    *,
    settings: Settings | None = None,
    database: Database | None = None,
) -> FastAPI:
    """Build the application; ``database`` is owned (and closed) by the app only if not supplied."""

    if settings is None:
        settings = Settings.from_env()

    owns_database = database is None
    if database is None:
        database = Database.from_settings(settings)

    passwords = PasswordHasher(settings.password_hash_rounds)
    tokens = TokenService.from_settings(settings)
    authenticate = Authenticator(database, tokens)
    accounts = AuthHandler(database, passwords, tokens)
    movies = MovieHandler(
        database,
        default_page_size=settings.default_page_size,
        max_page_size=settings.max_page_size,
    )

    if not settings.jwt_secret:
        logger.warning("JWT_SECRET is not set; login and registration will fail")

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        logger.info("Movie API starting in %s mode (database %s)", settings.environment, database.name)
        await database.initialize()
        try:
            yield
        finally:
            if owns_database:
                database.close()
            logger.info("Movie API shut down")

    app = FastAPI(
        title="Movie API",
        description="Movie catalog with JWT authentication and role-based authorization.",
        version="1.0.0",
        docs_url="/api-docs",
        redoc_url=None,
        openapi_url="/api-docs/openapi.json",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.database = database

    expose_trace = not settings.is_production
    install_error_handlers(app, expose_trace=expose_trace)

    app.add_middleware(UnhandledErrorMiddleware, expose_trace=expose_trace)
    if settings.request_timeout:
        app.add_middleware(RequestTimeoutMiddleware, timeout=settings.request_timeout)
    if settings.rate_limiting_enabled:
        app.add_middleware(
            RateLimitMiddleware,
            limiter=FixedWindowRateLimiter(settings.rate_limit_max, settings.rate_limit_window),
            expose_trace=expose_trace,
        )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(SecurityHeadersMiddleware, hsts=settings.is_production)
    app.add_middleware(AccessLogMiddleware)
    if settings.trusted_proxies:
        app.add_middleware(ProxyHeadersMiddleware, trusted_hosts=list(settings.trusted_proxies))

    @app.get("/", response_class=PlainTextResponse, include_in_schema=False)
    async def root() -> str:
        return WELCOME_MESSAGE

    @app.get("/health", include_in_schema=False)
    async def healthcheck() -> Dict[str, str]:
        return {"status": "ok"}

    app.include_router(_build_auth_router(accounts), prefix=API_PREFIX)
    app.include_router(_build_movie_router(movies, authenticate=authenticate), prefix=API_PREFIX)

    return app


__all__ = ["API_PREFIX", "create_app"]
