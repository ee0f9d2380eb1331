"""Success envelope and the public shapes of stored records."""
from __future__ import annotations

from datetime import datetime
from typing import Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, computed_field
from pydantic.alias_generators import to_camel

from .models import Movie, Role, User

T = TypeVar("T")


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ApiResponse(_CamelModel, Generic[T]):
    """``{"statusCode", "success", "data", "message"}`` wrapper for every success."""

    status_code: int = 200
    data: Optional[T] = None
    message: str = "Success"

    @computed_field  # type: ignore[prop-decorator]
    @property
    def success(self) -> bool:
        return self.status_code < 400


class UserResponse(_CamelModel):
    id: str
    username: str
    email: str
    role: Role
    created_at: datetime
    updated_at: datetime


class AuthPayload(_CamelModel):
    user: UserResponse
    token: str


class MovieResponse(_CamelModel):
    id: str
    title: str
    genre: str
    year: int
    rating: float
    created_at: datetime
    updated_at: datetime


class MoviePage(_CamelModel):
    movies: List[MovieResponse]
    current_page: int
    total_pages: int
    total_movies: int


def user_to_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        username=user.username,
        email=user.email,
        role=user.role,
        created_at=user.created_at,
        updated_at=user.updated_at,
    )


def movie_to_response(movie: Movie) -> MovieResponse:
    return MovieResponse(
        id=movie.id,
        title=movie.title,
        genre=movie.genre,
        year=movie.year,
        rating=movie.rating,
        created_at=movie.created_at,
        updated_at=movie.updated_at,
    )


__all__ = [
    "ApiResponse",
    "AuthPayload",
    "MoviePage",
    "MovieResponse",
    "UserResponse",
    "movie_to_response",
    "user_to_response",
]
