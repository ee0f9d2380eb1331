"""Request schemas checked by the validation gate."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic_core import PydanticCustomError

from .models import Role

FIRST_FILM_YEAR = 1888
FUTURE_RELEASE_YEARS = 5
MIN_RATING = 0
MAX_RATING = 10


def latest_release_year() -> int:
    """Upper bound for ``year``, recomputed on every validation."""

    return datetime.now(timezone.utc).year + FUTURE_RELEASE_YEARS


def _check_release_year(value: Optional[int]) -> Optional[int]:
    if value is None:
        return value
    bound = latest_release_year()
    if value > bound:
        raise PydanticCustomError(
            "less_than_equal",
            "Input should be less than or equal to {le}",
            {"le": bound},
        )
    return value


class MovieCreate(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    title: str = Field(..., min_length=1)
    genre: str = Field(..., min_length=1)
    year: int = Field(..., ge=FIRST_FILM_YEAR)
    rating: float = Field(..., ge=MIN_RATING, le=MAX_RATING)

    @field_validator("year")
    @classmethod
    def _year_not_too_far_ahead(cls, value: int) -> int:
        return _check_release_year(value)


class MovieUpdate(BaseModel):
    """Partial update; only the supplied fields are checked and applied."""

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    title: Optional[str] = Field(default=None, min_length=1)
    genre: Optional[str] = Field(default=None, min_length=1)
    year: Optional[int] = Field(default=None, ge=FIRST_FILM_YEAR)
    rating: Optional[float] = Field(default=None, ge=MIN_RATING, le=MAX_RATING)

    @field_validator("year")
    @classmethod
    def _year_not_too_far_ahead(cls, value: Optional[int]) -> Optional[int]:
        return _check_release_year(value)


class RegisterRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    username: str = Field(..., min_length=1, max_length=50)
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=128)
    role: Role = Role.USER

    @field_validator("username", mode="before")
    @classmethod
    def _strip_username(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip()
        return value

    @field_validator("email")
    @classmethod
    def _normalize_email(cls, value: str) -> str:
        return value.strip().lower()


class LoginRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


__all__ = [
    "FIRST_FILM_YEAR",
    "FUTURE_RELEASE_YEARS",
    "LoginRequest",
    "MovieCreate",
    "MovieUpdate",
    "RegisterRequest",
    "latest_release_year",
]
