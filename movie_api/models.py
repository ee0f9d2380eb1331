"""Domain models for the movie catalog."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime


class Role(str, enum.Enum):
    """Roles an account can hold."""

    USER = "user"
    ADMIN = "admin"


@dataclass(frozen=True)
class User:
    """Represents an account stored in the ``users`` collection."""

    id: str
    username: str
    email: str
    role: Role
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True)
class Movie:
    """Represents a catalog entry stored in the ``movies`` collection."""

    id: str
    title: str
    genre: str
    year: int
    rating: float
    created_at: datetime
    updated_at: datetime


__all__ = ["Movie", "Role", "User"]
