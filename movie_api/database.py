"""MongoDB-backed persistence for users and movies."""
from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Tuple

import pymongo
from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import ReturnDocument

from .config import Settings
from .models import Movie, Role, User

logger = logging.getLogger("movie_api.database")

_OBJECT_ID_PATTERN = re.compile(r"^[0-9a-fA-F]{24}$")

USERS = "users"
MOVIES = "movies"


class InvalidIdentifierError(ValueError):
    """Raised when a value cannot be used as a document identifier."""

    def __init__(self, field: str, value: object) -> None:
        super().__init__(f"Invalid {field}: {value}.")
        self.field = field
        self.value = value


def is_object_id(value: str) -> bool:
    return bool(value) and _OBJECT_ID_PATTERN.match(value) is not None


def parse_object_id(value: str, field: str = "_id") -> ObjectId:
    """Convert ``value`` to an :class:`ObjectId` or raise :class:`InvalidIdentifierError`."""

    if not isinstance(value, str) or not is_object_id(value):
        raise InvalidIdentifierError(field, value)
    return ObjectId(value)


def _current_timestamp() -> datetime:
    # Mongo stores milliseconds; truncate so in-memory values match stored ones.
    now = datetime.now(timezone.utc)
    return now.replace(microsecond=(now.microsecond // 1000) * 1000)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Database:
    """Thin async wrapper around the ``users`` and ``movies`` collections."""

    def __init__(self, client: Any, name: str) -> None:
        self._client = client
        self._db = client[name]
        self.name = name

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        client = AsyncIOMotorClient(
            settings.mongodb_uri,
            tz_aware=True,
            serverSelectionTimeoutMS=settings.db_timeout_ms,
            connectTimeoutMS=settings.db_timeout_ms,
            socketTimeoutMS=settings.db_timeout_ms,
        )
        return cls(client, settings.database_name)

    @property
    def users(self):
        return self._db[USERS]

    @property
    def movies(self):
        return self._db[MOVIES]

    async def initialize(self) -> None:
        """Create the required indexes if they do not already exist."""

        await self.users.create_index([("email", pymongo.ASCENDING)], unique=True)
        await self.users.create_index([("username", pymongo.ASCENDING)], unique=True)
        logger.info("Indexes ensured on database %s", self.name)

    def close(self) -> None:
        self._client.close()
        logger.info("MongoDB connection closed")

    # ------------------------------------------------------------------
    # User management
    # ------------------------------------------------------------------
    async def create_user(self, *, username: str, email: str, password_hash: str, role: Role) -> User:
        now = _current_timestamp()
        document = {
            "username": username,
            "email": email,
            "password": password_hash,
            "role": role.value,
            "createdAt": now,
            "updatedAt": now,
        }
        result = await self.users.insert_one(document)
        document["_id"] = result.inserted_id
        return self._document_to_user(document)

    async def get_user(self, user_id: str) -> Optional[User]:
        document = await self.users.find_one({"_id": parse_object_id(user_id)}, {"password": 0})
        if document is None:
            return None
        return self._document_to_user(document)

    async def find_user_by_email_or_username(self, email: str, username: str) -> Optional[User]:
        document = await self.users.find_one(
            {"$or": [{"email": email}, {"username": username}]},
            {"password": 0},
        )
        if document is None:
            return None
        return self._document_to_user(document)

    async def find_user_for_login(self, email: str) -> Optional[Tuple[User, str]]:
        """Return the user and its stored password hash, if the email is known."""

        document = await self.users.find_one({"email": email})
        if document is None:
            return None
        return self._document_to_user(document), str(document.get("password") or "")

    # ------------------------------------------------------------------
    # Movie catalog
    # ------------------------------------------------------------------
    async def list_movies(self, *, skip: int, limit: int) -> List[Movie]:
        cursor = self.movies.find({}, skip=skip, limit=limit, sort=[("_id", pymongo.ASCENDING)])
        documents = await cursor.to_list(length=None)
        return [self._document_to_movie(document) for document in documents]

    async def count_movies(self) -> int:
        return await self.movies.count_documents({})

    async def get_movie(self, movie_id: str) -> Optional[Movie]:
        document = await self.movies.find_one({"_id": parse_object_id(movie_id)})
        if document is None:
            return None
        return self._document_to_movie(document)

    async def create_movie(self, fields: Mapping[str, Any]) -> Movie:
        now = _current_timestamp()
        document: Dict[str, Any] = dict(fields)
        document["createdAt"] = now
        document["updatedAt"] = now
        result = await self.movies.insert_one(document)
        document["_id"] = result.inserted_id
        return self._document_to_movie(document)

    async def update_movie(self, movie_id: str, fields: Mapping[str, Any]) -> Optional[Movie]:
        updates: Dict[str, Any] = dict(fields)
        updates["updatedAt"] = _current_timestamp()
        document = await self.movies.find_one_and_update(
            {"_id": parse_object_id(movie_id)},
            {"$set": updates},
            return_document=ReturnDocument.AFTER,
        )
        if document is None:
            return None
        return self._document_to_movie(document)

    async def delete_movie(self, movie_id: str) -> Optional[Movie]:
        document = await self.movies.find_one_and_delete({"_id": parse_object_id(movie_id)})
        if document is None:
            return None
        return self._document_to_movie(document)

    async def search_movies_by_title(self, fragment: str) -> List[Movie]:
        cursor = self.movies.find(
            {"title": {"$regex": re.escape(fragment), "$options": "i"}},
            sort=[("_id", pymongo.ASCENDING)],
        )
        documents = await cursor.to_list(length=None)
        return [self._document_to_movie(document) for document in documents]

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    @staticmethod
    def _document_to_user(document: Mapping[str, Any]) -> User:
        return User(
            id=str(document["_id"]),
            username=document["username"],
            email=document["email"],
            role=Role(document.get("role") or Role.USER.value),
            created_at=_as_utc(document["createdAt"]),
            updated_at=_as_utc(document["updatedAt"]),
        )

    @staticmethod
    def _document_to_movie(document: Mapping[str, Any]) -> Movie:
        return Movie(
            id=str(document["_id"]),
            title=document["title"],
            genre=document["genre"],
            year=int(document["year"]),
            rating=float(document["rating"]),
            created_at=_as_utc(document["createdAt"]),
            updated_at=_as_utc(document["updatedAt"]),
        )


__all__ = ["Database", "InvalidIdentifierError", "is_object_id", "parse_object_id"]
