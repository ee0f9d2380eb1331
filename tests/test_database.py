from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import pytest
from bson import ObjectId
from mongomock_motor import AsyncMongoMockClient
from pymongo.errors import DuplicateKeyError

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from movie_api.database import Database, InvalidIdentifierError, is_object_id, parse_object_id
from movie_api.models import Role


@pytest.fixture()
def database() -> Database:
    db = Database(AsyncMongoMockClient(), "movie_api_database_tests")
    asyncio.run(db.initialize())
    return db


def _add_user(database: Database, username: str = "alice", email: str = "alice@example.com"):
    return asyncio.run(
        database.create_user(username=username, email=email, password_hash="hashed", role=Role.USER)
    )


def test_object_id_helpers() -> None:
    value = str(ObjectId())

    assert is_object_id(value)
    assert is_object_id(value.upper())
    assert not is_object_id("")
    assert not is_object_id("abc")
    assert not is_object_id("z" * 24)
    assert parse_object_id(value) == ObjectId(value)

    with pytest.raises(InvalidIdentifierError) as excinfo:
        parse_object_id("abc")
    assert str(excinfo.value) == "Invalid _id: abc."


def test_created_user_is_returned_without_password(database: Database) -> None:
    created = _add_user(database)

    fetched = asyncio.run(database.get_user(created.id))

    assert fetched == created
    assert fetched.role is Role.USER
    assert fetched.created_at.tzinfo is not None
    assert not hasattr(fetched, "password")


def test_login_lookup_returns_stored_hash(database: Database) -> None:
    created = _add_user(database)

    record = asyncio.run(database.find_user_for_login("alice@example.com"))

    assert record is not None
    user, password_hash = record
    assert user.id == created.id
    assert password_hash == "hashed"
    assert asyncio.run(database.find_user_for_login("nobody@example.com")) is None


def test_lookup_by_email_or_username(database: Database) -> None:
    created = _add_user(database)

    assert asyncio.run(database.find_user_by_email_or_username("x@example.com", "alice")).id == created.id
    assert asyncio.run(database.find_user_by_email_or_username("alice@example.com", "x")).id == created.id
    assert asyncio.run(database.find_user_by_email_or_username("x@example.com", "x")) is None


def test_unique_indexes_reject_duplicates(database: Database) -> None:
    _add_user(database)

    with pytest.raises(DuplicateKeyError):
        _add_user(database, username="alice2")
    with pytest.raises(DuplicateKeyError):
        _add_user(database, email="other@example.com")


def test_unknown_user_is_none(database: Database) -> None:
    assert asyncio.run(database.get_user(str(ObjectId()))) is None
    with pytest.raises(InvalidIdentifierError):
        asyncio.run(database.get_user("not-an-id"))


def test_movie_lifecycle(database: Database) -> None:
    created = asyncio.run(database.create_movie({"title": "Heat", "genre": "Crime", "year": 1995, "rating": 8.3}))
    assert created.created_at == created.updated_at

    assert asyncio.run(database.get_movie(created.id)) == created
    assert asyncio.run(database.count_movies()) == 1

    updated = asyncio.run(database.update_movie(created.id, {"rating": 8.5}))
    assert updated is not None
    assert updated.rating == 8.5
    assert updated.title == "Heat"
    assert updated.created_at == created.created_at
    assert updated.updated_at >= created.updated_at

    deleted = asyncio.run(database.delete_movie(created.id))
    assert deleted is not None and deleted.id == created.id
    assert asyncio.run(database.get_movie(created.id)) is None
    assert asyncio.run(database.delete_movie(created.id)) is None
    assert asyncio.run(database.update_movie(created.id, {"rating": 1})) is None


def test_list_movies_pages_in_insertion_order(database: Database) -> None:
    for index in range(5):
        asyncio.run(database.create_movie({"title": f"Movie {index}", "genre": "Drama", "year": 2000, "rating": 5}))

    page = asyncio.run(database.list_movies(skip=2, limit=2))

    assert [movie.title for movie in page] == ["Movie 2", "Movie 3"]
    assert asyncio.run(database.list_movies(skip=10, limit=2)) == []


def test_title_search_is_case_insensitive_and_literal(database: Database) -> None:
    for title in ("Inception", "Interstellar", "Se7en (Director's Cut)"):
        asyncio.run(database.create_movie({"title": title, "genre": "Drama", "year": 2000, "rating": 7}))

    assert [movie.title for movie in asyncio.run(database.search_movies_by_title("INCEP"))] == ["Inception"]
    assert len(asyncio.run(database.search_movies_by_title("in"))) == 2
    assert [movie.title for movie in asyncio.run(database.search_movies_by_title("(director"))] == [
        "Se7en (Director's Cut)"
    ]
    assert asyncio.run(database.search_movies_by_title("In.*")) == []
