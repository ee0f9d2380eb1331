"""Movie catalog operations."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Union

from .database import Database, is_object_id
from .errors import BadRequestError, NotFoundError
from .models import Movie
from .schemas import MovieCreate
from .validation import validate_payload

logger = logging.getLogger("movie_api.movies")

MOVIE_NOT_FOUND = "Movie not found"


@dataclass(frozen=True)
class MovieListPage:
    movies: List[Movie]
    current_page: int
    total_pages: int
    total_movies: int


def total_pages(total: int, page_size: int) -> int:
    if page_size <= 0:
        raise ValueError("page_size must be positive")
    return -(-total // page_size)


class MovieHandler:
    """CRUD and lookup over the ``movies`` collection."""

    def __init__(self, database: Database, *, default_page_size: int, max_page_size: int) -> None:
        self._database = database
        self.default_page_size = default_page_size
        self.max_page_size = max_page_size

    async def list_movies(self, page: int = 1, limit: Optional[int] = None) -> MovieListPage:
        page_size = min(limit or self.default_page_size, self.max_page_size)
        total = await self._database.count_movies()
        skip = (page - 1) * page_size
        # Past the last page the skip may not even fit in a BSON int64.
        movies = await self._database.list_movies(skip=skip, limit=page_size) if skip < total else []
        return MovieListPage(
            movies=movies,
            current_page=page,
            total_pages=total_pages(total, page_size),
            total_movies=total,
        )

    async def get_movie(self, movie_id: str) -> Movie:
        movie = await self._database.get_movie(movie_id)
        if movie is None:
            raise NotFoundError(MOVIE_NOT_FOUND)
        return movie

    async def create_movie(self, payload: Mapping[str, Any]) -> Movie:
        movie = await self._database.create_movie(payload)
        logger.info("Created movie %s", movie.id)
        return movie

    async def update_movie(self, movie_id: str, changes: Mapping[str, Any]) -> Movie:
        current = await self.get_movie(movie_id)
        merged = {
            "title": current.title,
            "genre": current.genre,
            "year": current.year,
            "rating": current.rating,
            **changes,
        }
        # The merged record must satisfy the full schema, not just the partial one.
        validate_payload(MovieCreate, merged)

        updated = await self._database.update_movie(movie_id, changes)
        if updated is None:
            raise NotFoundError(MOVIE_NOT_FOUND)
        logger.info("Updated movie %s", movie_id)
        return updated

    async def delete_movie(self, movie_id: str) -> None:
        deleted = await self._database.delete_movie(movie_id)
        if deleted is None:
            raise NotFoundError(MOVIE_NOT_FOUND)
        logger.info("Deleted movie %s", movie_id)

    async def find_movies(self, query: Optional[str]) -> Union[Movie, List[Movie]]:
        """Exact id lookup when ``query`` looks like an id, else a title substring search."""

        if not query or not query.strip():
            raise BadRequestError("Query parameter 'q' is required")

        query = query.strip()
        if is_object_id(query):
            movie = await self._database.get_movie(query)
            if movie is not None:
                return movie

        results = await self._database.search_movies_by_title(query)
        if not results:
            raise NotFoundError("No movies found matching your query")
        return results


__all__ = ["MovieHandler", "MovieListPage", "total_pages"]
