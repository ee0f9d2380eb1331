"""Registration and login."""
from __future__ import annotations

import logging
from typing import Any, Mapping, Tuple

from .database import Database
from .errors import BadRequestError, ConflictError, UnauthorizedError
from .models import Role, User
from .security import PasswordHasher, TokenService

logger = logging.getLogger("movie_api.accounts")

INVALID_CREDENTIALS = "Invalid credentials"


class AuthHandler:
    """Creates accounts and exchanges credentials for bearer tokens."""

    def __init__(self, database: Database, passwords: PasswordHasher, tokens: TokenService) -> None:
        self._database = database
        self._passwords = passwords
        self._tokens = tokens

    async def register(self, payload: Mapping[str, Any]) -> Tuple[User, str]:
        username = payload["username"]
        email = payload["email"]

        existing = await self._database.find_user_by_email_or_username(email, username)
        if existing is not None:
            raise ConflictError("User with this email or username already exists")

        password_hash = await self._passwords.hash_async(payload["password"])
        user = await self._database.create_user(
            username=username,
            email=email,
            password_hash=password_hash,
            role=Role(payload.get("role", Role.USER)),
        )
        logger.info("Registered user %s with role %s", user.id, user.role.value)
        return user, self._tokens.issue(user.id)

    async def login(self, email: str | None, password: str | None) -> Tuple[User, str]:
        if not email or not password:
            raise BadRequestError("Please provide an email and password")

        # Unknown email and wrong password are indistinguishable to the caller.
        record = await self._database.find_user_for_login(email.strip().lower())
        if record is None:
            raise UnauthorizedError(INVALID_CREDENTIALS)

        user, password_hash = record
        if not await self._passwords.verify_async(password, password_hash):
            logger.warning("Failed login attempt for user %s", user.id)
            raise UnauthorizedError(INVALID_CREDENTIALS)

        return user, self._tokens.issue(user.id)


__all__ = ["AuthHandler"]
