"""Password hashing and signed access tokens."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict

import anyio
import jwt
from passlib.context import CryptContext

from .config import Settings

_JWT_ALG = "HS256"


class TokenError(Exception):
    """Raised when a token cannot be trusted."""


class TokenExpiredError(TokenError):
    """The token signature is valid but its lifetime has elapsed."""


class TokenInvalidError(TokenError):
    """The token is malformed, mis-signed or lacks a subject."""


class SigningKeyMissingError(RuntimeError):
    """The service was started without a token signing secret."""


class PasswordHasher:
    """Salted PBKDF2-SHA256 hashing with a configurable work factor."""

    def __init__(self, rounds: int) -> None:
        self._context = CryptContext(
            schemes=["pbkdf2_sha256"],
            deprecated="auto",
            pbkdf2_sha256__rounds=rounds,
        )

    def hash(self, password: str) -> str:
        if not password:
            raise ValueError("Password must not be empty")
        return self._context.hash(password)

    def verify(self, password: str, hashed: str) -> bool:
        if not password or not hashed:
            return False
        try:
            return self._context.verify(password, hashed)
        except ValueError:
            return False

    async def hash_async(self, password: str) -> str:
        return await anyio.to_thread.run_sync(self.hash, password)

    async def verify_async(self, password: str, hashed: str) -> bool:
        return await anyio.to_thread.run_sync(self.verify, password, hashed)


class TokenService:
    """Issue and verify HS256 bearer tokens that carry a user id."""

    def __init__(self, secret: str, expires_in: timedelta) -> None:
        self._secret = secret
        self._expires_in = expires_in

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenService":
        return cls(settings.jwt_secret, settings.jwt_expires_in)

    @property
    def expires_in(self) -> timedelta:
        return self._expires_in

    def issue(self, user_id: str) -> str:
        if not self._secret:
            raise SigningKeyMissingError("JWT signing secret is not configured")

        now = datetime.now(timezone.utc)
        payload: Dict[str, Any] = {
            "sub": str(user_id),
            "iat": int(now.timestamp()),
            "exp": int((now + self._expires_in).timestamp()),
        }
        return jwt.encode(payload, self._secret, algorithm=_JWT_ALG)

    def verify(self, token: str) -> str:
        """Return the user id carried by ``token``."""

        if not token:
            raise TokenInvalidError("Token is empty")
        if not self._secret:
            raise SigningKeyMissingError("JWT signing secret is not configured")
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[_JWT_ALG],
                options={"require": ["exp", "sub"]},
            )
        except jwt.ExpiredSignatureError as exc:
            raise TokenExpiredError("Token has expired") from exc
        except jwt.InvalidTokenError as exc:
            raise TokenInvalidError(f"Invalid token: {exc}") from exc

        subject = payload.get("sub")
        if not isinstance(subject, str) or not subject:
            raise TokenInvalidError("Token is missing a subject")
        return subject


__all__ = [
    "PasswordHasher",
    "SigningKeyMissingError",
    "TokenError",
    "TokenExpiredError",
    "TokenInvalidError",
    "TokenService",
]
