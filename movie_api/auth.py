"""Request gates: bearer-token authentication and role checks."""

import logging
from typing import Any, Iterable, List, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .database import Database, InvalidIdentifierError
from .errors import ForbiddenError, UnauthorizedError
from .models import Role, User
from .security import TokenError, TokenService

logger = logging.getLogger("movie_api.auth")

bearer_scheme = HTTPBearer(auto_error=False, description="JWT issued by /auth/login or /auth/register")


class Authenticator:
    """Resolve the bearer token to a stored user and attach it to ``request.state.user``."""

    def __init__(self, database: Database, tokens: TokenService) -> None:
        self._database = database
        self._tokens = tokens

    async def __call__(
        self,
        request: Request,
        credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    ) -> User:
        if credentials is None or credentials.scheme.lower() != "bearer" or not credentials.credentials:
            logger.warning("Rejected %s %s: missing bearer token", request.method, request.url.path)
            raise UnauthorizedError()

        try:
            user_id = self._tokens.verify(credentials.credentials)
        except TokenError as exc:
            logger.warning("Rejected %s %s: %s", request.method, request.url.path, exc)
            raise UnauthorizedError() from exc

        try:
            user = await self._database.get_user(user_id)
        except InvalidIdentifierError as exc:
            logger.warning("Rejected %s %s: token subject is not a user id", request.method, request.url.path)
            raise UnauthorizedError() from exc
        if user is None:
            logger.warning("Rejected %s %s: user %s no longer exists", request.method, request.url.path, user_id)
            raise UnauthorizedError()

        request.state.user = user
        return user


class RoleGate:
    """Allow the request only when the authenticated user's role is in ``allowed``.

    Must be placed after an :class:`Authenticator` in the guard chain; it reads the
    identity from ``request.state`` and never loads it itself.
    """

    def __init__(self, allowed: Iterable[Role]) -> None:
        self.allowed = frozenset(Role(role) for role in allowed)
        if not self.allowed:
            raise ValueError("At least one role must be allowed")

    async def __call__(self, request: Request) -> User:
        user: Optional[User] = getattr(request.state, "user", None)
        if user is None:
            raise UnauthorizedError()
        if user.role not in self.allowed:
            raise ForbiddenError(f"User role {user.role.value} is not authorized to access this route")
        return user


def require_role(*roles: Role) -> RoleGate:
    return RoleGate(roles)


def guards(*gates: Any) -> List[Any]:
    """Ordered guard chain for a route's ``dependencies`` list."""

    return [Depends(gate) for gate in gates]


__all__ = ["Authenticator", "RoleGate", "guards", "require_role"]
