"""Runtime configuration for the movie catalog service."""
from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Mapping, Optional, Tuple
from urllib.parse import urlparse

_DEFAULT_MONGODB_URI = "mongodb://localhost:27017/movie_api"
_DEFAULT_DATABASE_NAME = "movie_api"
_EXPIRY_PATTERN = re.compile(r"^\s*(\d+)\s*([smhd]?)\s*$", re.IGNORECASE)
_EXPIRY_UNITS = {"": 1, "s": 1, "m": 60, "h": 3600, "d": 86400}


def parse_expiry(value: str) -> timedelta:
    """Parse token lifetimes written as ``3600``, ``15m``, ``1h`` or ``30d``."""

    match = _EXPIRY_PATTERN.match(value or "")
    if match is None:
        raise ValueError(f"Invalid token expiry: {value!r}")
    amount = int(match.group(1))
    if amount <= 0:
        raise ValueError("Token expiry must be positive")
    return timedelta(seconds=amount * _EXPIRY_UNITS[match.group(2).lower()])


def _database_name_from_uri(uri: str) -> Optional[str]:
    path = urlparse(uri).path.strip("/")
    return path or None


def _int_setting(env: Mapping[str, str], name: str, default: int, *, minimum: int = 0) -> int:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw.strip())
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer") from exc
    if value < minimum:
        raise ValueError(f"{name} must be at least {minimum}")
    return value


def _float_setting(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw.strip())
    except ValueError as exc:
        raise ValueError(f"{name} must be a number") from exc
    if value < 0:
        raise ValueError(f"{name} must not be negative")
    return value


@dataclass(frozen=True)
class Settings:
    """Process-wide settings, built once and handed to each component."""

    mongodb_uri: str = _DEFAULT_MONGODB_URI
    database_name: str = _DEFAULT_DATABASE_NAME
    jwt_secret: str = ""
    jwt_expires_in: timedelta = timedelta(days=30)
    host: str = "0.0.0.0"
    port: int = 3000
    environment: str = "development"
    password_hash_rounds: int = 600_000
    default_page_size: int = 10
    max_page_size: int = 100
    request_timeout: float = 30.0
    db_timeout_ms: int = 5000
    cors_origins: Tuple[str, ...] = field(default_factory=lambda: ("*",))
    trusted_proxies: Tuple[str, ...] = field(default_factory=lambda: ("127.0.0.1",))
    rate_limit_max: int = 100
    rate_limit_window: int = 900

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def rate_limiting_enabled(self) -> bool:
        return self.environment != "test" and self.rate_limit_max > 0 and self.rate_limit_window > 0

    @staticmethod
    def from_env(env: Optional[Mapping[str, str]] = None) -> "Settings":
        """Create :class:`Settings` from environment variables."""

        if env is None:
            env = os.environ

        mongodb_uri = (env.get("MONGODB_URI") or "").strip() or _DEFAULT_MONGODB_URI
        database_name = (
            (env.get("MONGODB_DB") or "").strip()
            or _database_name_from_uri(mongodb_uri)
            or _DEFAULT_DATABASE_NAME
        )
        environment = (
            (env.get("ENVIRONMENT") or env.get("NODE_ENV") or "").strip().lower() or "development"
        )

        default_page_size = _int_setting(env, "PAGE_SIZE", 10, minimum=1)
        max_page_size = _int_setting(env, "MAX_PAGE_SIZE", 100, minimum=1)
        if default_page_size > max_page_size:
            raise ValueError("PAGE_SIZE must not exceed MAX_PAGE_SIZE")

        raw_origins = env.get("CORS_ORIGINS", "*")
        origins = tuple(item.strip() for item in raw_origins.split(",") if item.strip()) or ("*",)
        raw_proxies = env.get("TRUSTED_PROXIES", "127.0.0.1")
        proxies = tuple(item.strip() for item in raw_proxies.split(",") if item.strip())

        return Settings(
            mongodb_uri=mongodb_uri,
            database_name=database_name,
            jwt_secret=(env.get("JWT_SECRET") or "").strip(),
            jwt_expires_in=parse_expiry(env.get("JWT_EXPIRE") or "30d"),
            host=(env.get("HOST") or "").strip() or "0.0.0.0",
            port=_int_setting(env, "PORT", 3000, minimum=1),
            environment=environment,
            password_hash_rounds=_int_setting(env, "PASSWORD_HASH_ROUNDS", 600_000, minimum=1),
            default_page_size=default_page_size,
            max_page_size=max_page_size,
            request_timeout=_float_setting(env, "REQUEST_TIMEOUT", 30.0),
            db_timeout_ms=_int_setting(env, "MONGODB_TIMEOUT_MS", 5000, minimum=1),
            cors_origins=origins,
            trusted_proxies=proxies,
            rate_limit_max=_int_setting(env, "RATE_LIMIT_MAX", 100),
            rate_limit_window=_int_setting(env, "RATE_LIMIT_WINDOW", 900, minimum=1),
        )


__all__ = ["Settings", "parse_expiry"]
