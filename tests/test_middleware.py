import asyncio
import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from mongomock_motor import AsyncMongoMockClient

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from movie_api.api import create_app
from movie_api.config import Settings
from movie_api.database import Database
from movie_api.middleware import client_address
from movie_api.rate_limit import FixedWindowRateLimiter


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def _app(**overrides):
    values = {"environment": "test", "jwt_secret": "tests-secret-key", "password_hash_rounds": 1000}
    values.update(overrides)
    return create_app(
        settings=Settings(**values),
        database=Database(AsyncMongoMockClient(), "movie_api_middleware_tests"),
    )


def test_limiter_counts_hits_per_key() -> None:
    clock = FakeClock()
    limiter = FixedWindowRateLimiter(2, 60, clock=clock)

    first = limiter.hit("10.0.0.1")
    second = limiter.hit("10.0.0.1")
    third = limiter.hit("10.0.0.1")

    assert (first.allowed, first.remaining) == (True, 1)
    assert (second.allowed, second.remaining) == (True, 0)
    assert (third.allowed, third.remaining) == (False, 0)
    assert limiter.hit("10.0.0.2").allowed


def test_limiter_window_resets() -> None:
    clock = FakeClock()
    limiter = FixedWindowRateLimiter(1, 60, clock=clock)
    limiter.hit("client")

    clock.now += 45
    blocked = limiter.hit("client")
    assert not blocked.allowed
    assert blocked.reset_after == 15

    clock.now += 15
    assert limiter.hit("client").allowed


def test_limiter_clear_forgets_clients() -> None:
    limiter = FixedWindowRateLimiter(1, 60, clock=FakeClock())
    limiter.hit("client")
    limiter.clear()

    assert limiter.hit("client").allowed


@pytest.mark.parametrize("limit, window", [(0, 60), (5, 0)])
def test_limiter_rejects_non_positive_settings(limit: int, window: int) -> None:
    with pytest.raises(ValueError):
        FixedWindowRateLimiter(limit, window)


def test_client_address_uses_socket_peer_only() -> None:
    scope = {
        "type": "http",
        "headers": [(b"x-forwarded-for", b"203.0.113.7, 10.0.0.1")],
        "client": ("127.0.0.1", 5000),
    }
    assert client_address(scope) == "127.0.0.1"
    assert client_address({"type": "http", "headers": []}) == "unknown"


def test_forwarded_header_from_untrusted_peer_does_not_reset_limit() -> None:
    app = _app(environment="development", rate_limit_max=2, rate_limit_window=60)

    with TestClient(app) as client:
        responses = [client.get("/", headers={"X-Forwarded-For": f"10.0.0.{index}"}) for index in range(5)]

    assert [response.status_code for response in responses] == [200, 200, 429, 429, 429]


def test_forwarded_header_from_trusted_proxy_identifies_client() -> None:
    app = _app(
        environment="development",
        rate_limit_max=1,
        rate_limit_window=60,
        trusted_proxies=("testclient",),
    )

    with TestClient(app) as client:
        first = client.get("/", headers={"X-Forwarded-For": "203.0.113.7"})
        second = client.get("/", headers={"X-Forwarded-For": "203.0.113.8"})
        repeat = client.get("/", headers={"X-Forwarded-For": "203.0.113.7"})

    assert (first.status_code, second.status_code, repeat.status_code) == (200, 200, 429)


def test_rate_limit_rejects_excess_requests() -> None:
    app = _app(environment="development", rate_limit_max=2, rate_limit_window=60)

    with TestClient(app) as client:
        allowed = [client.get("/") for _ in range(2)]
        blocked = client.get("/")
        health = client.get("/health")

    assert [response.status_code for response in allowed] == [200, 200]
    assert allowed[0].headers["RateLimit-Limit"] == "2"
    assert allowed[0].headers["RateLimit-Remaining"] == "1"
    assert allowed[1].headers["RateLimit-Remaining"] == "0"

    assert blocked.status_code == 429
    assert blocked.json()["message"] == "Too many requests, please try again later."
    assert blocked.json()["success"] is False
    assert int(blocked.headers["Retry-After"]) >= 1

    assert health.status_code == 200


def test_rate_limit_is_disabled_in_test_environment() -> None:
    with TestClient(_app(rate_limit_max=1)) as client:
        responses = [client.get("/") for _ in range(3)]

    assert all(response.status_code == 200 for response in responses)
    assert "RateLimit-Limit" not in responses[0].headers


def test_security_headers_are_added() -> None:
    with TestClient(_app()) as client:
        response = client.get("/health")
        missing = client.get("/nothing")

    for result in (response, missing):
        assert result.headers["X-Content-Type-Options"] == "nosniff"
        assert result.headers["X-Frame-Options"] == "SAMEORIGIN"
        assert result.headers["Referrer-Policy"] == "no-referrer"
    assert "Strict-Transport-Security" not in response.headers


def test_hsts_only_in_production() -> None:
    with TestClient(_app(environment="production")) as client:
        response = client.get("/health")

    assert response.headers["Strict-Transport-Security"].startswith("max-age=")


def test_cors_preflight_is_answered() -> None:
    with TestClient(_app(cors_origins=("https://movies.example",))) as client:
        response = client.options(
            "/api/v1/movies",
            headers={
                "Origin": "https://movies.example",
                "Access-Control-Request-Method": "GET",
            },
        )

    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == "https://movies.example"


def test_slow_requests_time_out() -> None:
    app = _app(request_timeout=0.05)

    @app.get("/slow")
    async def slow() -> dict:
        await asyncio.sleep(1)
        return {"done": True}

    with TestClient(app) as client:
        response = client.get("/slow")

    assert response.status_code == 504
    body = response.json()
    assert body["statusCode"] == 504
    assert body["message"] == "Request timed out"


def test_access_log_records_requests(caplog: pytest.LogCaptureFixture) -> None:
    with TestClient(_app()) as client:
        with caplog.at_level("INFO", logger="movie_api.requests"):
            client.get("/health")

    messages = [record.getMessage() for record in caplog.records if record.name == "movie_api.requests"]
    assert any(message.startswith("GET /health 200") for message in messages)
