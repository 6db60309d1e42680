"""Fixed-window rate limiting, tested against a standalone app."""

from unittest.mock import MagicMock

import redis
from fastapi import FastAPI
from fastapi.testclient import TestClient

from portal.middleware.rate_limit import RateLimitMiddleware


class CountingRedis:
    """Just enough of redis.Redis for the limiter."""

    def __init__(self):
        self.counts = {}
        self.ttls = {}

    def incr(self, key):
        self.counts[key] = self.counts.get(key, 0) + 1
        return self.counts[key]

    def expire(self, key, ttl):
        self.ttls[key] = ttl
        return True

    def ttl(self, key):
        return self.ttls.get(key, -1)


def _make_app(redis_client, max_requests=2, enabled=True, trusted_proxy_count=0):
    app = FastAPI()
    app.state.redis = redis_client

    @app.get("/ping")
    def ping():
        return {"pong": True}

    @app.get("/health")
    def health():
        return {"status": "healthy"}

    app.add_middleware(
        RateLimitMiddleware,
        max_requests=max_requests,
        window_seconds=60,
        enabled=enabled,
        trusted_proxy_count=trusted_proxy_count,
    )
    return app


def test_requests_under_limit_pass():
    client = TestClient(_make_app(CountingRedis()))

    assert client.get("/ping").status_code == 200
    assert client.get("/ping").status_code == 200


def test_request_over_limit_is_rejected():
    counter = CountingRedis()
    client = TestClient(_make_app(counter))

    client.get("/ping")
    client.get("/ping")
    response = client.get("/ping")

    assert response.status_code == 429
    assert response.headers["Retry-After"] == "60"
    assert response.json() == {"status": 429, "message": "Too many requests, please try again later"}
    assert counter.ttls == {"rate_limit:testclient": 60}


def test_rejection_message_is_localized():
    client = TestClient(_make_app(CountingRedis(), max_requests=0))

    response = client.get("/ping", headers={"Accept-Language": "fr"})

    assert response.status_code == 429
    assert response.json()["message"] == "Trop de requêtes, veuillez réessayer plus tard"


def test_forwarded_header_is_ignored_without_trusted_proxies():
    client = TestClient(_make_app(CountingRedis()))

    statuses = [
        client.get("/ping", headers={"X-Forwarded-For": f"1.2.3.{i}"}).status_code
        for i in range(5)
    ]

    assert statuses == [200, 200, 429, 429, 429]


def test_trusted_proxy_hop_is_counted():
    counter = CountingRedis()
    client = TestClient(_make_app(counter, max_requests=1, trusted_proxy_count=1))

    # The left-hand hops are whatever the client sent; only the last is trusted
    assert client.get("/ping", headers={"X-Forwarded-For": "6.6.6.1, 10.0.0.1"}).status_code == 200
    assert client.get("/ping", headers={"X-Forwarded-For": "6.6.6.2, 10.0.0.1"}).status_code == 429
    assert client.get("/ping", headers={"X-Forwarded-For": "10.0.0.2"}).status_code == 200
    assert set(counter.counts) == {"rate_limit:10.0.0.1", "rate_limit:10.0.0.2"}


def test_short_forwarded_header_falls_back_to_socket_address():
    counter = CountingRedis()
    client = TestClient(_make_app(counter, trusted_proxy_count=2))

    client.get("/ping", headers={"X-Forwarded-For": "6.6.6.1"})

    assert set(counter.counts) == {"rate_limit:testclient"}


def test_counter_without_expiry_starts_new_window():
    counter = CountingRedis()
    counter.counts["rate_limit:testclient"] = 5
    client = TestClient(_make_app(counter))

    response = client.get("/ping")

    assert response.status_code == 429
    assert response.headers["Retry-After"] == "60"
    assert counter.ttls["rate_limit:testclient"] == 60


def test_excluded_paths_are_not_counted():
    counter = CountingRedis()
    client = TestClient(_make_app(counter, max_requests=0))

    assert client.get("/health").status_code == 200
    assert counter.counts == {}


def test_disabled_limiter_never_touches_redis():
    backend = MagicMock()
    client = TestClient(_make_app(backend, max_requests=0, enabled=False))

    assert client.get("/ping").status_code == 200
    backend.incr.assert_not_called()


def test_redis_outage_lets_requests_through():
    backend = MagicMock()
    backend.incr.side_effect = redis.ConnectionError("connection refused")
    client = TestClient(_make_app(backend, max_requests=0))

    assert client.get("/ping").status_code == 200
