from concurrent.futures import ThreadPoolExecutor

import pytest
from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient

from valuation_app.rate_limit import (
    RateLimiter,
    RateLimitExceeded,
    get_identifier,
    rate_limit,
)


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class MockRequest:
    def __init__(self, headers=None):
        self.headers = headers or {}


@pytest.fixture
def clock():
    return FakeClock()


def test_identifier_order():
    both = MockRequest({"x-forwarded-for": "192.168.1.1", "x-real-ip": "10.0.0.1"})

    assert get_identifier(both, "user-123") == "user-123"
    assert get_identifier(both) == "192.168.1.1"
    assert get_identifier(MockRequest({"x-real-ip": "10.0.0.1"})) == "10.0.0.1"
    assert get_identifier(MockRequest()) == "anonymous"
    assert get_identifier(None) == "anonymous"


def test_allows_calls_up_to_limit_then_blocks(clock):
    limiter = RateLimiter(interval=60000, clock=clock)
    request = MockRequest({"x-forwarded-for": "192.168.1.2"})

    for _ in range(3):
        limiter.check(request, 3)

    with pytest.raises(RateLimitExceeded, match="Rate limit exceeded"):
        limiter.check(request, 3)


def test_limit_of_one(clock):
    limiter = RateLimiter(clock=clock)
    request = MockRequest({"x-forwarded-for": "192.168.1.1"})

    limiter.check(request, 1)
    with pytest.raises(RateLimitExceeded):
        limiter.check(request, 1)


def test_identities_are_independent(clock):
    limiter = RateLimiter(clock=clock)
    first = MockRequest({"x-forwarded-for": "192.168.1.1"})
    second = MockRequest({"x-forwarded-for": "192.168.1.2"})

    limiter.check(first, 2)
    limiter.check(second, 2)
    limiter.check(first, 2)
    limiter.check(second, 2)

    with pytest.raises(RateLimitExceeded):
        limiter.check(first, 2)
    with pytest.raises(RateLimitExceeded):
        limiter.check(second, 2)


def test_token_overrides_headers(clock):
    limiter = RateLimiter(clock=clock)
    request = MockRequest({"x-forwarded-for": "192.168.1.1"})

    limiter.check(request, 2, "user-123")
    limiter.check(request, 2, "user-123")
    with pytest.raises(RateLimitExceeded) as exc_info:
        limiter.check(request, 2, "user-123")

    assert exc_info.value.identifier == "user-123"
    # the IP itself was never counted
    limiter.check(request, 2)


def test_resets_after_idle_interval(clock):
    limiter = RateLimiter(interval=1000, clock=clock)
    request = MockRequest({"x-forwarded-for": "192.168.1.1"})

    limiter.check(request, 2)
    limiter.check(request, 2)
    with pytest.raises(RateLimitExceeded):
        limiter.check(request, 2)

    clock.advance(1.1)

    limiter.check(request, 2)


def test_each_call_refreshes_expiry(clock):
    limiter = RateLimiter(interval=1000, clock=clock)
    request = MockRequest({"x-real-ip": "10.0.0.1"})

    limiter.check(request, 3)
    clock.advance(0.8)
    limiter.check(request, 3)
    clock.advance(0.8)
    # 1.6s since the first call, but only 0.8s idle
    limiter.check(request, 3)

    with pytest.raises(RateLimitExceeded):
        limiter.check(request, 3)


def test_least_recently_used_identity_is_evicted(clock):
    limiter = RateLimiter(unique_token_per_interval=2, clock=clock)
    request = MockRequest()

    limiter.check(request, 1, "a")
    limiter.check(request, 1, "b")
    limiter.check(request, 1, "c")

    assert len(limiter) == 2
    # "a" was evicted, so its count starts over
    limiter.check(request, 1, "a")
    with pytest.raises(RateLimitExceeded):
        limiter.check(request, 1, "c")


def test_defaults():
    limiter = RateLimiter()

    assert limiter.interval == 60000
    assert limiter.unique_token_per_interval == 500


def test_concurrent_calls_are_not_lost():
    limiter = RateLimiter()
    request = MockRequest({"x-forwarded-for": "192.168.1.1"})

    def _hit(_):
        try:
            limiter.check(request, 50)
            return True
        except RateLimitExceeded:
            return False

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(_hit, range(80)))

    assert results.count(True) == 50
    assert results.count(False) == 30


def _limited_app(limiter, limit, enabled=True):
    app = FastAPI()

    @app.get("/limited", dependencies=[Depends(rate_limit(limiter, limit, enabled))])
    async def limited():
        return {"ok": True}

    return app


def test_dependency_returns_429(clock):
    client = TestClient(_limited_app(RateLimiter(clock=clock), 2))
    headers = {"X-Forwarded-For": "203.0.113.9"}

    assert client.get("/limited", headers=headers).status_code == 200
    assert client.get("/limited", headers=headers).status_code == 200

    response = client.get("/limited", headers=headers)
    assert response.status_code == 429
    assert response.json() == {"detail": "Too many requests"}


def test_dependency_disabled(clock):
    client = TestClient(_limited_app(RateLimiter(clock=clock), 1, enabled=False))

    for _ in range(3):
        assert client.get("/limited").status_code == 200
