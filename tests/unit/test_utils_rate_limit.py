import pytest
from fastapi import FastAPI, Depends, Request, HTTPException
from fastapi.testclient import TestClient

from marketplace.utils import rate_limit
from marketplace.utils.rate_limit import optional_rate_limit, rate_limit_health_info


def _make_app(enabled=True):
    app = FastAPI()
    app.state.rate_limit_enabled = enabled

    @app.get("/limited", dependencies=[Depends(optional_rate_limit(2, 60))])
    def limited():
        return {"ok": True}

    @app.get("/rl_info")
    def rl_info(request: Request):
        return rate_limit_health_info(request)

    return app


class _CountingLimiter:
    """RateLimiter minimal: compte par identifiant et lève 429 au-delà de `times`."""
    hits = {}

    def __init__(self, times, seconds, identifier):
        self.times = times
        self.identifier = identifier

    async def __call__(self, request, response):
        key = await self.identifier(request)
        self.hits[key] = self.hits.get(key, 0) + 1
        if self.hits[key] > self.times:
            raise HTTPException(status_code=429, detail="Too Many Requests")


@pytest.fixture
def counting_limiter(monkeypatch):
    _CountingLimiter.hits = {}
    monkeypatch.setattr("fastapi_limiter.depends.RateLimiter", _CountingLimiter)
    return _CountingLimiter


def test_disabled_limiter_is_noop(counting_limiter):
    client = TestClient(_make_app(enabled=False))
    for _ in range(4):
        assert client.get("/limited").status_code == 200
    assert counting_limiter.hits == {}


def test_429_is_propagated(counting_limiter):
    client = TestClient(_make_app())
    assert client.get("/limited").status_code == 200
    assert client.get("/limited").status_code == 200
    assert client.get("/limited").status_code == 429


def test_limiter_failure_lets_request_through(monkeypatch):
    class _Broken:
        def __init__(self, **kwargs):
            pass

        async def __call__(self, request, response):
            raise ConnectionError("redis down")

    monkeypatch.setattr("fastapi_limiter.depends.RateLimiter", _Broken)
    client = TestClient(_make_app())
    assert client.get("/limited").status_code == 200


def test_key_uses_hashed_token_then_ip(counting_limiter):
    client = TestClient(_make_app())
    client.get("/limited", headers={"Authorization": "Bearer secret-token"})
    client.get("/limited")
    keys = list(counting_limiter.hits)
    assert keys[0].startswith("user:") and "secret-token" not in keys[0]
    assert keys[0].endswith(":/limited")
    assert keys[1].startswith("ip:")


def test_rate_limit_health_info(monkeypatch):
    from fastapi_limiter import FastAPILimiter

    client = TestClient(_make_app())
    monkeypatch.setattr(FastAPILimiter, "redis", None, raising=False)
    info = client.get("/rl_info").json()
    assert info == {"enabled": True, "ready": False, "backend": None}

    monkeypatch.setattr(FastAPILimiter, "redis", object(), raising=False)
    monkeypatch.setattr(rate_limit.config, "USE_FAKE_REDIS_FOR_TESTS", False)
    monkeypatch.setattr(rate_limit.config, "REDIS_URL", "redis://localhost:6379/0")
    info = client.get("/rl_info").json()
    assert info["ready"] is True and info["backend"] == "redis"
    assert info["redis"] == {"scheme": "redis", "host": "localhost", "port": 6379}
