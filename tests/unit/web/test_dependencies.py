"""Tests for roofcalc.web.dependencies."""

from fastapi import Depends, FastAPI, Request
from fastapi.testclient import TestClient

from roofcalc.web.dependencies import (
    ai_rate_limit,
    get_client_identifier,
    get_org_id,
    get_rate_limiter,
    reset_rate_limiter,
)


def _app() -> FastAPI:
    app = FastAPI()

    @app.get("/org")
    async def org(org_id: str = Depends(get_org_id)):
        return {"org": org_id}

    @app.get("/ai", dependencies=[Depends(ai_rate_limit)])
    async def ai():
        return {"ok": True}

    return app


class TestGetOrgId:
    def test_default_from_config(self):
        assert TestClient(_app()).get("/org").json() == {"org": "test-org"}

    def test_header(self):
        response = TestClient(_app()).get("/org", headers={"X-Organization-Id": "acme"})
        assert response.json() == {"org": "acme"}

    def test_query_wins_over_header(self):
        response = TestClient(_app()).get(
            "/org", params={"org": "beta"}, headers={"X-Organization-Id": "acme"}
        )
        assert response.json() == {"org": "beta"}


class TestRateLimit:
    def test_limit_exceeded(self, monkeypatch):
        monkeypatch.setenv("AI_RATE_LIMIT", "2")
        client = TestClient(_app())

        assert client.get("/ai").status_code == 200
        assert client.get("/ai").status_code == 200
        response = client.get("/ai")

        assert response.status_code == 429
        assert int(response.headers["Retry-After"]) >= 1

    def test_limit_is_per_client(self, monkeypatch):
        monkeypatch.setenv("AI_RATE_LIMIT", "1")
        client = TestClient(_app())

        assert client.get("/ai", headers={"X-Forwarded-For": "10.0.0.1"}).status_code == 200
        assert client.get("/ai", headers={"X-Forwarded-For": "10.0.0.1"}).status_code == 429
        assert client.get("/ai", headers={"X-Forwarded-For": "10.0.0.2"}).status_code == 200

    def test_singleton(self):
        limiter = get_rate_limiter()
        assert get_rate_limiter() is limiter
        reset_rate_limiter()
        assert get_rate_limiter() is not limiter


def test_client_identifier_uses_first_forwarded_hop():
    app = FastAPI()

    @app.get("/who")
    async def who(request: Request):
        return {"client": get_client_identifier(request)}

    response = TestClient(app).get("/who", headers={"X-Forwarded-For": "203.0.113.9, 10.0.0.1"})
    assert response.json() == {"client": "203.0.113.9"}
