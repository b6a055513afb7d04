"""Tests for roofcalc.web.app - error mapping, middleware and health."""

from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from roofcalc.errors import (
    AIServiceTimeoutError,
    EvaluationError,
    ExternalServiceError,
    NotFoundError,
    ParseError,
    RoofCalcError,
    ValidationError,
)
from roofcalc.web.app import create_app, status_for

ERRORS = {
    "validation": ValidationError("bad input"),
    "parse": ParseError("no text"),
    "missing": NotFoundError("Template not found"),
    "timeout": AIServiceTimeoutError("AI request timed out"),
    "upstream": ExternalServiceError("AI connection failed"),
    "import": ValidationError("CSV missing required columns: Quote", {"session_id": "abc-123"}),
}


@pytest.fixture
def client():
    app = create_app()

    async def boom(kind: str):
        raise ERRORS[kind]

    app.add_api_route("/boom/{kind}", boom)
    return TestClient(app)


@pytest.mark.parametrize(
    "exc,expected",
    [
        (ValidationError("x"), 400),
        (ParseError("x"), 400),
        (NotFoundError("x"), 404),
        (AIServiceTimeoutError("x"), 504),
        (ExternalServiceError("x"), 502),
        (EvaluationError("x"), 500),
        (RoofCalcError("x"), 500),
    ],
)
def test_status_for(exc, expected):
    assert status_for(exc) == expected


@pytest.mark.parametrize(
    "kind,status_code",
    [("validation", 400), ("parse", 400), ("missing", 404), ("timeout", 504), ("upstream", 502)],
)
def test_error_responses(client, kind, status_code):
    response = client.get(f"/boom/{kind}")

    assert response.status_code == status_code
    assert response.json() == {"error": ERRORS[kind].message}


def test_error_includes_import_session(client):
    response = client.get("/boom/import")

    assert response.status_code == 400
    assert response.json() == {
        "error": "CSV missing required columns: Quote",
        "sessionId": "abc-123",
    }


def test_request_id_header(client):
    response = client.get("/boom/missing", headers={"X-Request-ID": "req-42"})
    assert response.headers["X-Request-ID"] == "req-42"

    response = client.get("/boom/missing")
    assert response.headers["X-Request-ID"]


def test_unknown_route_uses_error_body(client):
    response = client.get("/does-not-exist")

    assert response.status_code == 404
    assert response.json() == {"error": "Not Found"}


class TestHealth:
    @patch("roofcalc.web.routes.health.get_session")
    def test_connected(self, mock_get_session, client):
        session = AsyncMock()
        cm = AsyncMock()
        cm.__aenter__.return_value = session
        mock_get_session.return_value = cm

        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok", "database": "connected"}
        session.execute.assert_awaited_once()

    @patch("roofcalc.web.routes.health.get_session")
    def test_disconnected(self, mock_get_session, client):
        session = AsyncMock()
        session.execute.side_effect = OperationalError("SELECT 1", {}, Exception("db down"))
        cm = AsyncMock()
        cm.__aenter__.return_value = session
        cm.__aexit__.return_value = None
        mock_get_session.return_value = cm

        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "error"
        assert body["database"] == "disconnected"
