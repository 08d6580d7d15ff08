"""Tests for the standard error handlers and the request ID middleware."""

import pytest
import pytest_asyncio
from fastapi import FastAPI, HTTPException
from httpx import ASGITransport, AsyncClient

from lockwarden.exceptions import InvalidInput, TransientStoreError
from lockwarden.middleware.error_handler import register_error_handlers
from lockwarden.middleware.request_id import RequestIDMiddleware


def _make_app() -> FastAPI:
    app = FastAPI()
    register_error_handlers(app)
    app.add_middleware(RequestIDMiddleware)

    @app.get("/missing")
    async def missing():
        raise HTTPException(status_code=404, detail="Not here", headers={"X-Hint": "gone"})

    @app.get("/invalid")
    async def invalid():
        raise InvalidInput("source", "not a valid IP address: 'x'")

    @app.get("/store-down")
    async def store_down():
        raise TransientStoreError("redis_counter", "increment", "Connection refused")

    @app.get("/boom")
    async def boom():
        raise RuntimeError("unexpected")

    @app.get("/typed")
    async def typed(limit: int):
        return {"limit": limit}

    return app


@pytest_asyncio.fixture
async def client():
    transport = ASGITransport(app=_make_app(), raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


class TestErrorBodies:
    @pytest.mark.asyncio
    async def test_http_exception(self, client):
        resp = await client.get("/missing")
        assert resp.status_code == 404
        body = resp.json()
        assert body["error"] is True
        assert body["status_code"] == 404
        assert body["detail"] == "Not here"
        assert "timestamp" in body
        assert body["request_id"] == resp.headers["X-Request-ID"]
        assert resp.headers["X-Hint"] == "gone"

    @pytest.mark.asyncio
    async def test_invalid_input_is_422_with_field(self, client):
        resp = await client.get("/invalid")
        assert resp.status_code == 422
        body = resp.json()
        assert body["field"] == "source"
        assert body["detail"].startswith("Invalid source")

    @pytest.mark.asyncio
    async def test_store_failure_is_503(self, client):
        resp = await client.get("/store-down")
        assert resp.status_code == 503
        assert resp.headers["Retry-After"] == "5"
        assert resp.json()["detail"] == "Protection store temporarily unavailable"

    @pytest.mark.asyncio
    async def test_request_validation_error(self, client):
        resp = await client.get("/typed", params={"limit": "many"})
        assert resp.status_code == 422
        body = resp.json()
        assert body["detail"] == "Validation error"
        assert body["errors"]

    @pytest.mark.asyncio
    async def test_unhandled_exception_is_500(self, client):
        resp = await client.get("/boom")
        assert resp.status_code == 500
        assert resp.json()["detail"] == "Internal server error"


class TestRequestID:
    @pytest.mark.asyncio
    async def test_generated_when_absent(self, client):
        resp = await client.get("/typed", params={"limit": 1})
        assert resp.status_code == 200
        assert len(resp.headers["X-Request-ID"]) == 32

    @pytest.mark.asyncio
    async def test_echoes_incoming_id(self, client):
        resp = await client.get("/typed", params={"limit": 1}, headers={"X-Request-ID": "abc123"})
        assert resp.headers["X-Request-ID"] == "abc123"
