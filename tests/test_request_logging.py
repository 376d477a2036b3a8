"""Tests for the request logging middleware."""

import logging

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from querylab.middleware import RequestLoggingMiddleware

LOGGER = "querylab.middleware.request_logging"


def _access_records(caplog):
    return [r for r in caplog.records if r.name == LOGGER]


@pytest.mark.asyncio
async def test_request_is_logged_with_timing(async_client, caplog):
    caplog.set_level(logging.INFO, logger=LOGGER)

    response = await async_client.get("/")

    assert response.status_code == 200
    messages = [r.getMessage() for r in _access_records(caplog)]
    assert any(m.startswith("GET / 200 - Execution time:") for m in messages)


@pytest.mark.asyncio
async def test_request_context_attached_to_record(async_client, caplog):
    caplog.set_level(logging.INFO, logger=LOGGER)

    await async_client.post("/auth/profile")

    record = _access_records(caplog)[-1]
    assert record.method == "POST"
    assert record.path == "/auth/profile"
    assert record.status_code == 401
    assert record.duration_ms >= 0


@pytest.mark.asyncio
async def test_request_body_not_logged(async_client, caplog):
    caplog.set_level(logging.INFO, logger=LOGGER)

    await async_client.post(
        "/auth/login",
        json={"username": "nobody", "password": "supersecretpassword"},
    )

    assert "supersecretpassword" not in caplog.text


@pytest.mark.asyncio
async def test_unhandled_exception_logged_as_500(caplog):
    caplog.set_level(logging.INFO, logger=LOGGER)
    app = FastAPI()
    app.add_middleware(RequestLoggingMiddleware)

    @app.get("/explode")
    async def explode():
        raise RuntimeError("boom")

    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/explode")

    assert response.status_code == 500
    record = _access_records(caplog)[-1]
    assert record.status_code == 500
    assert record.getMessage().startswith("GET /explode 500 - Execution time:")


@pytest.mark.asyncio
async def test_guard_rejection_reason_recorded(async_client, caplog):
    caplog.set_level(logging.DEBUG, logger="querylab.api.auth")

    await async_client.post("/auth/profile", headers={"Authorization": "Bearer not.a.jwt"})

    rejected = [r for r in caplog.records if r.name == "querylab.api.auth"]
    assert rejected[-1].reason == "InvalidTokenError"
    assert rejected[-1].levelno == logging.WARNING
