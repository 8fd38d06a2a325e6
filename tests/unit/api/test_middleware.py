"""Tests for API middleware: correlation ID, requester required, response headers."""

import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_correlation_id_generated(async_client: AsyncClient):
    """When X-Correlation-ID is not sent, response has a generated correlation ID."""
    r = await async_client.get("/health")
    assert r.status_code == 200
    assert len(r.headers["X-Correlation-ID"]) > 0


@pytest.mark.asyncio
async def test_correlation_id_preserved_when_passed(async_client: AsyncClient):
    """When X-Correlation-ID is sent, the same value is returned in response."""
    correlation_id = "my-correlation-123"
    r = await async_client.get("/health", headers={"X-Correlation-ID": correlation_id})
    assert r.headers.get("X-Correlation-ID") == correlation_id
    assert r.json().get("correlation_id") == correlation_id


@pytest.mark.asyncio
async def test_requester_required(async_client: AsyncClient):
    """When X-Requester-ID is missing, response is 401."""
    r = await async_client.get("/records")
    assert r.status_code == 401
    assert "detail" in r.json()


@pytest.mark.asyncio
async def test_blank_requester_rejected(async_client: AsyncClient):
    r = await async_client.get("/statistics", headers={"X-Requester-ID": "   "})
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_response_headers_contain_correlation_id(async_client: AsyncClient):
    """Response headers include X-Correlation-ID on authenticated routes too."""
    r = await async_client.get("/statistics", headers={"X-Requester-ID": "alice"})
    assert r.status_code == 200
    assert "X-Correlation-ID" in r.headers
