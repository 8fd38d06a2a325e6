"""Tests for GET /statistics."""

import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_statistics(async_client: AsyncClient, seeded):
    r = await async_client.get("/statistics", headers={"X-Requester-ID": "anyone"})
    assert r.status_code == 200
    data = r.json()
    assert data["total_records"] == 2
    assert data["per_chain_counts"] == {"chain_a": 1, "chain_b": 1}
    assert data["per_type_counts"]["lab-report"] == 1
    assert data["monthly_growth"] == [{"month": "2024-01", "count": 2, "cumulative": 2}]
