"""Fixtures for API unit tests: in-memory stores and Redis, mock submitter, AsyncClient."""

from unittest.mock import AsyncMock

import pytest
from httpx import ASGITransport, AsyncClient

from medcross.domain.models.record import ChainId, DataType
from medcross.main import app


class FakeRedis:
    """In-memory Redis for unit tests."""

    def __init__(self):
        self._store: dict[str, str] = {}

    async def get_cache(self, key: str):
        return self._store.get(key)

    async def set_cache(self, key: str, value: str, ttl: int = 300):
        self._store[key] = value


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def mock_submitter():
    """Mock RabbitMQ submitter so tests do not connect to a real broker."""
    s = AsyncMock()
    s.submit = AsyncMock(return_value=None)
    return s


@pytest.fixture
def app_with_overrides(fake_redis, mock_submitter, record_index, audit_log):
    """App with storage, Redis and submitter overridden for testing."""
    from medcross.api import dependencies

    app.dependency_overrides[dependencies.get_record_index] = lambda: record_index
    app.dependency_overrides[dependencies.get_audit_log] = lambda: audit_log
    app.dependency_overrides[dependencies.get_redis_client] = lambda: fake_redis
    app.dependency_overrides[dependencies.get_submitter] = lambda: mock_submitter
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
async def async_client(app_with_overrides):
    """Async HTTP client for testing; uses overridden app."""
    transport = ASGITransport(app=app_with_overrides)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
async def seeded(reconciler, events):
    """alice owns an imaging record on chain_a shared with bob, and a lab report on chain_b."""
    await reconciler.submit(events.upload("0xup1", 100, file_name="mri.dcm", tags=("neuro",)))
    await reconciler.submit(events.grant("0xup1", "0xg1", 105, grantee="bob"))
    await reconciler.advance(ChainId.CHAIN_A, 105)
    await reconciler.submit(
        events.upload("tx-2", 7, chain=ChainId.CHAIN_B, file_name="cbc.pdf", data_type=DataType.LAB_REPORT)
    )
    await reconciler.advance(ChainId.CHAIN_B, 7)
    return reconciler
