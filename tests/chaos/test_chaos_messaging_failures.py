"""
Chaos: RabbitMQ failure during a grant submission.
System must: fail with MessagingFailureError, not cache a receipt, and succeed on retry with the same key.
"""

import logging
from unittest.mock import AsyncMock

import pytest

from medcross.application.exceptions import MessagingFailureError
from medcross.application.sharing_service import SharingService
from medcross.domain.models.record import ChainId, derive_record_id


class MemoryCache:
    def __init__(self):
        self.store = {}

    async def get_cache(self, key):
        return self.store.get(key)

    async def set_cache(self, key, value, ttl=300):
        self.store[key] = value


@pytest.mark.asyncio
async def test_broker_outage_then_retry(reconciler, record_index, events):
    await reconciler.submit(events.upload("0xup1", 100))
    await reconciler.advance(ChainId.CHAIN_A, 100)

    submitter = AsyncMock()
    submitter.submit = AsyncMock(side_effect=[ConnectionError("broker down"), None])
    cache = MemoryCache()
    service = SharingService(
        record_index=record_index,
        submitter=submitter,
        receipt_cache=cache,
        logger=logging.getLogger(__name__),
    )
    record_id = derive_record_id(ChainId.CHAIN_A, "0xup1")

    with pytest.raises(MessagingFailureError):
        await service.request_grant(record_id, "bob", "alice", "retry-key")
    assert cache.store == {}

    receipt = await service.request_grant(record_id, "bob", "alice", "retry-key")
    assert receipt.record_id == record_id
    assert len(cache.store) == 1
    assert submitter.submit.await_count == 2
