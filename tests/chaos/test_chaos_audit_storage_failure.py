"""
Chaos: audit store fails mid-ingestion.
System must: stop the pipeline, not move the checkpoint, and finish the work idempotently on replay.
"""

import logging

import pytest

from medcross.application.audit_log import AuditLog
from medcross.application.exceptions import AuditStorageError
from medcross.application.pipeline import IngestionPipeline, RawBlock
from medcross.application.reconciler import IngestionReconciler
from medcross.domain.models.audit_event import AuditEventKind
from medcross.domain.models.record import ChainId, derive_record_id
from medcross.infrastructure.memory.audit_repository_memory import InMemoryAuditRepository
from medcross.ledger import adapter_for


class FlakyAuditRepository(InMemoryAuditRepository):
    """Fails every append while `down` is set."""

    def __init__(self):
        super().__init__()
        self.down = False

    async def append(self, event):
        if self.down:
            raise ConnectionError("audit database unavailable")
        return await super().append(event)


def _upload_log(tx, block):
    return {
        "transactionHash": tx,
        "blockNumber": block,
        "logIndex": 0,
        "timestamp": 1704067200,
        "event": "DataUploaded",
        "args": {"owner": "0xalice", "fileName": "a.dcm", "dataType": "imaging", "dataHash": "h"},
    }


def _pipeline(record_index, audit_log):
    reconciler = IngestionReconciler(record_index=record_index, audit_log=audit_log)
    return IngestionPipeline(
        chain=ChainId.CHAIN_A,
        adapter=adapter_for(ChainId.CHAIN_A),
        reconciler=reconciler,
        record_index=record_index,
        logger=logging.getLogger(__name__),
    )


@pytest.mark.asyncio
async def test_audit_failure_stops_pipeline_and_replay_completes(record_index):
    repository = FlakyAuditRepository()
    audit_log = AuditLog(repository)
    block = RawBlock(100, [_upload_log("0xup1", 100)])

    pipeline = _pipeline(record_index, audit_log)
    await pipeline.process_block(RawBlock(99, []))
    assert await record_index.get_checkpoint(ChainId.CHAIN_A) == 99

    repository.down = True
    with pytest.raises(AuditStorageError):
        await pipeline.process_block(block)
    assert await record_index.get_checkpoint(ChainId.CHAIN_A) == 99

    # Restart: fresh process state, same stores, block redelivered.
    repository.down = False
    restarted = _pipeline(record_index, audit_log)
    assert await restarted.resume() == 100
    await restarted.process_block(block)

    record_id = derive_record_id(ChainId.CHAIN_A, "0xup1")
    trail = await audit_log.query_trail(record_id)
    assert [e.kind for e in trail] == [AuditEventKind.UPLOAD]
    assert await record_index.get_checkpoint(ChainId.CHAIN_A) == 100
