"""IngestionPipeline: confirmation depth, checkpoints, reorg replay, malformed events, resume."""

import logging

import pytest

from medcross.application.pipeline import IngestionPipeline, RawBlock
from medcross.domain.models.authorization import GrantState
from medcross.domain.models.record import ChainId, derive_record_id
from medcross.ledger import adapter_for

CHAIN_A = ChainId.CHAIN_A
UPLOAD_TX = "0xup1"
R1 = derive_record_id(CHAIN_A, UPLOAD_TX)


def _log(event, args, tx, block, log_index=0):
    return {
        "transactionHash": tx,
        "blockNumber": block,
        "logIndex": log_index,
        "timestamp": 1704067200 + block * 12,
        "event": event,
        "args": args,
    }


def _upload(tx, block, owner="0xalice"):
    return _log(
        "DataUploaded",
        {"owner": owner, "fileName": f"{tx}.dcm", "dataType": "imaging", "dataHash": f"h-{tx}"},
        tx,
        block,
    )


def _grant(tx, block, grantee="0xbob"):
    return _log("AccessGranted", {"owner": "0xalice", "grantee": grantee, "uploadTxHash": UPLOAD_TX}, tx, block)


def _pipeline(reconciler, record_index, depth=0, chain=CHAIN_A):
    return IngestionPipeline(
        chain=chain,
        adapter=adapter_for(chain),
        reconciler=reconciler,
        record_index=record_index,
        confirmation_depth=depth,
        logger=logging.getLogger("test.pipeline"),
    )


class ListSource:
    def __init__(self, blocks):
        self._blocks = blocks
        self.start_heights = []

    async def blocks(self, start_height):
        self.start_heights.append(start_height)
        for block in self._blocks:
            yield block


def test_adapter_must_match_chain(reconciler, record_index):
    with pytest.raises(ValueError):
        IngestionPipeline(
            chain=ChainId.CHAIN_B,
            adapter=adapter_for(CHAIN_A),
            reconciler=reconciler,
            record_index=record_index,
        )


async def test_visibility_follows_confirmation_depth(reconciler, record_index):
    pipeline = _pipeline(reconciler, record_index, depth=2)
    await pipeline.process_block(RawBlock(100, [_upload(UPLOAD_TX, 100)]))
    await pipeline.process_block(RawBlock(105, [_grant("0xg1", 105)]))
    assert await record_index.get(R1) is not None
    assert await record_index.grant_state(R1, "0xbob") == GrantState.NO_GRANT

    await pipeline.process_block(RawBlock(106, []))
    assert await record_index.grant_state(R1, "0xbob") == GrantState.NO_GRANT
    await pipeline.process_block(RawBlock(107, []))
    assert await record_index.grant_state(R1, "0xbob") == GrantState.ACTIVE
    assert pipeline.checkpoint == 105


async def test_checkpoint_stays_below_pending_events(reconciler, record_index):
    pipeline = _pipeline(reconciler, record_index)
    await pipeline.process_block(RawBlock(100, [_grant("0xg1", 100)]))
    await pipeline.process_block(RawBlock(101, []))
    assert pipeline.checkpoint == 99
    assert await record_index.get_checkpoint(CHAIN_A) == 99


async def test_blocks_at_or_below_checkpoint_are_skipped(reconciler, record_index):
    pipeline = _pipeline(reconciler, record_index)
    await pipeline.process_block(RawBlock(100, [_upload(UPLOAD_TX, 100)]))
    outcomes = await pipeline.process_block(RawBlock(100, [_upload("0xother", 100)]))
    assert outcomes == []
    assert await record_index.get(derive_record_id(CHAIN_A, "0xother")) is None


async def test_reorg_replaces_unfinalized_blocks(reconciler, record_index):
    pipeline = _pipeline(reconciler, record_index, depth=3)
    await pipeline.process_block(RawBlock(100, [_upload(UPLOAD_TX, 100)]))
    await pipeline.process_block(RawBlock(101, [_upload("0xorphaned", 101)]))
    # Block 101 replaced by a competing fork.
    await pipeline.process_block(RawBlock(101, [_upload("0xcanonical", 101)]))
    for height in range(102, 105):
        await pipeline.process_block(RawBlock(height, []))

    assert await record_index.get(derive_record_id(CHAIN_A, "0xcanonical")) is not None
    assert await record_index.get(derive_record_id(CHAIN_A, "0xorphaned")) is None


async def test_malformed_events_are_dropped(reconciler, record_index, audit_log):
    pipeline = _pipeline(reconciler, record_index)
    bad = _log("DataUploaded", {"owner": "0xalice"}, "0xbad", 100)
    await pipeline.process_block(RawBlock(100, [bad, _upload(UPLOAD_TX, 100)]))
    assert pipeline.dropped_events == 1
    assert await record_index.get(R1) is not None
    assert await record_index.get(derive_record_id(CHAIN_A, "0xbad")) is None


async def test_run_resumes_from_checkpoint(reconciler, record_index):
    await record_index.save_checkpoint(CHAIN_A, 99)
    pipeline = _pipeline(reconciler, record_index)
    source = ListSource([RawBlock(100, [_upload(UPLOAD_TX, 100)])])
    await pipeline.run(source)
    assert source.start_heights == [100]
    assert pipeline.checkpoint == 100
    assert await record_index.get(R1) is not None


async def test_fresh_start_begins_at_zero(reconciler, record_index):
    pipeline = _pipeline(reconciler, record_index)
    assert await pipeline.resume() == 0
