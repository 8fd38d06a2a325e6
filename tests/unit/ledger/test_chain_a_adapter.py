"""ChainAAdapter: contract logs to IngestEvents; malformed logs rejected."""

from datetime import datetime, timezone

import pytest

from medcross.domain.exceptions import MalformedEventError
from medcross.domain.models.ingest_event import IngestEventKind
from medcross.domain.models.record import ChainId, DataType, derive_record_id
from medcross.ledger import adapter_for
from medcross.ledger.chain_a_adapter import ChainAAdapter

UPLOAD_TX = "0xAAA1"


def _log(event, args, tx="0xBBB2", block=100, log_index=0):
    return {
        "transactionHash": tx,
        "blockNumber": block,
        "logIndex": log_index,
        "timestamp": 1704067200,
        "event": event,
        "args": args,
    }


@pytest.fixture
def adapter():
    return ChainAAdapter()


def test_upload_log_is_normalized(adapter):
    raw = _log(
        "DataUploaded",
        {
            "owner": "0xOwner",
            "fileName": "ct.dcm",
            "dataType": "medical-image",
            "sizeBytes": "2048",
            "description": "chest CT",
            "tags": "ct, chest",
            "dataHash": "QmHash",
        },
        tx=UPLOAD_TX,
        block="0x64",
    )
    event = adapter.normalize(raw)
    assert event.kind == IngestEventKind.UPLOAD
    assert event.origin_chain == ChainId.CHAIN_A
    assert event.ledger_tx_ref == UPLOAD_TX.lower()
    assert event.block_height == 100
    assert event.timestamp == datetime(2024, 1, 1, tzinfo=timezone.utc)
    assert event.actor_id == "0xowner"
    assert event.record_id == derive_record_id(ChainId.CHAIN_A, UPLOAD_TX.lower())
    assert event.payload["data_type"] == DataType.IMAGING
    assert event.payload["size_bytes"] == 2048
    assert event.payload["tags"] == frozenset({"ct", "chest"})


def test_grant_log_points_at_upload_record(adapter):
    raw = _log("AccessGranted", {"owner": "0xOwner", "grantee": "0xDoc", "uploadTxHash": UPLOAD_TX}, block=105)
    event = adapter.normalize(raw)
    assert event.kind == IngestEventKind.GRANT
    assert event.subject_id == "0xdoc"
    assert event.record_id == derive_record_id(ChainId.CHAIN_A, UPLOAD_TX.lower())


def test_access_log(adapter):
    raw = _log("DataAccessed", {"accessor": "0xDoc", "uploadTxHash": UPLOAD_TX})
    event = adapter.normalize(raw)
    assert event.kind == IngestEventKind.ACCESS
    assert event.actor_id == "0xdoc"
    assert event.subject_id is None


def test_event_ids_differ_per_log_index(adapter):
    args = {"owner": "0xOwner", "grantee": "0xDoc", "uploadTxHash": UPLOAD_TX}
    first = adapter.normalize(_log("AccessGranted", args, log_index=0))
    second = adapter.normalize(_log("AccessGranted", args, log_index=1))
    assert first.event_id != second.event_id


@pytest.mark.parametrize(
    "raw",
    [
        _log("DataUploaded", {"owner": "0xOwner", "dataType": "imaging", "dataHash": "h"}),
        _log("DataUploaded", {"owner": "0xOwner", "fileName": "a", "dataType": "fax", "dataHash": "h"}),
        _log("AccessGranted", {"owner": "0xOwner", "uploadTxHash": UPLOAD_TX}),
        _log("Transfer", {}),
        {**_log("DataAccessed", {"accessor": "0xDoc", "uploadTxHash": UPLOAD_TX}), "blockNumber": "tall"},
        {"event": "DataUploaded"},
        "not-an-object",
    ],
)
def test_malformed_logs_raise(adapter, raw):
    with pytest.raises(MalformedEventError):
        adapter.normalize(raw)


def test_adapter_registry():
    assert adapter_for(ChainId.CHAIN_A).chain == ChainId.CHAIN_A
    assert adapter_for(ChainId.CHAIN_B).chain == ChainId.CHAIN_B
