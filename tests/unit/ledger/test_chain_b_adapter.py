"""ChainBAdapter: chaincode events to IngestEvents; invalid transactions rejected."""

import json

import pytest

from medcross.domain.exceptions import MalformedEventError
from medcross.domain.models.ingest_event import IngestEventKind
from medcross.domain.models.record import ChainId, DataType, derive_record_id
from medcross.ledger.chain_b_adapter import ChainBAdapter


def _event(name, payload, tx="tx-2", block=7, validation_code="VALID"):
    return {
        "txId": tx,
        "blockNumber": block,
        "eventIndex": 0,
        "timestamp": "2024-02-01T10:00:00Z",
        "validationCode": validation_code,
        "creator": {"mspId": "HospitalMSP", "id": "dr-li"},
        "chaincodeEvent": {"eventName": name, "payload": payload},
    }


@pytest.fixture
def adapter():
    return ChainBAdapter()


def test_upload_with_json_bytes_payload(adapter):
    payload = json.dumps(
        {"fileName": "notes.pdf", "dataType": "电子病历", "dataHash": "sha256:1", "sizeBytes": 10, "tags": ["er"]}
    ).encode()
    event = adapter.normalize(_event("UploadData", payload, tx="tx-1"))
    assert event.kind == IngestEventKind.UPLOAD
    assert event.origin_chain == ChainId.CHAIN_B
    assert event.actor_id == "HospitalMSP/dr-li"
    assert event.payload["data_type"] == DataType.CLINICAL_NOTE
    assert event.timestamp.year == 2024 and event.timestamp.tzinfo is not None
    assert event.record_id == derive_record_id(ChainId.CHAIN_B, "tx-1")


def test_grant_uses_payload_owner_and_data_tx(adapter):
    event = adapter.normalize(_event("GrantAccess", {"owner": "patient-9", "grantee": "dr-wu", "dataTxId": "tx-1"}))
    assert event.kind == IngestEventKind.GRANT
    assert event.actor_id == "patient-9"
    assert event.subject_id == "dr-wu"
    assert event.record_id == derive_record_id(ChainId.CHAIN_B, "tx-1")


def test_revoke_event(adapter):
    event = adapter.normalize(_event("RevokeAccess", '{"grantee": "dr-wu", "dataTxId": "tx-1"}'))
    assert event.kind == IngestEventKind.REVOKE
    assert event.actor_id == "HospitalMSP/dr-li"


def test_invalid_transaction_is_rejected(adapter):
    raw = _event("GrantAccess", {"grantee": "dr-wu", "dataTxId": "tx-1"}, validation_code="MVCC_READ_CONFLICT")
    with pytest.raises(MalformedEventError) as exc_info:
        adapter.normalize(raw)
    assert exc_info.value.raw["txId"] == "tx-2"


@pytest.mark.parametrize(
    "payload",
    [
        b"\xff\xfe",
        "not json",
        "[1, 2]",
        {"grantee": "dr-wu"},
    ],
)
def test_bad_payloads_are_rejected(adapter, payload):
    with pytest.raises(MalformedEventError):
        adapter.normalize(_event("GrantAccess", payload))


def test_missing_creator_is_rejected(adapter):
    raw = _event("RecordAccess", {"dataTxId": "tx-1"})
    del raw["creator"]
    with pytest.raises(MalformedEventError):
        adapter.normalize(raw)
