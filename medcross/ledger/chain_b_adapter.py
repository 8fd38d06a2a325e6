"""Adapter for the permissioned chain: chaincode events delivered with their block."""

from typing import Any, Dict, Mapping

from medcross.domain.exceptions import DomainValidationError, MalformedEventError
from medcross.domain.models.ingest_event import IngestEvent, IngestEventKind
from medcross.domain.models.record import ChainId, RecordKey, normalize_user_id
from medcross.domain.validators.record_validator import validate_upload_fields
from medcross.ledger.parsing import (
    decode_payload,
    parse_data_type_field,
    parse_int,
    parse_iso_timestamp,
    parse_tags,
    require,
    require_mapping,
    require_str,
)

EVENT_KINDS: Dict[str, IngestEventKind] = {
    "UploadData": IngestEventKind.UPLOAD,
    "GrantAccess": IngestEventKind.GRANT,
    "RevokeAccess": IngestEventKind.REVOKE,
    "RecordAccess": IngestEventKind.ACCESS,
}

VALID = "VALID"


class ChainBAdapter:
    """
    Normalizes events shaped like
    {"txId", "blockNumber", "eventIndex", "timestamp", "validationCode",
     "creator": {"mspId", "id"}, "chaincodeEvent": {"eventName", "payload"}}.
    Only VALID transactions are facts; anything else is rejected as malformed.
    """

    chain = ChainId.CHAIN_B

    def normalize(self, raw: Mapping[str, Any]) -> IngestEvent:
        if not isinstance(raw, Mapping):
            raise MalformedEventError("Raw event must be an object")
        tx_ref = require_str(raw, "txId", raw)
        validation_code = str(raw.get("validationCode", VALID)).strip().upper()
        if validation_code != VALID:
            raise MalformedEventError(
                f"Transaction {tx_ref} has validation code {validation_code}", raw=dict(raw)
            )
        block_height = parse_int(require(raw, "blockNumber", raw), "blockNumber", raw)
        log_index = parse_int(raw.get("eventIndex", 0), "eventIndex", raw)
        timestamp = parse_iso_timestamp(require(raw, "timestamp", raw), "timestamp", raw)
        creator = require_mapping(raw, "creator", raw)
        creator_id = f"{require_str(creator, 'mspId', raw)}/{require_str(creator, 'id', raw)}"
        chaincode_event = require_mapping(raw, "chaincodeEvent", raw)
        name = require_str(chaincode_event, "eventName", raw)
        kind = EVENT_KINDS.get(name)
        if kind is None:
            raise MalformedEventError(f"Unknown chaincode event '{name}'", raw=dict(raw))
        payload = decode_payload(require(chaincode_event, "payload", raw), raw)

        common = {
            "kind": kind,
            "origin_chain": self.chain,
            "ledger_tx_ref": tx_ref,
            "log_index": log_index,
            "block_height": block_height,
            "timestamp": timestamp,
        }

        if kind == IngestEventKind.UPLOAD:
            fields = {
                "file_name": require_str(payload, "fileName", raw),
                "data_type": parse_data_type_field(require(payload, "dataType", raw), raw),
                "size_bytes": parse_int(payload.get("sizeBytes", 0), "sizeBytes", raw),
                "description": str(payload.get("description") or ""),
                "tags": parse_tags(payload.get("tags"), raw),
                "content_hash": require_str(payload, "dataHash", raw),
            }
            try:
                validate_upload_fields(fields["file_name"], fields["size_bytes"], fields["content_hash"])
            except DomainValidationError as e:
                raise MalformedEventError(e.message, raw=dict(raw)) from e
            return IngestEvent(
                **common,
                actor_id=normalize_user_id(str(payload.get("owner") or creator_id)),
                record_key=RecordKey(self.chain, tx_ref),
                payload=fields,
            )

        record_key = RecordKey(self.chain, require_str(payload, "dataTxId", raw))
        if kind == IngestEventKind.ACCESS:
            return IngestEvent(
                **common,
                actor_id=normalize_user_id(str(payload.get("accessor") or creator_id)),
                record_key=record_key,
            )
        return IngestEvent(
            **common,
            actor_id=normalize_user_id(str(payload.get("owner") or creator_id)),
            record_key=record_key,
            subject_id=normalize_user_id(require_str(payload, "grantee", raw)),
        )
