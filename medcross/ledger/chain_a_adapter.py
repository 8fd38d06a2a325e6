"""Adapter for the account-based chain: decoded contract logs of the MedicalData contract."""

from typing import Any, Dict, Mapping

from medcross.domain.exceptions import DomainValidationError, MalformedEventError
from medcross.domain.models.ingest_event import IngestEvent, IngestEventKind
from medcross.domain.models.record import ChainId, RecordKey, normalize_user_id
from medcross.domain.validators.record_validator import validate_upload_fields
from medcross.ledger.parsing import (
    parse_data_type_field,
    parse_int,
    parse_tags,
    parse_unix_timestamp,
    require,
    require_mapping,
    require_str,
)

# Contract event name -> normalized kind
EVENT_KINDS: Dict[str, IngestEventKind] = {
    "DataUploaded": IngestEventKind.UPLOAD,
    "AccessGranted": IngestEventKind.GRANT,
    "AccessRevoked": IngestEventKind.REVOKE,
    "DataAccessed": IngestEventKind.ACCESS,
}


def _address(value: str) -> str:
    """Transaction hashes compare case-insensitively; store them lower-cased."""
    return value.strip().lower()


class ChainAAdapter:
    """
    Normalizes logs shaped like
    {"transactionHash", "blockNumber", "logIndex", "timestamp", "event", "args"}.
    blockNumber may be an int or a 0x-prefixed hex string; timestamp is unix seconds.
    """

    chain = ChainId.CHAIN_A

    def normalize(self, raw: Mapping[str, Any]) -> IngestEvent:
        if not isinstance(raw, Mapping):
            raise MalformedEventError("Raw event must be an object")
        tx_ref = _address(require_str(raw, "transactionHash", raw))
        block_height = parse_int(require(raw, "blockNumber", raw), "blockNumber", raw)
        log_index = parse_int(raw.get("logIndex", 0), "logIndex", raw)
        timestamp = parse_unix_timestamp(require(raw, "timestamp", raw), "timestamp", raw)
        name = require_str(raw, "event", raw)
        kind = EVENT_KINDS.get(name)
        if kind is None:
            raise MalformedEventError(f"Unknown event '{name}'", raw=dict(raw))
        args = require_mapping(raw, "args", raw)

        common = {
            "kind": kind,
            "origin_chain": self.chain,
            "ledger_tx_ref": tx_ref,
            "log_index": log_index,
            "block_height": block_height,
            "timestamp": timestamp,
        }

        if kind == IngestEventKind.UPLOAD:
            payload = {
                "file_name": require_str(args, "fileName", raw),
                "data_type": parse_data_type_field(require(args, "dataType", raw), raw),
                "size_bytes": parse_int(args.get("sizeBytes", 0), "sizeBytes", raw),
                "description": str(args.get("description") or ""),
                "tags": parse_tags(args.get("tags"), raw),
                "content_hash": require_str(args, "dataHash", raw),
            }
            try:
                validate_upload_fields(payload["file_name"], payload["size_bytes"], payload["content_hash"])
            except DomainValidationError as e:
                raise MalformedEventError(e.message, raw=dict(raw)) from e
            return IngestEvent(
                **common,
                actor_id=normalize_user_id(require_str(args, "owner", raw)),
                record_key=RecordKey(self.chain, tx_ref),
                payload=payload,
            )

        record_key = RecordKey(self.chain, _address(require_str(args, "uploadTxHash", raw)))
        if kind == IngestEventKind.ACCESS:
            return IngestEvent(
                **common,
                actor_id=normalize_user_id(require_str(args, "accessor", raw)),
                record_key=record_key,
            )
        return IngestEvent(
            **common,
            actor_id=normalize_user_id(require_str(args, "owner", raw)),
            record_key=record_key,
            subject_id=normalize_user_id(require_str(args, "grantee", raw)),
        )
