"""Immutable audit event model. Domain-level immutability."""

import uuid
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from medcross.domain.models.ingest_event import IngestEvent, IngestEventKind
from medcross.domain.models.record import ChainId


class AuditEventKind(str, Enum):
    UPLOAD = "upload"
    GRANT = "grant"
    REVOKE = "revoke"
    ACCESS = "access"


@dataclass(frozen=True)
class AuditEvent:
    """
    One accepted mutation (or access). Ledger-sourced events carry the
    transaction and block they came from; off-chain accesses carry neither.
    sequence is assigned by the audit store on append.
    """

    event_id: str
    kind: AuditEventKind
    record_id: str
    actor_id: str
    timestamp: datetime
    origin_chain: ChainId
    ledger_tx_ref: Optional[str] = None
    block_height: Optional[int] = None
    subject_id: Optional[str] = None
    no_op: bool = False
    sequence: Optional[int] = None

    @classmethod
    def from_ingest(cls, event: IngestEvent, *, no_op: bool = False) -> "AuditEvent":
        return cls(
            event_id=event.event_id,
            kind=AuditEventKind(event.kind.value),
            record_id=event.record_id,
            actor_id=event.actor_id,
            timestamp=event.timestamp,
            origin_chain=event.origin_chain,
            ledger_tx_ref=event.ledger_tx_ref,
            block_height=event.block_height,
            subject_id=event.subject_id,
            no_op=no_op,
        )

    @classmethod
    def off_chain_access(
        cls, *, record_id: str, actor_id: str, origin_chain: ChainId, timestamp: datetime
    ) -> "AuditEvent":
        return cls(
            event_id=str(uuid.uuid4()),
            kind=AuditEventKind.ACCESS,
            record_id=record_id,
            actor_id=actor_id,
            timestamp=timestamp,
            origin_chain=origin_chain,
        )

    def trail_key(self) -> tuple:
        """Global merge order: timestamp, then chain, then block, then append order."""
        return (
            self.timestamp,
            self.origin_chain.value,
            self.block_height if self.block_height is not None else -1,
            self.sequence if self.sequence is not None else 0,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Structured representation for JSON logging."""
        return {
            "event_id": self.event_id,
            "kind": self.kind.value,
            "record_id": self.record_id,
            "actor_id": self.actor_id,
            "timestamp": self.timestamp.isoformat(),
            "origin_chain": self.origin_chain.value,
            "ledger_tx_ref": self.ledger_tx_ref,
            "block_height": self.block_height,
            "subject_id": self.subject_id,
            "no_op": self.no_op,
        }
