"""Normalized ledger event shared by both chain adapters."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from medcross.domain.models.record import RECORD_NAMESPACE, ChainId, RecordKey


class IngestEventKind(str, Enum):
    UPLOAD = "upload"
    GRANT = "grant"
    REVOKE = "revoke"
    ACCESS = "access"


def derive_event_id(origin_chain: ChainId, ledger_tx_ref: str, log_index: int) -> str:
    """One id per ledger event; a transaction may emit several."""
    return str(uuid.uuid5(RECORD_NAMESPACE, f"{origin_chain.value}:{ledger_tx_ref}:{log_index}"))


@dataclass(frozen=True)
class IngestEvent:
    """
    Chain-independent form of a confirmed ledger event.
    record_key names the upload transaction of the record the event concerns;
    for uploads it is the event's own transaction.
    """

    kind: IngestEventKind
    origin_chain: ChainId
    ledger_tx_ref: str
    log_index: int
    block_height: int
    timestamp: datetime
    actor_id: str
    record_key: RecordKey
    subject_id: Optional[str] = None
    payload: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @property
    def event_id(self) -> str:
        return derive_event_id(self.origin_chain, self.ledger_tx_ref, self.log_index)

    @property
    def record_id(self) -> str:
        return self.record_key.record_id

    @property
    def sort_key(self) -> tuple:
        return (self.block_height, self.log_index, self.ledger_tx_ref)
