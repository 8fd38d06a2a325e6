"""Shared fixtures: in-memory stores, reconciler, and a builder for normalized ledger events."""

import logging
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

import pytest

from medcross.application.audit_log import AuditLog
from medcross.application.reconciler import IngestionReconciler
from medcross.application.record_index import RecordIndex
from medcross.domain.models.ingest_event import IngestEvent, IngestEventKind
from medcross.domain.models.record import ChainId, DataType, RecordKey
from medcross.infrastructure.memory.audit_repository_memory import InMemoryAuditRepository
from medcross.infrastructure.memory.record_index_memory import InMemoryRecordIndexRepository

GENESIS = datetime(2024, 1, 1, tzinfo=timezone.utc)


def block_time(block_height: int) -> datetime:
    """Deterministic block timestamps: one block per minute from GENESIS."""
    return GENESIS + timedelta(minutes=block_height)


class EventFactory:
    """Builds IngestEvents the way the adapters would emit them."""

    def upload(
        self,
        tx: str,
        block: int,
        *,
        owner: str = "alice",
        chain: ChainId = ChainId.CHAIN_A,
        log_index: int = 0,
        file_name: str = "scan.dcm",
        data_type: DataType = DataType.IMAGING,
        description: str = "",
        tags: Iterable[str] = (),
        timestamp: Optional[datetime] = None,
    ) -> IngestEvent:
        return IngestEvent(
            kind=IngestEventKind.UPLOAD,
            origin_chain=chain,
            ledger_tx_ref=tx,
            log_index=log_index,
            block_height=block,
            timestamp=timestamp or block_time(block),
            actor_id=owner,
            record_key=RecordKey(chain, tx),
            payload={
                "file_name": file_name,
                "data_type": data_type,
                "size_bytes": 1024,
                "description": description,
                "tags": frozenset(tags),
                "content_hash": f"hash-{tx}",
            },
        )

    def _sharing(
        self,
        kind: IngestEventKind,
        record_tx: str,
        tx: str,
        block: int,
        grantee: str,
        owner: str,
        chain: ChainId,
        log_index: int,
    ) -> IngestEvent:
        return IngestEvent(
            kind=kind,
            origin_chain=chain,
            ledger_tx_ref=tx,
            log_index=log_index,
            block_height=block,
            timestamp=block_time(block),
            actor_id=owner,
            record_key=RecordKey(chain, record_tx),
            subject_id=grantee,
        )

    def grant(self, record_tx, tx, block, grantee="bob", *, owner="alice", chain=ChainId.CHAIN_A, log_index=0):
        return self._sharing(IngestEventKind.GRANT, record_tx, tx, block, grantee, owner, chain, log_index)

    def revoke(self, record_tx, tx, block, grantee="bob", *, owner="alice", chain=ChainId.CHAIN_A, log_index=0):
        return self._sharing(IngestEventKind.REVOKE, record_tx, tx, block, grantee, owner, chain, log_index)

    def access(self, record_tx, tx, block, accessor="bob", *, chain=ChainId.CHAIN_A, log_index=0):
        return IngestEvent(
            kind=IngestEventKind.ACCESS,
            origin_chain=chain,
            ledger_tx_ref=tx,
            log_index=log_index,
            block_height=block,
            timestamp=block_time(block),
            actor_id=accessor,
            record_key=RecordKey(chain, record_tx),
        )


@pytest.fixture
def events():
    return EventFactory()


@pytest.fixture
def index_repository():
    return InMemoryRecordIndexRepository()


@pytest.fixture
def audit_repository():
    return InMemoryAuditRepository()


@pytest.fixture
def record_index(index_repository):
    return RecordIndex(index_repository)


@pytest.fixture
def audit_log(audit_repository):
    return AuditLog(audit_repository, logger=logging.getLogger("test.audit"))


@pytest.fixture
def reconciler(record_index, audit_log):
    return IngestionReconciler(
        record_index=record_index,
        audit_log=audit_log,
        retry_window_blocks=50,
        logger=logging.getLogger("test.reconciler"),
    )
