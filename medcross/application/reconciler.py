"""Ingestion reconciler: orders, deduplicates and applies normalized ledger events."""

import asyncio
import heapq
import itertools
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Tuple

from medcross.application.audit_log import AuditLog
from medcross.application.record_index import RecordIndex
from medcross.domain.exceptions import DomainError, InvalidTransitionError, OrphanEventError
from medcross.domain.models.audit_event import AuditEvent
from medcross.domain.models.authorization import AuthorizationStateMachine, GrantState, current_state
from medcross.domain.models.ingest_event import IngestEvent, IngestEventKind
from medcross.domain.models.record import ChainId, Record
from medcross.scalability.keyed_lock import KeyedLock

DEFAULT_RETRY_WINDOW_BLOCKS = 50


class OutcomeStatus(str, Enum):
    APPLIED = "applied"
    DUPLICATE = "duplicate"
    NO_OP = "no_op"
    PENDING = "pending"
    REJECTED = "rejected"
    ORPHANED = "orphaned"


@dataclass(frozen=True)
class IngestOutcome:
    event: IngestEvent
    status: OutcomeStatus
    error: Optional[DomainError] = None


@dataclass(frozen=True)
class _Pending:
    event: IngestEvent
    reason: DomainError


def _record_from_upload(event: IngestEvent) -> Record:
    payload = event.payload
    return Record(
        record_id=event.record_id,
        origin_chain=event.origin_chain,
        file_name=payload["file_name"],
        data_type=payload["data_type"],
        owner_id=event.actor_id,
        uploaded_at=event.timestamp,
        size_bytes=payload["size_bytes"],
        content_hash=payload["content_hash"],
        ledger_tx_ref=event.ledger_tx_ref,
        block_height=event.block_height,
        description=payload.get("description", ""),
        tags=frozenset(payload.get("tags", ())),
    )


def _log_fields(event: IngestEvent) -> dict:
    return {
        "event_id": event.event_id,
        "kind": event.kind.value,
        "record_id": event.record_id,
        "origin_chain": event.origin_chain.value,
        "ledger_tx_ref": event.ledger_tx_ref,
        "block_height": event.block_height,
    }


class IngestionReconciler:
    """
    Applies IngestEvents to the record index and audit log.

    Events are submitted into a per-chain reorder buffer and applied in
    (block_height, log_index) order once the chain's finalized height reaches
    them. Grant/revoke events whose record or grant has not been seen wait in a
    pending set and are retried after every advance; those still waiting more
    than retry_window_blocks below the finalized height are reported as orphans.
    Mutations of one record are serialized; different records may interleave.
    """

    def __init__(
        self,
        record_index: RecordIndex,
        audit_log: AuditLog,
        state_machine: Optional[AuthorizationStateMachine] = None,
        retry_window_blocks: int = DEFAULT_RETRY_WINDOW_BLOCKS,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._index = record_index
        self._audit = audit_log
        self._state_machine = state_machine or AuthorizationStateMachine()
        self._retry_window = retry_window_blocks
        self._logger = logger or logging.getLogger(__name__)
        self._locks = KeyedLock()
        self._buffers: Dict[ChainId, List[Tuple[tuple, int, IngestEvent]]] = {chain: [] for chain in ChainId}
        self._arrivals = itertools.count()
        self._finalized: Dict[ChainId, int] = {}
        self._pending: Dict[str, _Pending] = {}
        # Guards retry and expiry passes; both chains' pipelines share this reconciler.
        self._pending_lock = asyncio.Lock()
        self._orphans: List[OrphanEventError] = []

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    @property
    def orphans(self) -> List[OrphanEventError]:
        """Orphan reports accumulated since start, oldest first."""
        return list(self._orphans)

    def pending_events(self, chain: Optional[ChainId] = None) -> List[IngestEvent]:
        events = [p.event for p in self._pending.values() if chain is None or p.event.origin_chain == chain]
        return sorted(events, key=lambda e: e.sort_key)

    def finalized_height(self, chain: ChainId) -> Optional[int]:
        return self._finalized.get(chain)

    def lowest_unapplied_height(self, chain: ChainId) -> Optional[int]:
        """Lowest block height on this chain still buffered or pending, if any."""
        heights = [entry[0][0] for entry in self._buffers[chain]]
        heights.extend(p.event.block_height for p in self._pending.values() if p.event.origin_chain == chain)
        return min(heights) if heights else None

    # ------------------------------------------------------------------
    # Ordering
    # ------------------------------------------------------------------

    async def submit(self, event: IngestEvent) -> None:
        """Buffer an event until its chain is finalized at or past its block."""
        heapq.heappush(self._buffers[event.origin_chain], (event.sort_key, next(self._arrivals), event))

    def rewind(self, chain: ChainId, from_height: int) -> int:
        """Drop buffered, not yet finalized events at or above from_height (reorg). Returns how many."""
        buffer = self._buffers[chain]
        kept = [entry for entry in buffer if entry[0][0] < from_height]
        dropped = len(buffer) - len(kept)
        heapq.heapify(kept)
        self._buffers[chain] = kept
        if dropped:
            self._logger.warning(
                "reorg_rewind",
                extra={"origin_chain": chain.value, "from_height": from_height, "dropped": dropped},
            )
        return dropped

    async def advance(self, chain: ChainId, finalized_height: int) -> List[IngestOutcome]:
        """
        Apply every buffered event of chain at or below finalized_height in block
        order, retry pending events, then expire pending events past the window.
        The finalized height never moves backwards.
        """
        previous = self._finalized.get(chain)
        if previous is not None and finalized_height < previous:
            finalized_height = previous
        self._finalized[chain] = finalized_height

        outcomes: List[IngestOutcome] = []
        buffer = self._buffers[chain]
        while buffer and buffer[0][0][0] <= finalized_height:
            _, _, event = heapq.heappop(buffer)
            outcomes.append(await self.apply(event))
        async with self._pending_lock:
            outcomes.extend(await self._retry_pending())
            outcomes.extend(self._expire_pending(chain, finalized_height))
        return outcomes

    async def retry_pending(self) -> List[IngestOutcome]:
        """Re-apply pending events in block order until a pass makes no progress."""
        async with self._pending_lock:
            return await self._retry_pending()

    async def _retry_pending(self) -> List[IngestOutcome]:
        outcomes: List[IngestOutcome] = []
        progressed = True
        while progressed and self._pending:
            progressed = False
            waiting = sorted(self._pending.values(), key=lambda p: (p.event.origin_chain.value, p.event.sort_key))
            for pending in waiting:
                # Another chain's advance may have resolved it while apply awaited.
                if self._pending.pop(pending.event.event_id, None) is None:
                    continue
                outcome = await self.apply(pending.event, retry=True)
                if outcome.status != OutcomeStatus.PENDING:
                    outcomes.append(outcome)
                    progressed = True
        return outcomes

    def _expire_pending(self, chain: ChainId, finalized_height: int) -> List[IngestOutcome]:
        outcomes: List[IngestOutcome] = []
        for event_id, pending in list(self._pending.items()):
            event = pending.event
            if event.origin_chain != chain or finalized_height - event.block_height <= self._retry_window:
                continue
            self._pending.pop(event_id, None)
            error = OrphanEventError(
                f"{event.kind.value} {event.ledger_tx_ref} for record {event.record_id} "
                f"unresolved after {self._retry_window} blocks: {pending.reason.message}",
                event_id=event_id,
            )
            error.__cause__ = pending.reason
            self._orphans.append(error)
            self._logger.error("orphan_event", extra={**_log_fields(event), "reason": pending.reason.message})
            outcomes.append(IngestOutcome(event=event, status=OutcomeStatus.ORPHANED, error=error))
        return outcomes

    # ------------------------------------------------------------------
    # Application
    # ------------------------------------------------------------------

    async def apply(self, event: IngestEvent, retry: bool = False) -> IngestOutcome:
        """Apply one event now. The caller is responsible for block ordering."""
        async with self._locks.hold(event.record_id):
            if await self._audit.contains(event.event_id):
                self._logger.info("duplicate_event", extra=_log_fields(event))
                return IngestOutcome(event=event, status=OutcomeStatus.DUPLICATE)
            if event.kind == IngestEventKind.UPLOAD:
                return await self._apply_upload(event)

            record = await self._index.get(event.record_id)
            if record is None:
                reason = DomainError(f"Record {event.record_id} has not been ingested")
                return self._hold(event, reason, retry)
            if event.kind == IngestEventKind.ACCESS:
                await self._audit.append(AuditEvent.from_ingest(event))
                return IngestOutcome(event=event, status=OutcomeStatus.APPLIED)
            if event.kind == IngestEventKind.GRANT:
                return await self._apply_grant(event)
            return await self._apply_revoke(event, retry)

    def _hold(self, event: IngestEvent, reason: DomainError, retry: bool) -> IngestOutcome:
        self._pending[event.event_id] = _Pending(event=event, reason=reason)
        log = self._logger.debug if retry else self._logger.warning
        log("event_pending", extra={**_log_fields(event), "reason": reason.message})
        return IngestOutcome(event=event, status=OutcomeStatus.PENDING, error=reason)

    async def _apply_upload(self, event: IngestEvent) -> IngestOutcome:
        inserted = await self._index.insert(_record_from_upload(event))
        await self._audit.append(AuditEvent.from_ingest(event))
        if not inserted:
            # Record stored before a crash, audit entry written now.
            self._logger.info("duplicate_event", extra=_log_fields(event))
            return IngestOutcome(event=event, status=OutcomeStatus.DUPLICATE)
        self._logger.info("record_ingested", extra=_log_fields(event))
        return IngestOutcome(event=event, status=OutcomeStatus.APPLIED)

    def _reject(self, event: IngestEvent, error: InvalidTransitionError) -> IngestOutcome:
        self._logger.error("transition_rejected", extra={**_log_fields(event), "reason": error.message})
        return IngestOutcome(event=event, status=OutcomeStatus.REJECTED, error=error)

    async def _apply_grant(self, event: IngestEvent) -> IngestOutcome:
        history = await self._index.authorizations(event.record_id, event.subject_id)
        try:
            result = self._state_machine.grant(
                history,
                record_id=event.record_id,
                grantee_id=event.subject_id,
                granted_at=event.timestamp,
                tx_ref=event.ledger_tx_ref,
                block_height=event.block_height,
            )
        except InvalidTransitionError as e:
            return self._reject(event, e)

        if result.applied:
            await self._index.save_authorization(result.authorization)
            await self._audit.append(AuditEvent.from_ingest(event))
            self._logger.info("grant_applied", extra={**_log_fields(event), "grantee_id": event.subject_id})
            return IngestOutcome(event=event, status=OutcomeStatus.APPLIED)
        if result.duplicate:
            await self._audit.append(AuditEvent.from_ingest(event))
            self._logger.info("duplicate_event", extra=_log_fields(event))
            return IngestOutcome(event=event, status=OutcomeStatus.DUPLICATE)
        await self._audit.append(AuditEvent.from_ingest(event, no_op=True))
        self._logger.info("regrant_ignored", extra={**_log_fields(event), "grantee_id": event.subject_id})
        return IngestOutcome(event=event, status=OutcomeStatus.NO_OP)

    async def _apply_revoke(self, event: IngestEvent, retry: bool) -> IngestOutcome:
        history = await self._index.authorizations(event.record_id, event.subject_id)
        already_applied = any(a.revoke_tx_ref == event.ledger_tx_ref for a in history)
        if current_state(history) != GrantState.ACTIVE and not already_applied:
            # The grant this revokes may still be in flight.
            reason = InvalidTransitionError(
                f"No active grant of record {event.record_id} to {event.subject_id} to revoke"
            )
            return self._hold(event, reason, retry)
        try:
            result = self._state_machine.revoke(
                history,
                revoked_at=event.timestamp,
                tx_ref=event.ledger_tx_ref,
                block_height=event.block_height,
            )
        except InvalidTransitionError as e:
            return self._reject(event, e)

        if result.duplicate:
            await self._audit.append(AuditEvent.from_ingest(event))
            self._logger.info("duplicate_event", extra=_log_fields(event))
            return IngestOutcome(event=event, status=OutcomeStatus.DUPLICATE)
        await self._index.save_authorization(result.authorization)
        await self._audit.append(AuditEvent.from_ingest(event))
        self._logger.info("revoke_applied", extra={**_log_fields(event), "grantee_id": event.subject_id})
        return IngestOutcome(event=event, status=OutcomeStatus.APPLIED)
