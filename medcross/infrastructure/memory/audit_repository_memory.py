"""In-memory audit store. Append-only list plus an id index."""

from dataclasses import replace
from typing import Dict, List, Optional

from medcross.domain.models.audit_event import AuditEvent, AuditEventKind
from medcross.domain.models.record import ChainId


class InMemoryAuditRepository:
    """Implements AuditRepository. Events are frozen; the stored copy carries its sequence number."""

    def __init__(self) -> None:
        self._events: List[AuditEvent] = []
        self._by_id: Dict[str, AuditEvent] = {}

    async def append(self, event: AuditEvent) -> Optional[AuditEvent]:
        if event.event_id in self._by_id:
            return None
        stored = replace(event, sequence=len(self._events) + 1)
        self._events.append(stored)
        self._by_id[stored.event_id] = stored
        return stored

    async def contains(self, event_id: str) -> bool:
        return event_id in self._by_id

    async def list_for_record(self, record_id: str) -> List[AuditEvent]:
        return [e for e in self._events if e.record_id == record_id]

    async def list_by_tx_ref(self, ledger_tx_ref: str) -> List[AuditEvent]:
        return [e for e in self._events if e.ledger_tx_ref == ledger_tx_ref]

    async def list_events(
        self,
        chain: Optional[ChainId] = None,
        kind: Optional[AuditEventKind] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[AuditEvent]:
        matches = [
            e
            for e in reversed(self._events)
            if (chain is None or e.origin_chain == chain) and (kind is None or e.kind == kind)
        ]
        return matches[offset:offset + limit]
