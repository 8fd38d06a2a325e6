"""Append-only audit log. Storage failures are fatal and surface as AuditStorageError."""

import logging
from typing import List, Optional, Protocol

from medcross.application.exceptions import AuditStorageError
from medcross.domain.models.audit_event import AuditEvent, AuditEventKind
from medcross.domain.models.record import ChainId


class AuditRepository(Protocol):
    """Protocol for persisting immutable audit events. Must not allow mutation."""

    async def append(self, event: AuditEvent) -> Optional[AuditEvent]:
        """Store event with the next sequence number. Returns None if event_id already exists."""
        ...

    async def contains(self, event_id: str) -> bool:
        ...

    async def list_for_record(self, record_id: str) -> List[AuditEvent]:
        ...

    async def list_by_tx_ref(self, ledger_tx_ref: str) -> List[AuditEvent]:
        ...

    async def list_events(
        self,
        chain: Optional[ChainId] = None,
        kind: Optional[AuditEventKind] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[AuditEvent]:
        """Newest first by append order."""
        ...


class AuditLog:
    """
    Writes immutable audit events via repository, once per event id.
    Never rejects a well-formed event; only storage errors fail an append.
    """

    def __init__(self, repository: AuditRepository, logger: Optional[logging.Logger] = None) -> None:
        self._repository = repository
        self._logger = logger or logging.getLogger(__name__)

    async def append(self, event: AuditEvent) -> bool:
        """Returns True if the event was stored, False if it was already present."""
        try:
            stored = await self._repository.append(event)
        except Exception as e:
            self._logger.critical(
                "audit_storage_failed",
                extra={"event_id": event.event_id, "record_id": event.record_id, "error": str(e)},
            )
            raise AuditStorageError(f"Audit append failed for {event.event_id}: {e}") from e
        if stored is None:
            return False
        self._logger.info("audit_appended", extra=stored.to_dict())
        return True

    async def contains(self, event_id: str) -> bool:
        try:
            return await self._repository.contains(event_id)
        except Exception as e:
            raise AuditStorageError(f"Audit lookup failed for {event_id}: {e}") from e

    async def query_trail(self, record_id: str) -> List[AuditEvent]:
        """Oldest first, merged across chains by timestamp with chain as tie-break."""
        events = await self._repository.list_for_record(record_id)
        return sorted(events, key=AuditEvent.trail_key)

    async def get_by_tx_ref(self, ledger_tx_ref: str) -> List[AuditEvent]:
        events = await self._repository.list_by_tx_ref(ledger_tx_ref)
        return sorted(events, key=AuditEvent.trail_key)

    async def list_events(
        self,
        chain: Optional[ChainId] = None,
        kind: Optional[AuditEventKind] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[AuditEvent]:
        return await self._repository.list_events(chain=chain, kind=kind, limit=limit, offset=offset)
