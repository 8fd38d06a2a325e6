"""Record index: repository protocol plus the service the reconciler and query engine share."""

from typing import Callable, List, Optional, Protocol, Set

from medcross.domain.models.authorization import (
    Authorization,
    GrantState,
    current_state,
)
from medcross.domain.models.record import ChainId, Record


class RecordIndexRepository(Protocol):
    """Storage for records, authorization history and ingestion checkpoints."""

    async def get_record(self, record_id: str) -> Optional[Record]:
        """Return the record or None."""
        ...

    async def insert_record(self, record: Record) -> bool:
        """Insert if absent. Returns False when the record id already exists."""
        ...

    async def list_records(self) -> List[Record]:
        """Snapshot of all records."""
        ...

    async def list_authorizations(
        self, record_id: str, grantee_id: Optional[str] = None
    ) -> List[Authorization]:
        """Authorization history for a record, optionally for one grantee, oldest grant first."""
        ...

    async def save_authorization(self, authorization: Authorization) -> None:
        """Insert or replace by authorization_id."""
        ...

    async def active_record_ids(self, grantee_id: str) -> Set[str]:
        """Ids of records the grantee currently holds an active authorization for."""
        ...

    async def get_checkpoint(self, chain: ChainId) -> Optional[int]:
        ...

    async def save_checkpoint(self, chain: ChainId, block_height: int) -> None:
        ...


class RecordIndex:
    """
    Point lookups, predicate scans and derived authorization state.
    Authorization status is always computed from stored history, never cached.
    """

    def __init__(self, repository: RecordIndexRepository) -> None:
        self._repository = repository

    async def get(self, record_id: str) -> Optional[Record]:
        return await self._repository.get_record(record_id)

    async def insert(self, record: Record) -> bool:
        return await self._repository.insert_record(record)

    async def scan(self, predicate: Callable[[Record], bool]) -> List[Record]:
        """All records satisfying predicate. Reads a snapshot; never blocks on ingestion."""
        return [record for record in await self._repository.list_records() if predicate(record)]

    async def authorizations(
        self, record_id: str, grantee_id: Optional[str] = None
    ) -> List[Authorization]:
        return await self._repository.list_authorizations(record_id, grantee_id)

    async def save_authorization(self, authorization: Authorization) -> None:
        await self._repository.save_authorization(authorization)

    async def grant_state(self, record_id: str, grantee_id: str) -> GrantState:
        return current_state(await self._repository.list_authorizations(record_id, grantee_id))

    async def accessible_record_ids(self, requester_id: str) -> Set[str]:
        return await self._repository.active_record_ids(requester_id)

    async def can_view(self, record: Record, requester_id: Optional[str]) -> bool:
        """Owners always see their records; others need an active authorization."""
        if requester_id is None:
            return False
        if record.is_owned_by(requester_id):
            return True
        return await self.grant_state(record.record_id, requester_id) == GrantState.ACTIVE

    async def get_checkpoint(self, chain: ChainId) -> Optional[int]:
        return await self._repository.get_checkpoint(chain)

    async def save_checkpoint(self, chain: ChainId, block_height: int) -> None:
        await self._repository.save_checkpoint(chain, block_height)
