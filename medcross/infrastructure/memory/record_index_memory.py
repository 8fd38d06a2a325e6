"""In-memory record index. For dev, tests or a single node; state is lost on restart."""

from typing import Dict, List, Optional, Set

from medcross.domain.models.authorization import Authorization
from medcross.domain.models.record import ChainId, Record


class InMemoryRecordIndexRepository:
    """
    Implements RecordIndexRepository. Stored values are frozen dataclasses, so
    a list handed to a reader is a consistent snapshot even while ingestion continues.
    """

    def __init__(self) -> None:
        self._records: Dict[str, Record] = {}
        self._authorizations: Dict[str, Dict[str, Authorization]] = {}
        self._checkpoints: Dict[ChainId, int] = {}

    async def get_record(self, record_id: str) -> Optional[Record]:
        return self._records.get(record_id)

    async def insert_record(self, record: Record) -> bool:
        if record.record_id in self._records:
            return False
        self._records[record.record_id] = record
        return True

    async def list_records(self) -> List[Record]:
        return list(self._records.values())

    async def list_authorizations(
        self, record_id: str, grantee_id: Optional[str] = None
    ) -> List[Authorization]:
        history = [
            a
            for a in self._authorizations.get(record_id, {}).values()
            if grantee_id is None or a.grantee_id == grantee_id
        ]
        return sorted(history, key=lambda a: (a.granted_block_height, a.granted_at, a.authorization_id))

    async def save_authorization(self, authorization: Authorization) -> None:
        self._authorizations.setdefault(authorization.record_id, {})[authorization.authorization_id] = authorization

    async def active_record_ids(self, grantee_id: str) -> Set[str]:
        return {
            record_id
            for record_id, by_id in self._authorizations.items()
            if any(a.grantee_id == grantee_id and a.is_active for a in by_id.values())
        }

    async def get_checkpoint(self, chain: ChainId) -> Optional[int]:
        return self._checkpoints.get(chain)

    async def save_checkpoint(self, chain: ChainId, block_height: int) -> None:
        self._checkpoints[chain] = block_height
