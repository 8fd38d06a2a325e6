"""DB-backed record index. Records, authorizations and checkpoints in PostgreSQL."""

from typing import List, Optional, Set

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from medcross.domain.models.authorization import Authorization, AuthorizationStatus
from medcross.domain.models.record import ChainId, DataType, Record
from medcross.infrastructure.database.models import AuthorizationRow, CheckpointRow, RecordRow


def _to_record(row: RecordRow) -> Record:
    return Record(
        record_id=row.record_id,
        origin_chain=ChainId(row.origin_chain),
        file_name=row.file_name,
        data_type=DataType(row.data_type),
        owner_id=row.owner_id,
        uploaded_at=row.uploaded_at,
        size_bytes=row.size_bytes,
        content_hash=row.content_hash,
        ledger_tx_ref=row.ledger_tx_ref,
        block_height=row.block_height,
        description=row.description or "",
        tags=frozenset(row.tags or ()),
    )


def _to_authorization(row: AuthorizationRow) -> Authorization:
    return Authorization(
        authorization_id=row.authorization_id,
        record_id=row.record_id,
        grantee_id=row.grantee_id,
        granted_at=row.granted_at,
        status=AuthorizationStatus(row.status),
        origin_tx_ref=row.origin_tx_ref,
        granted_block_height=row.granted_block_height,
        revoked_at=row.revoked_at,
        revoke_tx_ref=row.revoke_tx_ref,
        revoked_block_height=row.revoked_block_height,
    )


class DbRecordIndexRepository:
    """Implements RecordIndexRepository. One short session per call; every write commits."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get_record(self, record_id: str) -> Optional[Record]:
        async with self._session_factory() as session:
            row = await session.get(RecordRow, record_id)
            return _to_record(row) if row is not None else None

    async def insert_record(self, record: Record) -> bool:
        stmt = (
            insert(RecordRow)
            .values(
                record_id=record.record_id,
                origin_chain=record.origin_chain.value,
                file_name=record.file_name,
                data_type=record.data_type.value,
                owner_id=record.owner_id,
                uploaded_at=record.uploaded_at,
                size_bytes=record.size_bytes,
                description=record.description,
                tags=sorted(record.tags),
                content_hash=record.content_hash,
                ledger_tx_ref=record.ledger_tx_ref,
                block_height=record.block_height,
            )
            .on_conflict_do_nothing(index_elements=["record_id"])
            .returning(RecordRow.record_id)
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            inserted = result.scalar_one_or_none()
            await session.commit()
        return inserted is not None

    async def list_records(self) -> List[Record]:
        async with self._session_factory() as session:
            result = await session.execute(select(RecordRow))
            return [_to_record(row) for row in result.scalars().all()]

    async def list_authorizations(
        self, record_id: str, grantee_id: Optional[str] = None
    ) -> List[Authorization]:
        stmt = select(AuthorizationRow).where(AuthorizationRow.record_id == record_id)
        if grantee_id is not None:
            stmt = stmt.where(AuthorizationRow.grantee_id == grantee_id)
        stmt = stmt.order_by(
            AuthorizationRow.granted_block_height,
            AuthorizationRow.granted_at,
            AuthorizationRow.authorization_id,
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return [_to_authorization(row) for row in result.scalars().all()]

    async def save_authorization(self, authorization: Authorization) -> None:
        values = {
            "authorization_id": authorization.authorization_id,
            "record_id": authorization.record_id,
            "grantee_id": authorization.grantee_id,
            "granted_at": authorization.granted_at,
            "status": authorization.status.value,
            "origin_tx_ref": authorization.origin_tx_ref,
            "granted_block_height": authorization.granted_block_height,
            "revoked_at": authorization.revoked_at,
            "revoke_tx_ref": authorization.revoke_tx_ref,
            "revoked_block_height": authorization.revoked_block_height,
        }
        stmt = insert(AuthorizationRow).values(**values)
        # Only the revocation columns ever change after insert.
        stmt = stmt.on_conflict_do_update(
            index_elements=["authorization_id"],
            set_={
                "status": values["status"],
                "revoked_at": values["revoked_at"],
                "revoke_tx_ref": values["revoke_tx_ref"],
                "revoked_block_height": values["revoked_block_height"],
            },
        )
        async with self._session_factory() as session:
            await session.execute(stmt)
            await session.commit()

    async def active_record_ids(self, grantee_id: str) -> Set[str]:
        stmt = select(AuthorizationRow.record_id).where(
            AuthorizationRow.grantee_id == grantee_id,
            AuthorizationRow.status == AuthorizationStatus.ACTIVE.value,
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return set(result.scalars().all())

    async def get_checkpoint(self, chain: ChainId) -> Optional[int]:
        async with self._session_factory() as session:
            row = await session.get(CheckpointRow, chain.value)
            return row.block_height if row is not None else None

    async def save_checkpoint(self, chain: ChainId, block_height: int) -> None:
        stmt = (
            insert(CheckpointRow)
            .values(chain=chain.value, block_height=block_height)
            .on_conflict_do_update(index_elements=["chain"], set_={"block_height": block_height})
        )
        async with self._session_factory() as session:
            await session.execute(stmt)
            await session.commit()
