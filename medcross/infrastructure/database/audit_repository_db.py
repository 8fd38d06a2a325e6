"""DB-backed audit store. Append-only table; event_id is unique, sequence comes from the database."""

from typing import List, Optional

from sqlalchemy import exists, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from medcross.domain.models.audit_event import AuditEvent, AuditEventKind
from medcross.domain.models.record import ChainId
from medcross.infrastructure.database.models import AuditEventRow


def _to_event(row: AuditEventRow) -> AuditEvent:
    return AuditEvent(
        event_id=row.event_id,
        kind=AuditEventKind(row.kind),
        record_id=row.record_id,
        actor_id=row.actor_id,
        timestamp=row.timestamp,
        origin_chain=ChainId(row.origin_chain),
        ledger_tx_ref=row.ledger_tx_ref,
        block_height=row.block_height,
        subject_id=row.subject_id,
        no_op=row.no_op,
        sequence=row.sequence,
    )


class DbAuditRepository:
    """Implements AuditRepository. No update or delete paths exist."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def append(self, event: AuditEvent) -> Optional[AuditEvent]:
        stmt = (
            insert(AuditEventRow)
            .values(
                event_id=event.event_id,
                kind=event.kind.value,
                record_id=event.record_id,
                actor_id=event.actor_id,
                timestamp=event.timestamp,
                origin_chain=event.origin_chain.value,
                ledger_tx_ref=event.ledger_tx_ref,
                block_height=event.block_height,
                subject_id=event.subject_id,
                no_op=event.no_op,
            )
            .on_conflict_do_nothing(index_elements=["event_id"])
            .returning(AuditEventRow)
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            row = result.scalar_one_or_none()
            await session.commit()
        return _to_event(row) if row is not None else None

    async def contains(self, event_id: str) -> bool:
        async with self._session_factory() as session:
            result = await session.execute(select(exists().where(AuditEventRow.event_id == event_id)))
            return bool(result.scalar())

    async def list_for_record(self, record_id: str) -> List[AuditEvent]:
        stmt = select(AuditEventRow).where(AuditEventRow.record_id == record_id).order_by(AuditEventRow.sequence)
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return [_to_event(row) for row in result.scalars().all()]

    async def list_by_tx_ref(self, ledger_tx_ref: str) -> List[AuditEvent]:
        stmt = (
            select(AuditEventRow)
            .where(AuditEventRow.ledger_tx_ref == ledger_tx_ref)
            .order_by(AuditEventRow.sequence)
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return [_to_event(row) for row in result.scalars().all()]

    async def list_events(
        self,
        chain: Optional[ChainId] = None,
        kind: Optional[AuditEventKind] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[AuditEvent]:
        stmt = select(AuditEventRow)
        if chain is not None:
            stmt = stmt.where(AuditEventRow.origin_chain == chain.value)
        if kind is not None:
            stmt = stmt.where(AuditEventRow.kind == kind.value)
        stmt = stmt.order_by(AuditEventRow.sequence.desc()).limit(limit).offset(offset)
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return [_to_event(row) for row in result.scalars().all()]
