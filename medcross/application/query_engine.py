"""Query engine: requester-scoped search, record detail and statistics over the record index."""

import logging
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Set

from medcross.application.audit_log import AuditLog
from medcross.application.record_index import RecordIndex
from medcross.domain.exceptions import DomainValidationError, NotFoundOrUnauthorizedError
from medcross.domain.models.audit_event import AuditEvent, AuditEventKind
from medcross.domain.models.authorization import Authorization
from medcross.domain.models.record import ChainId, DataType, Record, normalize_user_id
from medcross.domain.schemas.record import SearchFilter, SortKey
from medcross.domain.validators.record_validator import validate_pagination, validate_user_id

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


@dataclass(frozen=True)
class SearchResult:
    items: List[Record]
    total_known: int
    has_more: bool


@dataclass(frozen=True)
class RecordDetail:
    record: Record
    authorizations: List[Authorization]
    audit_trail: List[AuditEvent]


@dataclass(frozen=True)
class Statistics:
    total_records: int
    per_chain_counts: Dict[str, int]
    per_type_counts: Dict[str, int]
    monthly_growth: List[Dict[str, object]]


_SORTS: Dict[SortKey, tuple] = {
    SortKey.NEWEST: (lambda r: (r.uploaded_at, r.record_id), True),
    SortKey.OLDEST: (lambda r: (r.uploaded_at, r.record_id), False),
    SortKey.FILE_NAME: (lambda r: (r.file_name.lower(), r.record_id), False),
}


def _build_predicate(
    search_filter: SearchFilter, visible_ids: Optional[Set[str]]
) -> Callable[[Record], bool]:
    """Visibility first, then the optional conjunctive filters."""

    def predicate(record: Record) -> bool:
        if visible_ids is not None:
            if not (record.is_owned_by(search_filter.requester_id) or record.record_id in visible_ids):
                return False
        if search_filter.data_type is not None and record.data_type != search_filter.data_type:
            return False
        if search_filter.chain_source is not None and record.origin_chain != search_filter.chain_source:
            return False
        if search_filter.owner_id is not None and record.owner_id != search_filter.owner_id:
            return False
        if search_filter.tag is not None and search_filter.tag not in record.tags:
            return False
        if search_filter.uploaded_after is not None and record.uploaded_at < search_filter.uploaded_after:
            return False
        if search_filter.uploaded_before is not None and record.uploaded_at > search_filter.uploaded_before:
            return False
        if search_filter.keyword is not None and not record.matches_keyword(search_filter.keyword):
            return False
        return True

    return predicate


def _grantee_may_see(event: AuditEvent, requester_id: str) -> bool:
    """Non-owners see the upload and only the events they took part in."""
    return (
        event.kind == AuditEventKind.UPLOAD
        or event.actor_id == requester_id
        or event.subject_id == requester_id
    )


class QueryEngine:
    """
    Read side of the core. Never takes ingestion locks; results reflect the
    index as of the read and may trail the ledgers by their confirmation depth.
    """

    def __init__(
        self,
        record_index: RecordIndex,
        audit_log: AuditLog,
        max_page_size: int = MAX_PAGE_SIZE,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._index = record_index
        self._audit = audit_log
        self._max_page_size = max_page_size
        self._logger = logger or logging.getLogger(__name__)

    async def search(
        self,
        search_filter: SearchFilter,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
        sort_key: SortKey = SortKey.NEWEST,
    ) -> SearchResult:
        """
        Filter, sort, then paginate. When requester_id is set, records the
        requester neither owns nor holds an active grant for are removed before
        counting, so totals and page boundaries say nothing about hidden records.
        """
        validate_pagination(page, page_size, self._max_page_size)
        visible_ids = None
        if search_filter.requester_id is not None:
            visible_ids = await self._index.accessible_record_ids(search_filter.requester_id)
        matches = await self._index.scan(_build_predicate(search_filter, visible_ids))
        key, reverse = _SORTS[sort_key]
        matches.sort(key=key, reverse=reverse)
        start = (page - 1) * page_size
        items = matches[start:start + page_size]
        return SearchResult(
            items=items,
            total_known=len(matches),
            has_more=start + len(items) < len(matches),
        )

    async def _visible_record(self, record_id: str, requester_id: str) -> Record:
        validate_user_id(requester_id, "requester_id")
        record = await self._index.get(record_id)
        if record is None or not await self._index.can_view(record, requester_id):
            raise NotFoundOrUnauthorizedError(record_id)
        return record

    async def get_detail(self, record_id: str, requester_id: str) -> RecordDetail:
        """
        Record with its authorizations and audit trail. The view itself is
        audited as an access. Owners see every grant; grantees see only their own.
        """
        requester_id = normalize_user_id(requester_id)
        record = await self._visible_record(record_id, requester_id)
        await self._audit.append(
            AuditEvent.off_chain_access(
                record_id=record.record_id,
                actor_id=requester_id,
                origin_chain=record.origin_chain,
                timestamp=datetime.now(timezone.utc),
            )
        )
        trail = await self._audit.query_trail(record.record_id)
        if record.is_owned_by(requester_id):
            authorizations = await self._index.authorizations(record.record_id)
        else:
            authorizations = await self._index.authorizations(record.record_id, requester_id)
            trail = [event for event in trail if _grantee_may_see(event, requester_id)]
        self._logger.info("record_accessed", extra={"record_id": record.record_id})
        return RecordDetail(record=record, authorizations=authorizations, audit_trail=trail)

    async def list_authorizations(self, record_id: str, requester_id: str) -> List[Authorization]:
        """Full authorization history. Owner only; anyone else gets the uniform denial."""
        requester_id = normalize_user_id(requester_id)
        record = await self._visible_record(record_id, requester_id)
        if not record.is_owned_by(requester_id):
            raise NotFoundOrUnauthorizedError(record_id)
        return await self._index.authorizations(record.record_id)

    async def _event_visible(
        self, event: AuditEvent, requester_id: str, owned_by_requester: Dict[str, Optional[bool]]
    ) -> bool:
        # Per record: True owner, False grantee, None not visible.
        if event.record_id not in owned_by_requester:
            record = await self._index.get(event.record_id)
            if record is None or not await self._index.can_view(record, requester_id):
                owned_by_requester[event.record_id] = None
            else:
                owned_by_requester[event.record_id] = record.is_owned_by(requester_id)
        owned = owned_by_requester[event.record_id]
        if owned is None:
            return False
        return owned or _grantee_may_see(event, requester_id)

    async def ledger_transactions(
        self,
        requester_id: str,
        chain: Optional[ChainId] = None,
        kind: Optional[AuditEventKind] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[AuditEvent]:
        """
        Ledger-sourced audit events the requester may see, newest first.
        Off-chain accesses have no transaction and are not listed.
        """
        validate_user_id(requester_id, "requester_id")
        requester_id = normalize_user_id(requester_id)
        validate_pagination(1, limit, self._max_page_size)
        if offset < 0:
            raise DomainValidationError(f"offset must be >= 0, got {offset}")
        visible: List[AuditEvent] = []
        cache: Dict[str, Optional[bool]] = {}
        cursor = 0
        while len(visible) < offset + limit:
            batch = await self._audit.list_events(chain=chain, kind=kind, limit=self._max_page_size, offset=cursor)
            if not batch:
                break
            cursor += len(batch)
            for event in batch:
                if event.ledger_tx_ref is not None and await self._event_visible(event, requester_id, cache):
                    visible.append(event)
        return visible[offset:offset + limit]

    async def get_transaction(self, ledger_tx_ref: str, requester_id: str) -> List[AuditEvent]:
        """Audit events produced by one ledger transaction. Empty when none is visible."""
        validate_user_id(requester_id, "requester_id")
        requester_id = normalize_user_id(requester_id)
        cache: Dict[str, Optional[bool]] = {}
        return [
            event
            for event in await self._audit.get_by_tx_ref(ledger_tx_ref)
            if await self._event_visible(event, requester_id, cache)
        ]

    async def get_statistics(self) -> Statistics:
        """Aggregate over every indexed record, grouped by chain, type and upload month."""
        records = await self._index.scan(lambda record: True)
        per_chain = Counter(record.origin_chain.value for record in records)
        per_type = Counter(record.data_type.value for record in records)
        per_month = Counter(record.uploaded_at.astimezone(timezone.utc).strftime("%Y-%m") for record in records)
        growth = []
        cumulative = 0
        for month in sorted(per_month):
            cumulative += per_month[month]
            growth.append({"month": month, "count": per_month[month], "cumulative": cumulative})
        return Statistics(
            total_records=len(records),
            per_chain_counts={chain.value: per_chain.get(chain.value, 0) for chain in ChainId},
            per_type_counts={data_type.value: per_type.get(data_type.value, 0) for data_type in DataType},
            monthly_growth=growth,
        )
