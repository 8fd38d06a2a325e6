"""Records API router: search, data types, detail, authorizations, and upload/grant/revoke submission."""

from datetime import datetime
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Header, Query
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from medcross.api.dependencies import (
    get_correlation_id,
    get_query_engine,
    get_requester_id,
    get_sharing_service,
)
from medcross.application.query_engine import QueryEngine
from medcross.application.sharing_service import SharingService
from medcross.config.settings import get_settings
from medcross.domain.models.record import DataType, data_type_aliases
from medcross.domain.schemas.record import (
    AuditEventResponse,
    AuthorizationResponse,
    DataTypeResponse,
    GrantRequest,
    RecordDetailResponse,
    RecordResponse,
    SearchFilter,
    SearchResponse,
    SortKey,
    SubmissionReceipt,
    UploadRequest,
)

router = APIRouter()

_SORT_ALIASES = {"name": SortKey.FILE_NAME, "filename": SortKey.FILE_NAME}


def _parse_sort(value: Optional[str]) -> Optional[SortKey]:
    if not value:
        return SortKey.NEWEST
    normalized = value.strip().lower()
    if normalized in _SORT_ALIASES:
        return _SORT_ALIASES[normalized]
    try:
        return SortKey(normalized)
    except ValueError:
        return None


def _idempotency_key_missing() -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"detail": "X-Idempotency-Key header is required"},
    )


@router.get("", response_model=SearchResponse)
async def search_records(
    keyword: Optional[str] = None,
    data_type: Optional[str] = None,
    chain_source: Optional[str] = None,
    tag: Optional[str] = None,
    uploaded_after: Optional[datetime] = None,
    uploaded_before: Optional[datetime] = None,
    page: Annotated[int, Query(ge=1)] = 1,
    page_size: Annotated[Optional[int], Query(ge=1)] = None,
    sort: Optional[str] = None,
    requester_id: Annotated[str, Depends(get_requester_id)] = ...,
    query_engine: Annotated[QueryEngine, Depends(get_query_engine)] = ...,
):
    """Records the requester owns or holds an active grant for, filtered, sorted and paginated."""
    sort_key = _parse_sort(sort)
    if sort_key is None:
        return JSONResponse(status_code=422, content={"detail": f"Unknown sort key: {sort!r}"})
    try:
        search_filter = SearchFilter(
            keyword=keyword,
            data_type=data_type,
            chain_source=chain_source,
            tag=tag,
            uploaded_after=uploaded_after,
            uploaded_before=uploaded_before,
            requester_id=requester_id,
        )
    except ValidationError as e:
        return JSONResponse(
            status_code=422,
            content={"detail": [err["msg"] for err in e.errors()]},
        )

    size = page_size or get_settings().default_page_size
    result = await query_engine.search(search_filter, page=page, page_size=size, sort_key=sort_key)
    return SearchResponse(
        items=[RecordResponse.from_record(record) for record in result.items],
        total_known=result.total_known,
        has_more=result.has_more,
        page=page,
        page_size=size,
    )


@router.post("", status_code=202, response_model=SubmissionReceipt)
async def request_upload(
    body: UploadRequest,
    x_idempotency_key: Annotated[Optional[str], Header(alias="X-Idempotency-Key")] = None,
    requester_id: Annotated[str, Depends(get_requester_id)] = ...,
    correlation_id: Annotated[str, Depends(get_correlation_id)] = ...,
    sharing_service: Annotated[SharingService, Depends(get_sharing_service)] = ...,
):
    """Submit an upload to the target ledger. The record appears in search once the ledger confirms it."""
    if not x_idempotency_key or not x_idempotency_key.strip():
        return _idempotency_key_missing()
    return await sharing_service.request_upload(
        body,
        owner_id=requester_id,
        idempotency_key=x_idempotency_key.strip(),
        correlation_id=correlation_id,
    )


@router.get("/data-types", response_model=list[DataTypeResponse])
async def list_data_types():
    """Closed set of data types with the alternative labels accepted on input."""
    return [DataTypeResponse(value=data_type, aliases=data_type_aliases(data_type)) for data_type in DataType]


@router.get("/{record_id}", response_model=RecordDetailResponse)
async def get_record_detail(
    record_id: str,
    requester_id: Annotated[str, Depends(get_requester_id)] = ...,
    query_engine: Annotated[QueryEngine, Depends(get_query_engine)] = ...,
):
    """Record metadata with authorizations and audit trail. 404 for missing and for not visible alike."""
    detail = await query_engine.get_detail(record_id, requester_id)
    return RecordDetailResponse(
        **RecordResponse.from_record(detail.record).model_dump(),
        authorizations=[AuthorizationResponse.from_authorization(a) for a in detail.authorizations],
        audit_trail=[AuditEventResponse.from_event(e) for e in detail.audit_trail],
    )


@router.get("/{record_id}/authorizations", response_model=list[AuthorizationResponse])
async def list_record_authorizations(
    record_id: str,
    requester_id: Annotated[str, Depends(get_requester_id)] = ...,
    query_engine: Annotated[QueryEngine, Depends(get_query_engine)] = ...,
):
    """Full authorization history (owner only)."""
    authorizations = await query_engine.list_authorizations(record_id, requester_id)
    return [AuthorizationResponse.from_authorization(a) for a in authorizations]


@router.post("/{record_id}/grants", status_code=202, response_model=SubmissionReceipt)
async def request_grant(
    record_id: str,
    body: GrantRequest,
    x_idempotency_key: Annotated[Optional[str], Header(alias="X-Idempotency-Key")] = None,
    requester_id: Annotated[str, Depends(get_requester_id)] = ...,
    correlation_id: Annotated[str, Depends(get_correlation_id)] = ...,
    sharing_service: Annotated[SharingService, Depends(get_sharing_service)] = ...,
):
    """Submit a grant to the record's origin ledger. The grant shows up once the ledger confirms it."""
    if not x_idempotency_key or not x_idempotency_key.strip():
        return _idempotency_key_missing()
    return await sharing_service.request_grant(
        record_id=record_id,
        grantee_id=body.grantee_id.strip(),
        owner_id=requester_id,
        idempotency_key=x_idempotency_key.strip(),
        correlation_id=correlation_id,
    )


@router.delete("/{record_id}/grants/{grantee_id}", status_code=202, response_model=SubmissionReceipt)
async def request_revoke(
    record_id: str,
    grantee_id: str,
    x_idempotency_key: Annotated[Optional[str], Header(alias="X-Idempotency-Key")] = None,
    requester_id: Annotated[str, Depends(get_requester_id)] = ...,
    correlation_id: Annotated[str, Depends(get_correlation_id)] = ...,
    sharing_service: Annotated[SharingService, Depends(get_sharing_service)] = ...,
):
    """Submit a revoke to the record's origin ledger. 409 when no active grant is indexed."""
    if not x_idempotency_key or not x_idempotency_key.strip():
        return _idempotency_key_missing()
    return await sharing_service.request_revoke(
        record_id=record_id,
        grantee_id=grantee_id,
        owner_id=requester_id,
        idempotency_key=x_idempotency_key.strip(),
        correlation_id=correlation_id,
    )
