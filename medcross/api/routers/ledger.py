"""Ledger API router: ledger-sourced audit events, by chain and kind or by transaction."""

from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from medcross.api.dependencies import get_query_engine, get_requester_id
from medcross.application.query_engine import QueryEngine
from medcross.domain.exceptions import DomainValidationError
from medcross.domain.models.audit_event import AuditEventKind
from medcross.domain.models.record import parse_chain
from medcross.domain.schemas.record import AuditEventResponse

router = APIRouter()


@router.get("/transactions", response_model=list[AuditEventResponse])
async def list_transactions(
    chain: Optional[str] = None,
    kind: Optional[AuditEventKind] = None,
    limit: Annotated[int, Query(ge=1)] = 50,
    offset: Annotated[int, Query(ge=0)] = 0,
    requester_id: Annotated[str, Depends(get_requester_id)] = ...,
    query_engine: Annotated[QueryEngine, Depends(get_query_engine)] = ...,
):
    """Newest first. Only events on records the requester may see."""
    try:
        chain_id = parse_chain(chain) if chain else None
    except DomainValidationError as e:
        return JSONResponse(status_code=422, content={"detail": e.message})
    events = await query_engine.ledger_transactions(
        requester_id, chain=chain_id, kind=kind, limit=limit, offset=offset
    )
    return [AuditEventResponse.from_event(e) for e in events]


@router.get("/transactions/{tx_ref}", response_model=list[AuditEventResponse])
async def get_transaction(
    tx_ref: str,
    requester_id: Annotated[str, Depends(get_requester_id)] = ...,
    query_engine: Annotated[QueryEngine, Depends(get_query_engine)] = ...,
):
    """Audit events produced by one ledger transaction."""
    events = await query_engine.get_transaction(tx_ref, requester_id)
    if not events:
        return JSONResponse(status_code=404, content={"detail": "Transaction not found"})
    return [AuditEventResponse.from_event(e) for e in events]
