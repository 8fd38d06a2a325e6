"""FastAPI dependency injection: storage, Redis, submitter, application services, requester and correlation ids."""

import logging
from typing import Annotated, Optional

from fastapi import Depends, Request

from medcross.application.audit_log import AuditLog
from medcross.application.query_engine import QueryEngine
from medcross.application.record_index import RecordIndex
from medcross.application.sharing_service import SharingService
from medcross.config.settings import get_settings
from medcross.infrastructure.cache.redis_client import RedisClient
from medcross.infrastructure.messaging.rabbitmq_publisher import RabbitMQLedgerSubmitter
from medcross.infrastructure.storage import build_repositories

_record_index: Optional[RecordIndex] = None
_audit_log: Optional[AuditLog] = None
_redis_client: Optional[RedisClient] = None
_submitter: Optional[RabbitMQLedgerSubmitter] = None


def _init_storage() -> None:
    global _record_index, _audit_log
    record_repository, audit_repository = build_repositories(get_settings())
    _record_index = RecordIndex(record_repository)
    _audit_log = AuditLog(audit_repository, logger=logging.getLogger("medcross.audit"))


def get_record_index() -> RecordIndex:
    """Return singleton record index for the configured backend."""
    if _record_index is None:
        _init_storage()
    return _record_index


def get_audit_log() -> AuditLog:
    """Return singleton audit log for the configured backend."""
    if _audit_log is None:
        _init_storage()
    return _audit_log


def get_redis_client() -> RedisClient:
    """Return singleton Redis client."""
    global _redis_client
    if _redis_client is None:
        _redis_client = RedisClient()
    return _redis_client


def get_submitter() -> RabbitMQLedgerSubmitter:
    """Return singleton RabbitMQ submitter."""
    global _submitter
    if _submitter is None:
        _submitter = RabbitMQLedgerSubmitter()
    return _submitter


def get_query_engine(
    record_index: Annotated[RecordIndex, Depends(get_record_index)],
    audit_log: Annotated[AuditLog, Depends(get_audit_log)],
) -> QueryEngine:
    return QueryEngine(
        record_index=record_index,
        audit_log=audit_log,
        max_page_size=get_settings().max_page_size,
        logger=logging.getLogger("medcross.query"),
    )


def get_sharing_service(
    record_index: Annotated[RecordIndex, Depends(get_record_index)],
    redis: Annotated[RedisClient, Depends(get_redis_client)],
    submitter: Annotated[RabbitMQLedgerSubmitter, Depends(get_submitter)],
) -> SharingService:
    """Build SharingService with injected index, submitter, receipt cache and logger."""
    settings = get_settings()
    return SharingService(
        record_index=record_index,
        submitter=submitter,
        receipt_cache=redis,
        logger=logging.getLogger("medcross.sharing"),
        timeout_seconds=settings.submission_timeout_seconds,
        receipt_ttl=settings.receipt_ttl_seconds,
    )


def get_requester_id(request: Request) -> str:
    """Extract requester_id from request.state (set by middleware)."""
    return request.state.requester_id


def get_correlation_id(request: Request) -> str:
    """Extract correlation_id from request.state (set by middleware)."""
    return getattr(request.state, "correlation_id", "") or ""


async def close_clients() -> None:
    """Release network clients on shutdown."""
    global _redis_client, _submitter
    if _redis_client is not None:
        await _redis_client.close()
        _redis_client = None
    if _submitter is not None:
        await _submitter.close()
        _submitter = None
