"""Sharing service: hands upload/grant/revoke requests to a ledger. Never mutates the index itself."""

import asyncio
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Protocol

from medcross.application.exceptions import MessagingFailureError, SubmissionTimeoutError
from medcross.application.record_index import RecordIndex
from medcross.domain.exceptions import (
    IdempotencyConflictError,
    InvalidTransitionError,
    NotFoundOrUnauthorizedError,
)
from medcross.domain.models.authorization import AuthorizationAction, GrantState
from medcross.domain.models.record import RECORD_NAMESPACE, ChainId, Record, normalize_user_id
from medcross.domain.schemas.record import SubmissionReceipt, UploadRequest
from medcross.domain.validators.record_validator import (
    validate_grant_request,
    validate_upload_fields,
    validate_user_id,
)

RECEIPT_PREFIX = "receipt:"
RECEIPT_TTL = 86400
DEFAULT_SUBMISSION_TIMEOUT = 5.0
UPLOAD_OPERATION = "upload"


class LedgerSubmitter(Protocol):
    """Delivers a signed-request message to the relayer of one chain."""

    async def submit(
        self,
        chain: ChainId,
        operation: str,
        message: Dict[str, Any],
        idempotency_key: str,
    ) -> None:
        ...


class ReceiptCache(Protocol):
    async def get_cache(self, key: str) -> Optional[str]:
        ...

    async def set_cache(self, key: str, value: str, ttl: int = 300) -> None:
        ...


def _receipt_key(owner_id: str, idempotency_key: str) -> str:
    return f"{RECEIPT_PREFIX}{owner_id}:{idempotency_key}"


def _submission_id(operation: str, subject: str, target: str, idempotency_key: str) -> str:
    return str(uuid.uuid5(RECORD_NAMESPACE, f"submission:{operation}:{subject}:{target}:{idempotency_key}"))


class SharingService:
    """
    Application-layer orchestration only. A request is checked against the
    index, published to the ledger within a bounded time, and answered with a
    receipt. The state change arrives later through ingestion; callers poll
    search or the record detail to observe it.
    Retries with the same idempotency key return the cached receipt; reusing
    a key for a different request is a conflict.
    """

    def __init__(
        self,
        record_index: RecordIndex,
        submitter: LedgerSubmitter,
        receipt_cache: ReceiptCache,
        logger: logging.Logger,
        timeout_seconds: float = DEFAULT_SUBMISSION_TIMEOUT,
        receipt_ttl: int = RECEIPT_TTL,
    ) -> None:
        self._index = record_index
        self._submitter = submitter
        self._cache = receipt_cache
        self._logger = logger
        self._timeout = timeout_seconds
        self._receipt_ttl = receipt_ttl

    async def _owned_record(self, record_id: str, owner_id: str) -> Record:
        record = await self._index.get(record_id)
        if record is None or not record.is_owned_by(owner_id):
            raise NotFoundOrUnauthorizedError(record_id)
        return record

    async def request_upload(
        self,
        upload: UploadRequest,
        owner_id: str,
        idempotency_key: str,
        correlation_id: str = "",
    ) -> SubmissionReceipt:
        """Ask target_chain to anchor a record owned by owner_id. The record is indexed once the upload confirms."""
        owner_id = normalize_user_id(owner_id)
        validate_user_id(owner_id, "owner_id")
        validate_user_id(idempotency_key, "idempotency_key")
        validate_upload_fields(upload.file_name, upload.size_bytes, upload.content_hash)
        cache_key = _receipt_key(owner_id, idempotency_key)

        # Step 1: Idempotent replay
        cached = await self._replay(
            cache_key,
            correlation_id,
            operation=UPLOAD_OPERATION,
            record_id=None,
            grantee_id=None,
            content_hash=upload.content_hash,
            origin_chain=upload.target_chain,
        )
        if cached is not None:
            return cached

        # Step 2: Publish to the target chain, bounded in time
        submission_id = _submission_id(UPLOAD_OPERATION, owner_id, upload.content_hash, idempotency_key)
        message = {
            "submission_id": submission_id,
            "operation": UPLOAD_OPERATION,
            "owner_id": owner_id,
            "file_name": upload.file_name,
            "data_type": upload.data_type.value,
            "size_bytes": upload.size_bytes,
            "content_hash": upload.content_hash,
            "description": upload.description,
            "tags": list(upload.tags),
            "correlation_id": correlation_id,
        }
        await self._publish(upload.target_chain, UPLOAD_OPERATION, message, idempotency_key, submission_id)

        # Step 3: Cache receipt for retries
        receipt = SubmissionReceipt(
            submission_id=submission_id,
            operation=UPLOAD_OPERATION,
            content_hash=upload.content_hash,
            origin_chain=upload.target_chain,
            submitted_at=datetime.now(timezone.utc),
        )
        await self._cache.set_cache(cache_key, receipt.model_dump_json(), ttl=self._receipt_ttl)
        return receipt

    async def request_grant(
        self,
        record_id: str,
        grantee_id: str,
        owner_id: str,
        idempotency_key: str,
        correlation_id: str = "",
    ) -> SubmissionReceipt:
        """Ask the origin chain to grant grantee access. Re-granting an active grant is allowed (no-op on ingest)."""
        owner_id = normalize_user_id(owner_id)
        grantee_id = normalize_user_id(grantee_id)
        validate_grant_request(owner_id, grantee_id)
        return await self._submit(
            AuthorizationAction.GRANT, record_id, grantee_id, owner_id, idempotency_key, correlation_id
        )

    async def request_revoke(
        self,
        record_id: str,
        grantee_id: str,
        owner_id: str,
        idempotency_key: str,
        correlation_id: str = "",
    ) -> SubmissionReceipt:
        """Ask the origin chain to revoke. Rejected up front when no active grant is indexed."""
        owner_id = normalize_user_id(owner_id)
        grantee_id = normalize_user_id(grantee_id)
        validate_user_id(owner_id, "owner_id")
        validate_user_id(grantee_id, "grantee_id")
        return await self._submit(
            AuthorizationAction.REVOKE, record_id, grantee_id, owner_id, idempotency_key, correlation_id
        )

    async def _replay(self, cache_key: str, correlation_id: str, **expected: Any) -> Optional[SubmissionReceipt]:
        cached = await self._cache.get_cache(cache_key)
        if not cached:
            return None
        receipt = SubmissionReceipt.model_validate_json(cached)
        mismatched = [name for name, value in expected.items() if getattr(receipt, name) != value]
        if mismatched:
            self._logger.warning(
                "idempotency_conflict",
                extra={"submission_id": receipt.submission_id, "fields": mismatched, "correlation_id": correlation_id},
            )
            raise IdempotencyConflictError(
                f"Idempotency key already used for a different {receipt.operation} request"
            )
        self._logger.info(
            "submission_replayed",
            extra={"submission_id": receipt.submission_id, "correlation_id": correlation_id},
        )
        return receipt

    async def _publish(
        self,
        chain: ChainId,
        operation: str,
        message: Dict[str, Any],
        idempotency_key: str,
        submission_id: str,
    ) -> None:
        try:
            await asyncio.wait_for(
                self._submitter.submit(chain, operation, message, idempotency_key),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError as e:
            self._logger.error(
                "submission_timeout",
                extra={"submission_id": submission_id, "origin_chain": chain.value, "timeout": self._timeout},
            )
            raise SubmissionTimeoutError(f"Submission to {chain.value} timed out after {self._timeout}s") from e
        except Exception as e:
            self._logger.error(
                "submission_failed",
                extra={"submission_id": submission_id, "origin_chain": chain.value, "error": str(e)},
            )
            raise MessagingFailureError(f"Submission failed: {e}") from e

        self._logger.info(
            "submission_published",
            extra={
                "submission_id": submission_id,
                "operation": operation,
                "record_id": message.get("record_id"),
                "origin_chain": chain.value,
                "correlation_id": message.get("correlation_id"),
            },
        )

    async def _submit(
        self,
        action: AuthorizationAction,
        record_id: str,
        grantee_id: str,
        owner_id: str,
        idempotency_key: str,
        correlation_id: str,
    ) -> SubmissionReceipt:
        validate_user_id(idempotency_key, "idempotency_key")
        cache_key = _receipt_key(owner_id, idempotency_key)

        # Step 1: Idempotent replay
        cached = await self._replay(
            cache_key,
            correlation_id,
            operation=action.value,
            record_id=record_id,
            grantee_id=grantee_id,
            content_hash=None,
        )
        if cached is not None:
            return cached

        # Step 2: Check against the index
        record = await self._owned_record(record_id, owner_id)
        if action == AuthorizationAction.REVOKE:
            state = await self._index.grant_state(record.record_id, grantee_id)
            if state != GrantState.ACTIVE:
                raise InvalidTransitionError(
                    f"No active grant of record {record.record_id} to {grantee_id} (state {state.value})"
                )

        # Step 3: Publish to the origin chain, bounded in time
        submission_id = _submission_id(action.value, record.record_id, grantee_id, idempotency_key)
        message = {
            "submission_id": submission_id,
            "operation": action.value,
            "record_id": record.record_id,
            "upload_tx_ref": record.ledger_tx_ref,
            "owner_id": owner_id,
            "grantee_id": grantee_id,
            "correlation_id": correlation_id,
        }
        await self._publish(record.origin_chain, action.value, message, idempotency_key, submission_id)

        # Step 4: Cache receipt for retries
        receipt = SubmissionReceipt(
            submission_id=submission_id,
            operation=action.value,
            record_id=record.record_id,
            grantee_id=grantee_id,
            origin_chain=record.origin_chain,
            submitted_at=datetime.now(timezone.utc),
        )
        await self._cache.set_cache(cache_key, receipt.model_dump_json(), ttl=self._receipt_ttl)
        return receipt
