"""Domain layer: models, schemas, validators, exceptions. Pure business logic only."""

from medcross.domain.exceptions import (
    DomainError,
    DomainValidationError,
    IdempotencyConflictError,
    InvalidTransitionError,
    MalformedEventError,
    NotFoundOrUnauthorizedError,
    OrphanEventError,
)
from medcross.domain.models import (
    AuditEvent,
    AuditEventKind,
    Authorization,
    AuthorizationStateMachine,
    AuthorizationStatus,
    ChainId,
    DataType,
    GrantState,
    IngestEvent,
    IngestEventKind,
    Record,
    RecordKey,
)
from medcross.domain.schemas import SearchFilter, SortKey

__all__ = [
    "AuditEvent",
    "AuditEventKind",
    "Authorization",
    "AuthorizationStateMachine",
    "AuthorizationStatus",
    "ChainId",
    "DataType",
    "DomainError",
    "DomainValidationError",
    "GrantState",
    "IdempotencyConflictError",
    "IngestEvent",
    "IngestEventKind",
    "InvalidTransitionError",
    "MalformedEventError",
    "NotFoundOrUnauthorizedError",
    "OrphanEventError",
    "Record",
    "RecordKey",
    "SearchFilter",
    "SortKey",
]
