"""Domain models. Pure business entities."""

from medcross.domain.models.audit_event import AuditEvent, AuditEventKind
from medcross.domain.models.authorization import (
    Authorization,
    AuthorizationStateMachine,
    AuthorizationStatus,
    GrantState,
    TransitionResult,
    current_state,
)
from medcross.domain.models.ingest_event import IngestEvent, IngestEventKind
from medcross.domain.models.record import (
    ChainId,
    DataType,
    Record,
    RecordKey,
    data_type_aliases,
    derive_record_id,
    normalize_user_id,
    parse_chain,
    parse_data_type,
)

__all__ = [
    "AuditEvent",
    "AuditEventKind",
    "Authorization",
    "AuthorizationStateMachine",
    "AuthorizationStatus",
    "ChainId",
    "DataType",
    "GrantState",
    "IngestEvent",
    "IngestEventKind",
    "Record",
    "RecordKey",
    "TransitionResult",
    "current_state",
    "data_type_aliases",
    "derive_record_id",
    "normalize_user_id",
    "parse_chain",
    "parse_data_type",
]
