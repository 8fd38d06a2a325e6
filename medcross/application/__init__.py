# Application layer: services that orchestrate domain and infrastructure.

from medcross.application.audit_log import AuditLog, AuditRepository
from medcross.application.exceptions import (
    ApplicationError,
    AuditStorageError,
    MessagingFailureError,
    SubmissionTimeoutError,
)
from medcross.application.pipeline import ChainEventSource, IngestionPipeline, RawBlock
from medcross.application.query_engine import QueryEngine, RecordDetail, SearchResult, Statistics
from medcross.application.reconciler import IngestionReconciler, IngestOutcome, OutcomeStatus
from medcross.application.record_index import RecordIndex, RecordIndexRepository
from medcross.application.sharing_service import LedgerSubmitter, SharingService

__all__ = [
    "ApplicationError",
    "AuditLog",
    "AuditRepository",
    "AuditStorageError",
    "ChainEventSource",
    "IngestOutcome",
    "IngestionPipeline",
    "IngestionReconciler",
    "LedgerSubmitter",
    "MessagingFailureError",
    "OutcomeStatus",
    "QueryEngine",
    "RawBlock",
    "RecordDetail",
    "RecordIndex",
    "RecordIndexRepository",
    "SearchResult",
    "SharingService",
    "Statistics",
    "SubmissionTimeoutError",
]
