"""Domain schemas. Pydantic request/response models."""

from medcross.domain.schemas.record import (
    AuditEventResponse,
    AuthorizationResponse,
    DataTypeResponse,
    GrantRequest,
    MonthlyGrowth,
    RecordDetailResponse,
    RecordResponse,
    SearchFilter,
    SearchResponse,
    SortKey,
    StatisticsResponse,
    SubmissionReceipt,
    UploadRequest,
)

__all__ = [
    "AuditEventResponse",
    "AuthorizationResponse",
    "DataTypeResponse",
    "GrantRequest",
    "MonthlyGrowth",
    "RecordDetailResponse",
    "RecordResponse",
    "SearchFilter",
    "SearchResponse",
    "SortKey",
    "StatisticsResponse",
    "SubmissionReceipt",
    "UploadRequest",
]
