"""Pydantic schemas for the record API. Strict validation, no DB or infrastructure."""

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from medcross.domain.exceptions import DomainValidationError
from medcross.domain.models.audit_event import AuditEvent, AuditEventKind
from medcross.domain.models.authorization import Authorization, AuthorizationStatus
from medcross.domain.models.record import (
    ChainId,
    DataType,
    Record,
    normalize_user_id,
    parse_chain,
    parse_data_type,
)


class SortKey(str, Enum):
    NEWEST = "newest"
    OLDEST = "oldest"
    FILE_NAME = "file_name"


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class SearchFilter(BaseModel):
    """Conjunctive search filter. All fields optional; requester_id is the access-control scope."""

    keyword: Optional[str] = None
    data_type: Optional[DataType] = None
    chain_source: Optional[ChainId] = None
    tag: Optional[str] = None
    owner_id: Optional[str] = None
    uploaded_after: Optional[datetime] = None
    uploaded_before: Optional[datetime] = None
    requester_id: Optional[str] = None

    @field_validator("data_type", mode="before")
    @classmethod
    def data_type_alias(cls, v):
        """Accept aliases (e.g. EMR, medical-image) and 'all' as no filter."""
        if v is None or isinstance(v, DataType):
            return v
        if str(v).strip().lower() in ("", "all"):
            return None
        try:
            return parse_data_type(str(v))
        except DomainValidationError as e:
            raise ValueError(e.message) from e

    @field_validator("chain_source", mode="before")
    @classmethod
    def chain_alias(cls, v):
        """Accept ethereum/fabric aliases and 'all' as no filter."""
        if v is None or isinstance(v, ChainId):
            return v
        if str(v).strip().lower() in ("", "all"):
            return None
        try:
            return parse_chain(str(v))
        except DomainValidationError as e:
            raise ValueError(e.message) from e

    @field_validator("keyword", "tag")
    @classmethod
    def blank_is_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        return v.strip()

    @field_validator("owner_id", "requester_id")
    @classmethod
    def canonical_identity(cls, v: Optional[str]) -> Optional[str]:
        """Identities compare in canonical form (account addresses lower-cased)."""
        if v is None or not v.strip():
            return None
        return normalize_user_id(v)

    @field_validator("uploaded_after", "uploaded_before")
    @classmethod
    def naive_is_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @model_validator(mode="after")
    def date_range_ordered(self) -> "SearchFilter":
        if self.uploaded_after and self.uploaded_before and self.uploaded_after > self.uploaded_before:
            raise ValueError("uploaded_after must not be later than uploaded_before")
        return self


class GrantRequest(BaseModel):
    """Request body for asking the origin ledger to grant access."""

    grantee_id: str = Field(..., min_length=1, description="User receiving access")


class UploadRequest(BaseModel):
    """
    Metadata of a file to anchor on target_chain. The payload is stored
    off-chain beforehand; content_hash references it.
    """

    target_chain: ChainId
    file_name: str = Field(..., min_length=1)
    data_type: DataType
    size_bytes: int = Field(..., ge=0)
    content_hash: str = Field(..., min_length=1)
    description: str = ""
    tags: List[str] = Field(default_factory=list)

    @field_validator("target_chain", mode="before")
    @classmethod
    def chain_alias(cls, v):
        if isinstance(v, ChainId):
            return v
        try:
            return parse_chain(str(v))
        except DomainValidationError as e:
            raise ValueError(e.message) from e

    @field_validator("data_type", mode="before")
    @classmethod
    def data_type_alias(cls, v):
        if isinstance(v, DataType):
            return v
        try:
            return parse_data_type(str(v))
        except DomainValidationError as e:
            raise ValueError(e.message) from e

    @field_validator("tags")
    @classmethod
    def distinct_tags(cls, v: List[str]) -> List[str]:
        return sorted({tag.strip() for tag in v if tag and tag.strip()})


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class RecordResponse(BaseModel):
    record_id: str
    origin_chain: ChainId
    file_name: str
    data_type: DataType
    owner_id: str
    uploaded_at: datetime
    size_bytes: int
    description: str
    tags: List[str]
    content_hash: str
    ledger_tx_ref: str
    block_height: int

    @classmethod
    def from_record(cls, record: Record) -> "RecordResponse":
        return cls(
            record_id=record.record_id,
            origin_chain=record.origin_chain,
            file_name=record.file_name,
            data_type=record.data_type,
            owner_id=record.owner_id,
            uploaded_at=record.uploaded_at,
            size_bytes=record.size_bytes,
            description=record.description,
            tags=sorted(record.tags),
            content_hash=record.content_hash,
            ledger_tx_ref=record.ledger_tx_ref,
            block_height=record.block_height,
        )


class AuthorizationResponse(BaseModel):
    authorization_id: str
    record_id: str
    grantee_id: str
    granted_at: datetime
    status: AuthorizationStatus
    revoked_at: Optional[datetime] = None
    origin_tx_ref: str
    revoke_tx_ref: Optional[str] = None

    model_config = {"from_attributes": True}

    @classmethod
    def from_authorization(cls, authorization: Authorization) -> "AuthorizationResponse":
        return cls.model_validate(authorization)


class AuditEventResponse(BaseModel):
    event_id: str
    kind: AuditEventKind
    record_id: str
    actor_id: str
    timestamp: datetime
    origin_chain: ChainId
    ledger_tx_ref: Optional[str] = None
    block_height: Optional[int] = None
    subject_id: Optional[str] = None
    no_op: bool = False

    model_config = {"from_attributes": True}

    @classmethod
    def from_event(cls, event: AuditEvent) -> "AuditEventResponse":
        return cls.model_validate(event)


class SearchResponse(BaseModel):
    items: List[RecordResponse]
    total_known: int
    has_more: bool
    page: int
    page_size: int


class RecordDetailResponse(RecordResponse):
    authorizations: List[AuthorizationResponse]
    audit_trail: List[AuditEventResponse]


class SubmissionReceipt(BaseModel):
    """
    Returned once an upload/grant/revoke request is handed to a ledger. State
    changes later. Uploads have no record_id until the ledger confirms them.
    """

    submission_id: str
    operation: str
    record_id: Optional[str] = None
    grantee_id: Optional[str] = None
    content_hash: Optional[str] = None
    origin_chain: ChainId
    status: str = "submitted"
    submitted_at: datetime


class DataTypeResponse(BaseModel):
    value: DataType
    aliases: List[str]


class MonthlyGrowth(BaseModel):
    month: str = Field(..., description="YYYY-MM")
    count: int
    cumulative: int


class StatisticsResponse(BaseModel):
    total_records: int
    per_chain_counts: Dict[str, int]
    per_type_counts: Dict[str, int]
    monthly_growth: List[MonthlyGrowth]
