# medcross/infrastructure/database/models.py

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    DateTime,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import ARRAY
from sqlalchemy.sql import func

from medcross.infrastructure.database.session import Base


class RecordRow(Base):
    """Indexed record metadata. Insert-only; primary key is the deterministic record id."""

    __tablename__ = "records"

    record_id = Column(String, primary_key=True)
    origin_chain = Column(String, nullable=False, index=True)
    file_name = Column(String, nullable=False)
    data_type = Column(String, nullable=False, index=True)
    owner_id = Column(String, nullable=False, index=True)
    uploaded_at = Column(DateTime(timezone=True), nullable=False, index=True)
    size_bytes = Column(BigInteger, nullable=False)
    description = Column(Text, nullable=False, default="")
    tags = Column(ARRAY(String), nullable=False, default=list)
    content_hash = Column(String, nullable=False)
    ledger_tx_ref = Column(String, nullable=False)
    block_height = Column(BigInteger, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())


class AuthorizationRow(Base):
    """One grant and, once revoked, its revocation. Never deleted."""

    __tablename__ = "authorizations"
    __table_args__ = (Index("ix_authorizations_grantee_status", "grantee_id", "status"),)

    authorization_id = Column(String, primary_key=True)
    record_id = Column(String, nullable=False, index=True)
    grantee_id = Column(String, nullable=False)
    granted_at = Column(DateTime(timezone=True), nullable=False)
    status = Column(String, nullable=False)
    origin_tx_ref = Column(String, nullable=False)
    granted_block_height = Column(BigInteger, nullable=False)
    revoked_at = Column(DateTime(timezone=True), nullable=True)
    revoke_tx_ref = Column(String, nullable=True)
    revoked_block_height = Column(BigInteger, nullable=True)

    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class AuditEventRow(Base):
    """Append-only audit entry. sequence is the global append order."""

    __tablename__ = "audit_events"

    sequence = Column(Integer, primary_key=True, autoincrement=True)
    event_id = Column(String, nullable=False, unique=True)
    kind = Column(String, nullable=False, index=True)
    record_id = Column(String, nullable=False, index=True)
    actor_id = Column(String, nullable=False)
    timestamp = Column(DateTime(timezone=True), nullable=False)
    origin_chain = Column(String, nullable=False, index=True)
    ledger_tx_ref = Column(String, nullable=True, index=True)
    block_height = Column(BigInteger, nullable=True)
    subject_id = Column(String, nullable=True)
    no_op = Column(Boolean, nullable=False, default=False)


class CheckpointRow(Base):
    """Highest block height per chain below which everything is applied."""

    __tablename__ = "ingestion_checkpoints"

    chain = Column(String, primary_key=True)
    block_height = Column(BigInteger, nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
