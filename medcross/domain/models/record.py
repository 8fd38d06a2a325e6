"""Domain model for medical-data records. Pure business semantics. No ORM or infrastructure."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, FrozenSet, List, Optional

from medcross.domain.exceptions import DomainValidationError

# Namespace for deterministic record ids; changing it re-keys every record.
RECORD_NAMESPACE = uuid.UUID("6f1c2a3e-9b0d-5e47-8a21-3c4d5e6f7a8b")


class ChainId(str, Enum):
    """Origin ledger of a record. chain_a is account-based, chain_b is permissioned."""

    CHAIN_A = "chain_a"
    CHAIN_B = "chain_b"


class DataType(str, Enum):
    CLINICAL_NOTE = "clinical-note"
    IMAGING = "imaging"
    GENOMIC = "genomic"
    PRESCRIPTION = "prescription"
    LAB_REPORT = "lab-report"


# Labels used by the upload form and by older contract deployments.
_DATA_TYPE_ALIASES: Dict[str, DataType] = {
    "clinical_note": DataType.CLINICAL_NOTE,
    "emr": DataType.CLINICAL_NOTE,
    "电子病历": DataType.CLINICAL_NOTE,
    "medical-image": DataType.IMAGING,
    "image": DataType.IMAGING,
    "影像数据": DataType.IMAGING,
    "genome": DataType.GENOMIC,
    "基因组数据": DataType.GENOMIC,
    "rx": DataType.PRESCRIPTION,
    "处方数据": DataType.PRESCRIPTION,
    "lab_report": DataType.LAB_REPORT,
    "lab": DataType.LAB_REPORT,
    "检验报告": DataType.LAB_REPORT,
}

_CHAIN_ALIASES: Dict[str, ChainId] = {
    "ethereum": ChainId.CHAIN_A,
    "eth": ChainId.CHAIN_A,
    "fabric": ChainId.CHAIN_B,
}


def parse_data_type(value: str) -> DataType:
    """Map a canonical value or known alias to DataType. Raises DomainValidationError if unknown."""
    normalized = (value or "").strip().lower()
    try:
        return DataType(normalized)
    except ValueError:
        pass
    alias = _DATA_TYPE_ALIASES.get(normalized) or _DATA_TYPE_ALIASES.get((value or "").strip())
    if alias is None:
        raise DomainValidationError(f"Unknown data type: {value!r}")
    return alias


def data_type_aliases(data_type: DataType) -> List[str]:
    """Alternative labels accepted for data_type, in declaration order."""
    return [alias for alias, target in _DATA_TYPE_ALIASES.items() if target == data_type]


def parse_chain(value: str) -> ChainId:
    """Map a chain id or alias (ethereum, fabric) to ChainId."""
    normalized = (value or "").strip().lower()
    try:
        return ChainId(normalized)
    except ValueError:
        pass
    alias = _CHAIN_ALIASES.get(normalized)
    if alias is None:
        raise DomainValidationError(f"Unknown chain: {value!r}")
    return alias


def normalize_user_id(value: Optional[str]) -> str:
    """
    Canonical form of a user identity. Account addresses (0x-prefixed) compare
    case-insensitively, so checksummed and lower-case spellings are the same
    user; any other identity (e.g. "Org1MSP/doctor1") is only trimmed.
    """
    user_id = (value or "").strip()
    if user_id[:2].lower() == "0x":
        return user_id.lower()
    return user_id


def derive_record_id(origin_chain: ChainId, ledger_tx_ref: str) -> str:
    """Deterministic record id from the upload transaction that anchored it."""
    return str(uuid.uuid5(RECORD_NAMESPACE, f"{origin_chain.value}:{ledger_tx_ref}"))


@dataclass(frozen=True)
class RecordKey:
    """Identifies a record by its anchoring upload transaction."""

    origin_chain: ChainId
    ledger_tx_ref: str

    @property
    def record_id(self) -> str:
        return derive_record_id(self.origin_chain, self.ledger_tx_ref)


@dataclass(frozen=True)
class Record:
    """
    Metadata of one medical-data artifact. The payload itself lives off-chain
    under content_hash. Immutable once ingested.
    """

    record_id: str
    origin_chain: ChainId
    file_name: str
    data_type: DataType
    owner_id: str
    uploaded_at: datetime
    size_bytes: int
    content_hash: str
    ledger_tx_ref: str
    block_height: int
    description: str = ""
    tags: FrozenSet[str] = field(default_factory=frozenset)

    def matches_keyword(self, keyword: str) -> bool:
        """Case-insensitive substring match on file name, description or any tag."""
        needle = keyword.lower()
        if needle in self.file_name.lower() or needle in (self.description or "").lower():
            return True
        return any(needle in tag.lower() for tag in self.tags)

    def is_owned_by(self, user_id: Optional[str]) -> bool:
        return user_id is not None and self.owner_id == normalize_user_id(user_id)
