"""Validators for record and sharing rules. Pure functions, no infrastructure or DB access."""

from typing import Optional

from medcross.domain.exceptions import DomainValidationError

PAGE_MIN = 1


def validate_user_id(user_id: Optional[str], field_name: str = "user_id") -> None:
    """User identifiers must be non-empty. Raises DomainValidationError if invalid."""
    if not user_id or not user_id.strip():
        raise DomainValidationError(f"{field_name} must not be empty")


def validate_pagination(page: int, page_size: int, max_page_size: int) -> None:
    """Page is 1-based; page_size in [1, max_page_size]."""
    if page < PAGE_MIN:
        raise DomainValidationError(f"page must be >= {PAGE_MIN}, got {page}")
    if not (1 <= page_size <= max_page_size):
        raise DomainValidationError(
            f"page_size must be between 1 and {max_page_size}, got {page_size}"
        )


def validate_grant_request(owner_id: str, grantee_id: str) -> None:
    """Owner and grantee must both be set and differ."""
    validate_user_id(owner_id, "owner_id")
    validate_user_id(grantee_id, "grantee_id")
    if owner_id.strip() == grantee_id.strip():
        raise DomainValidationError("grantee_id must differ from the record owner")


def validate_upload_fields(file_name: str, size_bytes: int, content_hash: str) -> None:
    """Upload metadata sanity: named file, non-negative size, content reference present."""
    if not file_name or not file_name.strip():
        raise DomainValidationError("file_name must not be empty")
    if size_bytes < 0:
        raise DomainValidationError(f"size_bytes must be >= 0, got {size_bytes}")
    if not content_hash or not content_hash.strip():
        raise DomainValidationError("content_hash must not be empty")
