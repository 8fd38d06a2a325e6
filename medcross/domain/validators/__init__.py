"""Domain validators. Pure validation functions."""

from medcross.domain.validators.record_validator import (
    validate_grant_request,
    validate_pagination,
    validate_upload_fields,
    validate_user_id,
)

__all__ = [
    "validate_grant_request",
    "validate_pagination",
    "validate_upload_fields",
    "validate_user_id",
]
