"""Domain-specific exceptions. Pure domain layer, no infrastructure."""

from typing import Optional


class DomainError(Exception):
    """Base for all domain-layer errors."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class DomainValidationError(DomainError):
    """Raised when domain validation rules are violated."""


class MalformedEventError(DomainError):
    """Raised by a ledger adapter when a raw event lacks required fields. Never ingested."""

    def __init__(self, message: str, raw: Optional[dict] = None) -> None:
        super().__init__(message)
        self.raw = raw


class InvalidTransitionError(DomainError):
    """Raised when a grant/revoke transition is not allowed. Original state is preserved."""


class OrphanEventError(DomainError):
    """Raised when a grant/revoke stayed unresolved past the retry window."""

    def __init__(self, message: str, event_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.event_id = event_id


class NotFoundOrUnauthorizedError(DomainError):
    """Uniform denial: the record does not exist or the requester may not see it."""

    def __init__(self, record_id: str) -> None:
        super().__init__(f"Record {record_id} not found")
        self.record_id = record_id


class IdempotencyConflictError(DomainError):
    """Raised when an idempotency key is reused for a different request."""
