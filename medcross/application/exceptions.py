"""Application-layer exceptions. Do not reuse domain exceptions."""


class ApplicationError(Exception):
    """Base for all application-layer errors."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class SubmissionTimeoutError(ApplicationError):
    """Raised when a ledger submission does not complete in time. Safe to retry with the same idempotency key."""


class MessagingFailureError(ApplicationError):
    """Raised when publishing to the message broker fails."""


class AuditStorageError(ApplicationError):
    """Raised when the audit log cannot persist an event. Fatal for ingestion."""
