"""Ledger adapter interface. Ingestion depends on this protocol; one implementation per chain family."""

from typing import Any, Mapping, Protocol

from medcross.domain.models.ingest_event import IngestEvent
from medcross.domain.models.record import ChainId


class LedgerAdapter(Protocol):
    """Stateless, deterministic transformer from a raw chain event to an IngestEvent."""

    chain: ChainId

    def normalize(self, raw: Mapping[str, Any]) -> IngestEvent:
        """Return the normalized event. Raises MalformedEventError if required fields are absent."""
        ...
