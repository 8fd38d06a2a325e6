"""Scalability layer: per-key concurrency control for ingestion. No FastAPI."""

from medcross.scalability.keyed_lock import KeyedLock

__all__ = [
    "KeyedLock",
]
