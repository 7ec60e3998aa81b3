"""Domain port definitions for adapters."""

from __future__ import annotations

from .store import BatchRecordStore, DomainTerm, RecordStore, SearchDomain, StoreContext

__all__ = [
    "BatchRecordStore",
    "DomainTerm",
    "RecordStore",
    "SearchDomain",
    "StoreContext",
]
