"""SQLAlchemy-backed record store adapter."""

from __future__ import annotations

from .store import SqlAlchemyRecordStore
from .tables import create_all_tables, metadata, record_table

__all__ = ["SqlAlchemyRecordStore", "create_all_tables", "metadata", "record_table"]
