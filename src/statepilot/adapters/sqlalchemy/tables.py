"""SQLAlchemy table metadata for the record store."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import JSON, Column, Integer, MetaData, String, Table

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

log = logging.getLogger(__name__)

metadata = MetaData()

record_table = Table(
    "statepilot_record",
    metadata,
    Column("model", String(128), primary_key=True),
    Column("id", Integer, primary_key=True, autoincrement=False),
    Column("payload", JSON, nullable=False),
)


def create_all_tables(engine: Engine) -> None:
    """Create all tables."""
    log.info("Creating record store tables")
    metadata.create_all(engine)
