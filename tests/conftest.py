from __future__ import annotations

import os
from typing import TYPE_CHECKING

import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine  # noqa: TC002

from statepilot.adapters.memory import InMemoryRecordStore
from tests.support.schema import make_schema

os.environ.setdefault("DATABASE_URI", "sqlite+pysqlite:///:memory:")

if TYPE_CHECKING:
    from collections.abc import Iterator

    from statepilot.domain.schema import SchemaRegistry


@pytest.fixture
def schema() -> SchemaRegistry:
    return make_schema()


@pytest.fixture
def memory_store(schema: SchemaRegistry) -> InMemoryRecordStore:
    return InMemoryRecordStore(schema=schema)


@pytest.fixture
def sqlite_engine() -> Iterator[Engine]:
    engine = create_engine("sqlite+pysqlite:///:memory:", future=True)
    try:
        yield engine
    finally:
        engine.dispose()
