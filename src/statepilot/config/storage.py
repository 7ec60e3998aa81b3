"""Database configuration for the SQLAlchemy record store."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Final

DEFAULT_DATABASE_URI: Final[str] = "sqlite+pysqlite:///:memory:"


@dataclass(frozen=True, slots=True)
class DatabaseConfig:
    uri: str
    echo: bool = False


def get_database_config() -> DatabaseConfig:
    env_uri = os.getenv("DATABASE_URI")
    return DatabaseConfig(uri=env_uri or DEFAULT_DATABASE_URI)
