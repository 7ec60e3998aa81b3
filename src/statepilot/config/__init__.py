"""Application configuration helpers."""

from __future__ import annotations

from .env import env_bool, env_positive_int, require_env_var, require_env_vars
from .errors import ConfigurationError, MissingConfigurationError
from .logging import configure_logging
from .reconcile import DEFAULT_MAX_OPERATIONS, ReconcileConfig, get_reconcile_config
from .storage import DEFAULT_DATABASE_URI, DatabaseConfig, get_database_config

__all__ = [
    "DEFAULT_DATABASE_URI",
    "DEFAULT_MAX_OPERATIONS",
    "ConfigurationError",
    "DatabaseConfig",
    "MissingConfigurationError",
    "ReconcileConfig",
    "configure_logging",
    "env_bool",
    "env_positive_int",
    "get_database_config",
    "get_reconcile_config",
    "require_env_var",
    "require_env_vars",
]
