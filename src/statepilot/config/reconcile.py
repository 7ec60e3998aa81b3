"""Defaults for planning and applying reconciliation runs."""

from __future__ import annotations

from dataclasses import dataclass

from .env import env_bool, env_positive_int

DEFAULT_MAX_OPERATIONS = 10_000


@dataclass(frozen=True, slots=True)
class ReconcileConfig:
    max_operations: int = DEFAULT_MAX_OPERATIONS
    stop_on_error: bool = True
    verify_references: bool = True
    enable_batching: bool = False


def get_reconcile_config() -> ReconcileConfig:
    """Build a :class:`ReconcileConfig` from ``STATEPILOT_*`` environment variables."""

    return ReconcileConfig(
        max_operations=env_positive_int("STATEPILOT_MAX_OPERATIONS", DEFAULT_MAX_OPERATIONS),
        stop_on_error=env_bool("STATEPILOT_STOP_ON_ERROR", True),
        verify_references=env_bool("STATEPILOT_VERIFY_REFERENCES", True),
        enable_batching=env_bool("STATEPILOT_ENABLE_BATCHING", False),
    )
