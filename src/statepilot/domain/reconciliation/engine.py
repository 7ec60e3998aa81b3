"""Orchestrator for the reconciliation subsystem.

The engine composes compare, plan, validate and apply around one record
store. Every call is self-contained: desired state goes in, fresh plan and
result objects come out, and nothing is cached between calls.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from statepilot.config import ReconcileConfig, get_reconcile_config

from .apply import ApplyOptions, apply_plan
from .compare import CompareOptions, compare_models
from .plan import PlanOptions, build_plan
from .validate import validate_plan_references

if TYPE_CHECKING:
    from collections.abc import Mapping

    from statepilot.domain.ports import RecordStore
    from statepilot.domain.schema import SchemaProvider

    from .apply import ApplyResult
    from .compare import ComparisonResult, FieldComparator, StatesById
    from .plan import ExecutionPlan
    from .validate import ValidationResult

log = logging.getLogger(__name__)


@dataclass(slots=True)
class ReconciliationEngine:
    """Run full reconciliation from desired state to applied store changes."""

    store: RecordStore
    schema: SchemaProvider | None = None
    config: ReconcileConfig = field(default_factory=get_reconcile_config)
    custom_comparators: Mapping[str, FieldComparator] = field(
        default_factory=dict["str", "FieldComparator"]
    )

    def read_actual(self, desired_by_model: Mapping[str, StatesById]) -> dict[str, StatesById]:
        """Read the current state of every record mentioned in ``desired_by_model``."""

        actual: dict[str, StatesById] = {}
        for model, desired_states in desired_by_model.items():
            ids = list(desired_states)
            existing = self.store.search(model, [("id", "in", ids)]) if ids else []
            fields = sorted({name for state in desired_states.values() for name in state})
            records = self.store.read(model, existing, fields) if existing else []
            actual[model] = {
                int(record["id"]): record  # type: ignore[call-overload]
                for record in records
            }
        return actual

    def compare(
        self,
        desired_by_model: Mapping[str, StatesById],
        actual_by_model: Mapping[str, StatesById] | None = None,
        *,
        prune: bool = False,
    ) -> ComparisonResult:
        actual = (
            actual_by_model if actual_by_model is not None else self.read_actual(desired_by_model)
        )
        return compare_models(
            desired_by_model,
            actual,
            CompareOptions(schema=self.schema, custom_comparators=self.custom_comparators),
            prune=prune,
        )

    def plan(
        self,
        desired_by_model: Mapping[str, StatesById],
        actual_by_model: Mapping[str, StatesById] | None = None,
        *,
        prune: bool = False,
    ) -> ExecutionPlan:
        comparison = self.compare(desired_by_model, actual_by_model, prune=prune)
        return build_plan(
            comparison.diffs(),
            PlanOptions(schema=self.schema, max_operations=self.config.max_operations),
        )

    def validate(self, plan: ExecutionPlan) -> ValidationResult:
        store = self.store if self.config.verify_references else None
        return validate_plan_references(plan, store)

    def apply(self, plan: ExecutionPlan, options: ApplyOptions | None = None) -> ApplyResult:
        return apply_plan(plan, self.store, options or self.default_apply_options())

    def reconcile(
        self,
        desired_by_model: Mapping[str, StatesById],
        actual_by_model: Mapping[str, StatesById] | None = None,
        *,
        prune: bool = False,
        options: ApplyOptions | None = None,
    ) -> tuple[ExecutionPlan, ApplyResult]:
        """Compare, plan, validate and apply in one call."""

        plan = self.plan(desired_by_model, actual_by_model, prune=prune)
        if plan.summary.is_empty:
            log.info("No drift detected; nothing to apply")
        return plan, self.apply(plan, options)

    def default_apply_options(self) -> ApplyOptions:
        return ApplyOptions(
            stop_on_error=self.config.stop_on_error,
            enable_batching=self.config.enable_batching,
            verify_references=self.config.verify_references,
            max_operations=self.config.max_operations,
        )
