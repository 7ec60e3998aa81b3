"""Reconciliation core: compare, plan, validate and apply record state.

Layered flow:
1) diff desired against actual field maps per record (``compare``)
2) turn the diff set into ordered operations with placeholder ids (``plan``)
3) check placeholder references, cycles and plain ids (``validate``)
4) execute the plan, mapping placeholders to created ids (``apply``)
"""

from __future__ import annotations

from .apply import (
    ApplyOptions,
    ApplyResult,
    OperationResult,
    OperationStatus,
    PlanExecutor,
    apply_plan,
    dry_run_plan,
)
from .compare import (
    ChangeKind,
    CompareOptions,
    ComparisonResult,
    FieldChange,
    RecordDiff,
    compare_models,
    compare_record,
    compare_records,
)
from .diagnostics import ErrorCategory, classify_error, suggest_error_fixes
from .engine import ReconciliationEngine
from .format import format_plan
from .graph import DependencyGraph, TopologicalOrder
from .placeholders import is_placeholder, make_placeholder
from .plan import (
    ExecutionPlan,
    ModelStats,
    Operation,
    OperationType,
    PlanMetadata,
    PlanOptions,
    PlanSummary,
    build_plan,
)
from .validate import (
    RecordRef,
    Severity,
    ValidationIssue,
    ValidationResult,
    format_validation_errors,
    validate_plan_references,
)

__all__ = [
    "ApplyOptions",
    "ApplyResult",
    "ChangeKind",
    "CompareOptions",
    "ComparisonResult",
    "DependencyGraph",
    "ErrorCategory",
    "ExecutionPlan",
    "FieldChange",
    "ModelStats",
    "Operation",
    "OperationResult",
    "OperationStatus",
    "OperationType",
    "PlanExecutor",
    "PlanMetadata",
    "PlanOptions",
    "PlanSummary",
    "ReconciliationEngine",
    "RecordDiff",
    "RecordRef",
    "Severity",
    "TopologicalOrder",
    "ValidationIssue",
    "ValidationResult",
    "apply_plan",
    "build_plan",
    "classify_error",
    "compare_models",
    "compare_record",
    "compare_records",
    "dry_run_plan",
    "format_plan",
    "format_validation_errors",
    "is_placeholder",
    "make_placeholder",
    "suggest_error_fixes",
    "validate_plan_references",
]
