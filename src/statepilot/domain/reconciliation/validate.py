"""Static referential-integrity checks for execution plans.

Runs before anything is sent to the store:

- every placeholder an operation uses must be created by an earlier operation
- the placeholder dependency graph must be acyclic
- plain ids in relational fields (and update/delete targets) are collected and,
  when a store is supplied and their model is known, checked for existence

Verification lookups that fail are reported as warnings only; they never
affect ``is_valid``.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING

from statepilot.domain.values import is_record_id

from .graph import DependencyGraph
from .placeholders import iter_placeholders, iter_plain_ids, placeholder_model, real_id_of
from .plan import OperationType

if TYPE_CHECKING:
    from statepilot.domain.ports import RecordStore

    from .plan import ExecutionPlan, Operation

log = logging.getLogger(__name__)


class Severity(StrEnum):
    ERROR = "error"
    WARNING = "warning"


@dataclass(frozen=True, slots=True, kw_only=True)
class ValidationIssue:
    message: str
    severity: Severity = Severity.ERROR
    operation_id: str | None = None
    field_name: str | None = None
    suggested_fixes: tuple[str, ...] = ()
    context: Mapping[str, object] = field(default_factory=dict["str", "object"])


@dataclass(frozen=True, slots=True, order=True)
class RecordRef:
    model: str
    id: int
    field_name: str | None = None


@dataclass(frozen=True, slots=True, kw_only=True)
class ValidationResult:
    errors: tuple[ValidationIssue, ...] = ()
    warnings: tuple[ValidationIssue, ...] = ()
    records_to_verify: tuple[RecordRef, ...] = ()

    @property
    def is_valid(self) -> bool:
        return not self.errors


def validate_plan_references(
    plan: ExecutionPlan,
    store: RecordStore | None = None,
) -> ValidationResult:
    """Check ``plan`` for broken placeholder references and dependency cycles.

    When ``store`` is given, collected plain ids are searched per model:
    missing records are errors, failed lookups are warnings.
    """

    operations = plan.operations
    created_at = {
        op.id: index for index, op in enumerate(operations) if op.type is OperationType.CREATE
    }

    errors: list[ValidationIssue] = []
    for index, operation in enumerate(operations):
        errors.extend(_check_placeholders(operation, index, created_at))
    errors.extend(_check_cycles(operations, created_at))

    references, by_name = _collect_plain_references(operations)
    warnings: list[ValidationIssue] = []
    if store is not None and references:
        verify_errors, verify_warnings = _verify_records(references, store, operations)
        errors.extend(verify_errors)
        warnings.extend(verify_warnings)

    result = ValidationResult(
        errors=tuple(errors),
        warnings=tuple(warnings),
        records_to_verify=(
            *(
                RecordRef(model=model, id=record_id)
                for model, ids in references.items()
                for record_id in ids
            ),
            *by_name,
        ),
    )
    log.info(
        "Validated plan of %d operation(s): %d error(s), %d warning(s)",
        len(operations),
        len(result.errors),
        len(result.warnings),
    )
    return result


def _check_placeholders(
    operation: Operation,
    index: int,
    created_at: Mapping[str, int],
) -> list[ValidationIssue]:
    issues: list[ValidationIssue] = []
    for field_name, value in operation.values.items():
        for token in dict.fromkeys(iter_placeholders(value)):
            position = created_at.get(token)
            if position is None:
                issues.append(_missing_placeholder(operation, field_name, token))
            elif position >= index:
                issues.append(_created_later(operation, field_name, token))
    return issues


def _missing_placeholder(operation: Operation, field_name: str, token: str) -> ValidationIssue:
    model = placeholder_model(token)
    return ValidationIssue(
        message=f"Operation references non-existent temporary record: {token}",
        operation_id=operation.id,
        field_name=field_name,
        suggested_fixes=(
            f"Create record {token} before this operation (check operation order)",
            f"Verify the referenced model name is correct: {model}",
            f"Check that {field_name} actually expects a {model} record",
        ),
        context={"reference": token},
    )


def _created_later(operation: Operation, field_name: str, token: str) -> ValidationIssue:
    return ValidationIssue(
        message=(
            f"Circular dependency detected: {operation.id} references {token} "
            "which is created later"
        ),
        operation_id=operation.id,
        field_name=field_name,
        suggested_fixes=(
            f"Reorder operations: create {token} before operation {operation.id}",
            "Check that dependencies are declared on the operations",
            "Split the operation into a create followed by an update",
        ),
        context={"reference": token, "dependency_chain": (operation.id, token)},
    )


def _check_cycles(
    operations: tuple[Operation, ...],
    created_at: Mapping[str, int],
) -> list[ValidationIssue]:
    graph = DependencyGraph.from_edges(
        (op.id for op in operations),
        (
            (token, op.id)
            for op in operations
            for token in op.references()
            if token in created_at
        ),
    )
    issues: list[ValidationIssue] = []
    for cycle in graph.find_cycles():
        chain = " -> ".join((*cycle, cycle[0]))
        issues.append(
            ValidationIssue(
                message=f"Dependency cycle between operations: {chain}",
                operation_id=cycle[0],
                suggested_fixes=(
                    "Create one of the records without the reference, then set it with an update",
                    "Remove the mutual reference from the desired state",
                ),
                context={"cycle": cycle},
            )
        )
    return issues


def _collect_plain_references(
    operations: tuple[Operation, ...],
) -> tuple[dict[str, list[int]], list[RecordRef]]:
    """Split plain ids into store-checkable ones and ones found by field name only.

    Fields without a recorded relation fall back to the naming convention
    (``*_id`` scalars, ``*_ids`` lists). Their target model is unknown, so they
    are listed under the operation's model with ``field_name`` set and are not
    searched in the store.
    """

    references: dict[str, dict[int, None]] = {}
    by_name: dict[RecordRef, None] = {}
    for operation in operations:
        if operation.type is not OperationType.CREATE:
            references.setdefault(operation.model, {})[real_id_of(operation.id)] = None
        if operation.type is OperationType.DELETE:
            continue
        for field_name, value in operation.values.items():
            target = operation.relations.get(field_name)
            if target is not None:
                for record_id in iter_plain_ids(value):
                    references.setdefault(target, {})[record_id] = None
                continue
            for record_id in _ids_by_field_name(field_name, value):
                ref = RecordRef(model=operation.model, id=record_id, field_name=field_name)
                by_name[ref] = None
    return {model: list(ids) for model, ids in references.items()}, list(by_name)


def _ids_by_field_name(field_name: str, value: object) -> list[int]:
    if field_name.endswith("_id") and is_record_id(value):
        return [value]  # type: ignore[list-item]
    if field_name.endswith("_ids") and isinstance(value, list | tuple):
        return list(iter_plain_ids(value))
    return []


def _verify_records(
    references: Mapping[str, list[int]],
    store: RecordStore,
    operations: tuple[Operation, ...],
) -> tuple[list[ValidationIssue], list[ValidationIssue]]:
    errors: list[ValidationIssue] = []
    warnings: list[ValidationIssue] = []
    for model, ids in references.items():
        try:
            existing = set(store.search(model, [("id", "in", list(ids))]))
        except Exception as exc:  # noqa: BLE001
            log.warning("Could not verify %s records: %s", model, exc)
            warnings.append(
                ValidationIssue(
                    message=f"Failed to verify records in {model}: {exc}",
                    severity=Severity.WARNING,
                    suggested_fixes=(
                        f"Check that you have read permissions on {model}",
                        "Verify the model name exists in the target store",
                        "Run validation again or skip record verification",
                    ),
                    context={"model": model, "ids": tuple(ids)},
                )
            )
            continue

        missing = [record_id for record_id in ids if record_id not in existing]
        if not missing:
            continue
        listed = ", ".join(str(record_id) for record_id in missing)
        errors.append(
            ValidationIssue(
                message=f"Records do not exist in {model}: {listed}",
                suggested_fixes=(
                    f"Verify that {model} records [{listed}] exist",
                    "Check whether these records were deleted or renumbered",
                    "Run a fresh compare to rebuild the plan from current state",
                ),
                context={
                    "model": model,
                    "missing_ids": tuple(missing),
                    "affected_operations": _operations_touching(operations, model, missing),
                },
            )
        )
    return errors, warnings


def _operations_touching(
    operations: tuple[Operation, ...], model: str, missing: list[int]
) -> tuple[str, ...]:
    wanted = set(missing)
    affected: list[str] = []
    for operation in operations:
        if operation.type is not OperationType.CREATE and operation.model == model:
            if real_id_of(operation.id) in wanted:
                affected.append(operation.id)
                continue
        for field_name, target in operation.relations.items():
            if target == model and wanted.intersection(
                iter_plain_ids(operation.values.get(field_name))
            ):
                affected.append(operation.id)
                break
    return tuple(affected)


def format_validation_errors(result: ValidationResult) -> str:
    """Render ``result`` as operator-facing plain text."""

    if result.is_valid:
        header = "Plan validation passed"
        if result.warnings:
            header += f" with {len(result.warnings)} warning(s)"
    else:
        header = f"Plan validation failed: {len(result.errors)} error(s)"
        if result.warnings:
            header += f", {len(result.warnings)} warning(s)"

    lines = [header]
    for issue in result.errors:
        lines.extend(_format_issue(issue, marker="ERROR"))
    for issue in result.warnings:
        lines.extend(_format_issue(issue, marker="WARNING"))
    return "\n".join(lines) + "\n"


def _format_issue(issue: ValidationIssue, *, marker: str) -> list[str]:
    lines = ["", f"  {marker}: {issue.message}"]
    if issue.operation_id:
        lines.append(f"    Operation: {issue.operation_id}")
    if issue.field_name:
        lines.append(f"    Field: {issue.field_name}")
    if issue.suggested_fixes:
        lines.append("    Suggested fixes:")
        lines.extend(
            f"      {number}. {fix}" for number, fix in enumerate(issue.suggested_fixes, start=1)
        )
    return lines
