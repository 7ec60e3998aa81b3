"""Execution plan construction.

The planner turns a diff set into an ordered, immutable list of operations:

1) mint a ``<model>:temp_<n>`` placeholder for every record to be created
2) rewrite relational values that point at those records to the placeholder
3) derive dependencies from the placeholders each operation references
4) order creates/updates with a stable topological sort, deletes last

Cycles are not rejected here; the planner emits a best-effort order and the
validator reports them.
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import StrEnum
from types import MappingProxyType
from typing import TYPE_CHECKING

from statepilot.config import DEFAULT_MAX_OPERATIONS
from statepilot.domain.errors import PlanConstructionError, PlanTooLargeError
from statepilot.domain.values import is_record_id

from .graph import DependencyGraph
from .placeholders import iter_placeholders, make_placeholder, record_key

if TYPE_CHECKING:
    from collections.abc import Iterable

    from statepilot.domain.schema import FieldMetadata, SchemaProvider

    from .compare import RecordDiff

log = logging.getLogger(__name__)


class OperationType(StrEnum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True, slots=True, kw_only=True)
class Operation:
    type: OperationType
    model: str
    id: str
    values: Mapping[str, object] = field(default_factory=dict["str", "object"])
    dependencies: tuple[str, ...] = ()
    relations: Mapping[str, str] = field(default_factory=dict["str", "str"])
    reason: str | None = None

    def references(self) -> tuple[str, ...]:
        """Placeholder tokens used anywhere in ``values``, first occurrence order."""

        return tuple(dict.fromkeys(iter_placeholders(dict(self.values))))


@dataclass(frozen=True, slots=True)
class ModelStats:
    creates: int = 0
    updates: int = 0
    deletes: int = 0


@dataclass(frozen=True, slots=True, kw_only=True)
class PlanMetadata:
    timestamp: datetime
    affected_models: Mapping[str, ModelStats]
    total_changes: int


@dataclass(frozen=True, slots=True, kw_only=True)
class PlanSummary:
    total_operations: int
    creates: int
    updates: int
    deletes: int
    is_empty: bool
    has_errors: bool
    errors: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True, kw_only=True)
class ExecutionPlan:
    operations: tuple[Operation, ...]
    metadata: PlanMetadata
    summary: PlanSummary

    def operation(self, operation_id: str) -> Operation | None:
        return next((op for op in self.operations if op.id == operation_id), None)


@dataclass(frozen=True, slots=True, kw_only=True)
class PlanOptions:
    schema: SchemaProvider | None = None
    max_operations: int = DEFAULT_MAX_OPERATIONS


def build_plan(diffs: Sequence[RecordDiff], options: PlanOptions | None = None) -> ExecutionPlan:
    """Build an ordered :class:`ExecutionPlan` from ``diffs``.

    Raises :class:`PlanTooLargeError` before doing any other work when the
    diff set would produce more than ``options.max_operations`` operations.
    """

    opts = options or PlanOptions()
    actionable = [diff for diff in diffs if diff.is_new or diff.is_removed or diff.changes]
    if len(actionable) > opts.max_operations:
        raise PlanTooLargeError(len(actionable), opts.max_operations)

    placeholders = _mint_placeholders(actionable)
    errors: list[str] = []
    operations = [_to_operation(diff, placeholders, opts.schema) for diff in actionable]

    created = {op.id for op in operations if op.type is OperationType.CREATE}
    with_dependencies: list[Operation] = []
    for operation in operations:
        dependencies: list[str] = []
        for token in operation.references():
            if token in created:
                dependencies.append(token)
            else:
                errors.append(
                    f"Operation {operation.id} references unknown temporary record {token}"
                )
        with_dependencies.append(replace(operation, dependencies=tuple(dependencies)))

    ordered = _order(with_dependencies)
    plan = ExecutionPlan(
        operations=ordered,
        metadata=_metadata(ordered),
        summary=_summary(ordered, errors),
    )
    log.info(
        "Built plan: %d create(s), %d update(s), %d delete(s)",
        plan.summary.creates,
        plan.summary.updates,
        plan.summary.deletes,
    )
    return plan


def _mint_placeholders(diffs: Iterable[RecordDiff]) -> dict[tuple[str, int], str]:
    placeholders: dict[tuple[str, int], str] = {}
    sequence = 0
    for diff in diffs:
        if not diff.is_new:
            continue
        key = (diff.model, diff.id)
        if key in placeholders:
            raise PlanConstructionError(f"Duplicate new record in diff set: {diff.model}:{diff.id}")
        sequence += 1
        placeholders[key] = make_placeholder(diff.model, sequence)
    return placeholders


def _to_operation(
    diff: RecordDiff,
    placeholders: Mapping[tuple[str, int], str],
    schema: SchemaProvider | None,
) -> Operation:
    if diff.is_removed:
        return Operation(
            type=OperationType.DELETE,
            model=diff.model,
            id=record_key(diff.model, diff.id),
            reason="Delete record absent from desired state",
        )

    model_fields = schema.fields_for(diff.model) if schema is not None else {}
    values = MappingProxyType(
        {
            name: _rewrite_references(value, model_fields.get(name), placeholders)
            for name, value in diff.values.items()
        }
    )
    relations = MappingProxyType(
        {
            name: metadata.relation_target
            for name in values
            if (metadata := model_fields.get(name)) is not None
            and metadata.relation_target is not None
        }
    )
    if diff.is_new:
        return Operation(
            type=OperationType.CREATE,
            model=diff.model,
            id=placeholders[(diff.model, diff.id)],
            values=values,
            relations=relations,
            reason="Create new record",
        )
    return Operation(
        type=OperationType.UPDATE,
        model=diff.model,
        id=record_key(diff.model, diff.id),
        values=values,
        relations=relations,
        reason=f"Update {len(diff.changes)} field(s)",
    )


def _rewrite_references(
    value: object,
    metadata: FieldMetadata | None,
    placeholders: Mapping[tuple[str, int], str],
) -> object:
    if metadata is None or not metadata.is_relational or metadata.relation_target is None:
        return value
    target = metadata.relation_target

    if is_record_id(value):
        return placeholders.get((target, value), value)  # type: ignore[arg-type]
    if metadata.is_to_many and isinstance(value, list | tuple):
        return [
            placeholders.get((target, item), item) if is_record_id(item) else item
            for item in value
        ]
    return value


def _order(operations: Sequence[Operation]) -> tuple[Operation, ...]:
    mutations = [op for op in operations if op.type is not OperationType.DELETE]
    deletes = [op for op in operations if op.type is OperationType.DELETE]

    graph = DependencyGraph.from_edges(
        (op.id for op in mutations),
        (
            (dependency, op.id)
            for op in mutations
            for dependency in op.dependencies
            if dependency != op.id
        ),
    )
    order = graph.topological_order()
    if not order.is_acyclic:
        log.warning(
            "Dependency cycle among %d operation(s); keeping original order for them",
            len(order.blocked),
        )

    by_id = {op.id: op for op in mutations}
    return (*(by_id[op_id] for op_id in order.ordered), *deletes)


def _metadata(operations: Sequence[Operation]) -> PlanMetadata:
    counters: dict[str, Counter[OperationType]] = {}
    for op in operations:
        counters.setdefault(op.model, Counter())[op.type] += 1

    affected = {
        model: ModelStats(
            creates=counter[OperationType.CREATE],
            updates=counter[OperationType.UPDATE],
            deletes=counter[OperationType.DELETE],
        )
        for model, counter in counters.items()
    }
    total_changes = sum(
        1 if op.type is OperationType.DELETE else len(op.values) for op in operations
    )
    return PlanMetadata(
        timestamp=datetime.now(UTC),
        affected_models=affected,
        total_changes=total_changes,
    )


def _summary(operations: Sequence[Operation], errors: Sequence[str]) -> PlanSummary:
    counts = Counter(op.type for op in operations)
    return PlanSummary(
        total_operations=len(operations),
        creates=counts[OperationType.CREATE],
        updates=counts[OperationType.UPDATE],
        deletes=counts[OperationType.DELETE],
        is_empty=not operations,
        has_errors=bool(errors),
        errors=tuple(errors),
    )
