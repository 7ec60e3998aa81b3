"""Plan execution against a record store.

Operations run strictly one after another in plan order: later operations may
carry placeholders that only become real ids once an earlier create returns.
Each operation moves through ``pending -> executing -> succeeded|failed``.
Per-operation failures are captured on the result; only malformed input
raises, and it does so before the first store call.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import TYPE_CHECKING

from statepilot.domain.errors import ApplyInputError, PlanTooLargeError, UnresolvedReferenceError
from statepilot.domain.ports import BatchRecordStore

from .diagnostics import suggest_error_fixes
from .placeholders import dry_run_id, iter_placeholders, real_id_of, split_operation_id, substitute
from .plan import ExecutionPlan, Operation, OperationType
from .validate import validate_plan_references

if TYPE_CHECKING:
    from collections.abc import Sequence

    from statepilot.domain.ports import RecordStore

    from .validate import ValidationResult

log = logging.getLogger(__name__)

type ProgressCallback = Callable[[int, int, str], None]
type CompletionCallback = Callable[["OperationResult"], None]
type CancelCheck = Callable[[], bool]
type ResolvedId = int | str


class OperationStatus(StrEnum):
    PENDING = "pending"
    EXECUTING = "executing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(slots=True, kw_only=True)
class OperationResult:
    operation: Operation
    status: OperationStatus = OperationStatus.PENDING
    result: object = None
    error: Exception | None = None
    duration: float = 0.0
    actual_id: ResolvedId | None = None
    suggested_fixes: tuple[str, ...] = ()

    @property
    def success(self) -> bool:
        return self.status is OperationStatus.SUCCEEDED


@dataclass(frozen=True, slots=True, kw_only=True)
class ApplyResult:
    operations: tuple[OperationResult, ...]
    total: int
    applied: int
    failed: int
    duration: float
    start_time: datetime
    end_time: datetime
    id_mapping: Mapping[str, ResolvedId]
    errors: tuple[str, ...] = ()
    validation: ValidationResult | None = None
    dry_run: bool = False

    @property
    def success(self) -> bool:
        return self.failed == 0 and not self.errors


@dataclass(frozen=True, slots=True, kw_only=True)
class ApplyOptions:
    dry_run: bool = False
    stop_on_error: bool = True
    enable_batching: bool = False
    validate: bool = True
    verify_references: bool = True
    context: Mapping[str, object] = field(default_factory=dict["str", "object"])
    max_operations: int | None = None
    on_progress: ProgressCallback | None = None
    on_operation_complete: CompletionCallback | None = None
    cancel: CancelCheck | None = None


@dataclass(slots=True)
class PlanExecutor:
    """Execute one plan against ``store``.

    The executor owns the placeholder-to-id mapping for the duration of one
    call; independent executors never share state.
    """

    store: RecordStore
    options: ApplyOptions = field(default_factory=ApplyOptions)

    def __call__(self, plan: ExecutionPlan) -> ApplyResult:
        _check_input(plan, self.options)
        start_time = datetime.now(UTC)
        started = time.perf_counter()
        id_mapping: dict[str, ResolvedId] = {}

        validation: ValidationResult | None = None
        if self.options.validate:
            verify = self.options.verify_references and not self.options.dry_run
            verifier = self.store if verify else None
            validation = validate_plan_references(plan, verifier)
            if not validation.is_valid:
                log.warning(
                    "Plan failed validation with %d error(s); nothing applied",
                    len(validation.errors),
                )
                return self._finish(
                    plan,
                    results=[],
                    errors=[issue.message for issue in validation.errors],
                    id_mapping=id_mapping,
                    validation=validation,
                    start_time=start_time,
                    started=started,
                )

        results, errors = self._execute(plan.operations, id_mapping)
        return self._finish(
            plan,
            results=results,
            errors=errors,
            id_mapping=id_mapping,
            validation=validation,
            start_time=start_time,
            started=started,
        )

    def _execute(
        self,
        operations: Sequence[Operation],
        id_mapping: dict[str, ResolvedId],
    ) -> tuple[list[OperationResult], list[str]]:
        results: list[OperationResult] = []
        errors: list[str] = []
        total = len(operations)
        index = 0

        while index < total:
            if self.options.cancel is not None and self.options.cancel():
                log.info("Apply cancelled after %d of %d operation(s)", index, total)
                errors.append(f"Cancelled after {index} of {total} operation(s)")
                break

            batch = self._next_batch(operations, index)
            if len(batch) > 1:
                outcomes = self._run_batch(batch, id_mapping)
            else:
                outcomes = [self._run_one(batch[0], id_mapping)]

            halted = False
            for outcome in outcomes:
                index += 1
                results.append(outcome)
                if not outcome.success:
                    errors.append(_describe_failure(index - 1, outcome))
                    halted = halted or self.options.stop_on_error
                if self.options.on_operation_complete is not None:
                    self.options.on_operation_complete(outcome)
                if self.options.on_progress is not None:
                    self.options.on_progress(index, total, outcome.operation.id)
            if halted:
                log.info("Stopping after failure; %d operation(s) not attempted", total - index)
                break

        return results, errors

    def _next_batch(self, operations: Sequence[Operation], index: int) -> list[Operation]:
        first = operations[index]
        if (
            not self.options.enable_batching
            or self.options.dry_run
            or not _is_batchable(first)
            or not isinstance(self.store, BatchRecordStore)
        ):
            return [first]
        batch = [first]
        for candidate in operations[index + 1 :]:
            if candidate.model != first.model or not _is_batchable(candidate):
                break
            batch.append(candidate)
        return batch

    def _run_one(self, operation: Operation, id_mapping: dict[str, ResolvedId]) -> OperationResult:
        outcome = OperationResult(operation=operation, status=OperationStatus.EXECUTING)
        started = time.perf_counter()
        try:
            values = _resolve_values(operation, id_mapping)
            outcome.result, outcome.actual_id = self._dispatch(operation, values)
        except Exception as exc:  # noqa: BLE001
            _mark_failed(outcome, exc)
        else:
            outcome.status = OperationStatus.SUCCEEDED
            if operation.type is OperationType.CREATE and outcome.actual_id is not None:
                id_mapping[operation.id] = outcome.actual_id
        outcome.duration = time.perf_counter() - started
        return outcome

    def _dispatch(
        self, operation: Operation, values: dict[str, object]
    ) -> tuple[object, ResolvedId | None]:
        context = self.options.context or None
        match operation.type:
            case OperationType.CREATE:
                if self.options.dry_run:
                    synthetic = dry_run_id(operation.id)
                    return synthetic, synthetic
                new_id = self.store.create(operation.model, values, context)
                return new_id, new_id
            case OperationType.UPDATE:
                record_id = real_id_of(operation.id)
                if self.options.dry_run:
                    return True, record_id
                return self.store.write(operation.model, [record_id], values, context), record_id
            case OperationType.DELETE:
                record_id = real_id_of(operation.id)
                if self.options.dry_run:
                    return True, record_id
                return self.store.unlink(operation.model, [record_id], context), record_id
            case _:
                raise ApplyInputError(f"Invalid operation type: {operation.type!r}")

    def _run_batch(
        self,
        batch: Sequence[Operation],
        id_mapping: dict[str, ResolvedId],
    ) -> list[OperationResult]:
        store = self.store
        assert isinstance(store, BatchRecordStore)  # noqa: S101
        outcomes = [OperationResult(operation=op, status=OperationStatus.EXECUTING) for op in batch]
        started = time.perf_counter()
        try:
            new_ids = store.create_many(
                batch[0].model,
                [dict(op.values) for op in batch],
                self.options.context or None,
            )
            if len(new_ids) != len(batch):
                raise ValueError(
                    f"Store returned {len(new_ids)} id(s) for a batch of {len(batch)} create(s)"
                )
        except Exception as exc:  # noqa: BLE001
            for outcome in outcomes:
                _mark_failed(outcome, exc)
        else:
            for outcome, new_id in zip(outcomes, new_ids, strict=True):
                outcome.status = OperationStatus.SUCCEEDED
                outcome.result = outcome.actual_id = new_id
                id_mapping[outcome.operation.id] = new_id
        elapsed = (time.perf_counter() - started) / len(batch)
        for outcome in outcomes:
            outcome.duration = elapsed
        log.debug("Batched %d create(s) on %s", len(batch), batch[0].model)
        return outcomes

    def _finish(
        self,
        plan: ExecutionPlan,
        *,
        results: list[OperationResult],
        errors: list[str],
        id_mapping: dict[str, ResolvedId],
        validation: ValidationResult | None,
        start_time: datetime,
        started: float,
    ) -> ApplyResult:
        applied = sum(1 for outcome in results if outcome.success)
        result = ApplyResult(
            operations=tuple(results),
            total=len(plan.operations),
            applied=applied,
            failed=len(results) - applied,
            duration=time.perf_counter() - started,
            start_time=start_time,
            end_time=datetime.now(UTC),
            id_mapping=dict(id_mapping),
            errors=tuple(errors),
            validation=validation,
            dry_run=self.options.dry_run,
        )
        log.info(
            "%s %d/%d operation(s), %d failed in %.3fs",
            "Dry-ran" if self.options.dry_run else "Applied",
            result.applied,
            result.total,
            result.failed,
            result.duration,
        )
        return result


def apply_plan(
    plan: ExecutionPlan,
    store: RecordStore,
    options: ApplyOptions | None = None,
) -> ApplyResult:
    """Execute ``plan`` against ``store`` and report what happened."""

    return PlanExecutor(store, options or ApplyOptions())(plan)


def dry_run_plan(
    plan: ExecutionPlan,
    store: RecordStore,
    options: ApplyOptions | None = None,
) -> ApplyResult:
    """Resolve and validate ``plan`` without sending any mutation to ``store``."""

    base = options or ApplyOptions()
    return apply_plan(
        plan,
        store,
        ApplyOptions(
            dry_run=True,
            stop_on_error=base.stop_on_error,
            enable_batching=base.enable_batching,
            validate=base.validate,
            verify_references=base.verify_references,
            context=base.context,
            max_operations=base.max_operations,
            on_progress=base.on_progress,
            on_operation_complete=base.on_operation_complete,
            cancel=base.cancel,
        ),
    )


def _check_input(plan: object, options: ApplyOptions) -> None:
    if not isinstance(plan, ExecutionPlan):
        raise ApplyInputError(f"Expected an ExecutionPlan, got {type(plan).__name__}")
    if options.max_operations is not None and len(plan.operations) > options.max_operations:
        raise PlanTooLargeError(len(plan.operations), options.max_operations)

    seen: set[str] = set()
    for operation in plan.operations:
        if not isinstance(operation.type, OperationType):
            raise ApplyInputError(f"Invalid operation type: {operation.type!r}")
        try:
            model, _ = split_operation_id(operation.id)
        except ValueError as exc:
            raise ApplyInputError(str(exc)) from exc
        if model != operation.model:
            raise ApplyInputError(
                f"Operation {operation.id} does not belong to model {operation.model}"
            )
        if operation.id in seen:
            raise ApplyInputError(f"Duplicate operation id in plan: {operation.id}")
        seen.add(operation.id)


def _is_batchable(operation: Operation) -> bool:
    return (
        operation.type is OperationType.CREATE
        and not operation.dependencies
        and not operation.references()
    )


def _resolve_values(
    operation: Operation, id_mapping: Mapping[str, ResolvedId]
) -> dict[str, object]:
    resolved = {name: substitute(value, id_mapping) for name, value in operation.values.items()}
    unresolved = next(iter_placeholders(resolved), None)
    if unresolved is not None:
        raise UnresolvedReferenceError(unresolved, operation.id)
    return resolved


def _mark_failed(outcome: OperationResult, exc: Exception) -> None:
    operation = outcome.operation
    outcome.status = OperationStatus.FAILED
    outcome.error = exc
    outcome.suggested_fixes = tuple(
        suggest_error_fixes(exc, {"model": operation.model, "operation_id": operation.id})
    )
    log.warning("%s %s failed: %s", operation.type, operation.id, exc)


def _describe_failure(index: int, outcome: OperationResult) -> str:
    operation = outcome.operation
    return f"Operation {index}: {operation.type} {operation.id} failed: {outcome.error}"
