from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from statepilot.domain.errors import (
    ApplyInputError,
    PlanTooLargeError,
    RecordNotFoundError,
    UnresolvedReferenceError,
)
from statepilot.domain.reconciliation import (
    ApplyOptions,
    CompareOptions,
    Operation,
    OperationResult,
    OperationStatus,
    OperationType,
    PlanOptions,
    apply_plan,
    build_plan,
    compare_records,
    dry_run_plan,
)
from tests.support.plans import create, delete, plan_of, update
from tests.support.stores import ContextRecordingStore, RejectingStore

if TYPE_CHECKING:
    from statepilot.adapters.memory import InMemoryRecordStore
    from statepilot.domain.reconciliation import ExecutionPlan
    from statepilot.domain.schema import SchemaRegistry


def _project_with_task(schema: SchemaRegistry) -> ExecutionPlan:
    options = CompareOptions(schema=schema)
    diffs = [
        *compare_records("project.project", {100: {"name": "Project"}}, {}, options),
        *compare_records(
            "project.task", {500: {"name": "Task", "project_id": 100}}, {}, options
        ),
    ]
    return build_plan(diffs, PlanOptions(schema=schema))


def test_created_ids_flow_into_later_operations(
    schema: SchemaRegistry, memory_store: InMemoryRecordStore
) -> None:
    plan = _project_with_task(schema)

    result = apply_plan(plan, memory_store)

    assert result.success
    assert (result.total, result.applied, result.failed) == (2, 2, 0)
    assert result.id_mapping == {"project.project:temp_1": 1, "project.task:temp_2": 1}
    task = memory_store.get("project.task", 1)
    assert task is not None
    assert task["project_id"] == 1
    assert all(outcome.status is OperationStatus.SUCCEEDED for outcome in result.operations)
    assert result.start_time <= result.end_time


def test_stop_on_error_halts_after_first_failure(schema: SchemaRegistry) -> None:
    store = RejectingStore({"Bad"}, schema=schema)
    plan = plan_of(
        create("res.partner", 1, name="Good"),
        create("res.partner", 2, name="Bad"),
        create("res.partner", 3, name="Other"),
    )

    result = apply_plan(plan, store)

    assert not result.success
    assert (result.applied, result.failed, len(result.operations)) == (1, 1, 2)
    assert result.errors == (
        "Operation 1: create res.partner:temp_2 failed: Access denied: cannot create res.partner",
    )
    assert store.get("res.partner", 2) is None
    failed = result.operations[1]
    assert failed.status is OperationStatus.FAILED
    assert "Check that the user has read/write permissions on the model" in failed.suggested_fixes


def test_continue_on_error_attempts_every_operation(schema: SchemaRegistry) -> None:
    store = RejectingStore({"Bad"}, schema=schema)
    plan = plan_of(
        create("res.partner", 1, name="Good"),
        create("res.partner", 2, name="Bad"),
        create("res.partner", 3, name="Other"),
    )

    result = apply_plan(plan, store, ApplyOptions(stop_on_error=False))

    assert (result.applied, result.failed, len(result.operations)) == (2, 1, 3)
    assert set(result.id_mapping) == {"res.partner:temp_1", "res.partner:temp_3"}


def test_dependents_of_failed_create_fail_with_unresolved_reference(
    schema: SchemaRegistry,
) -> None:
    store = RejectingStore({"Bad"}, schema=schema)
    plan = plan_of(
        create("res.partner.category", 1, name="Bad"),
        create("res.partner", 2, name="Partner", category_ids=["res.partner.category:temp_1"]),
    )

    result = apply_plan(plan, store, ApplyOptions(stop_on_error=False))

    dependent = result.operations[1]
    assert dependent.status is OperationStatus.FAILED
    assert isinstance(dependent.error, UnresolvedReferenceError)
    assert dependent.error.token == "res.partner.category:temp_1"
    assert store.get("res.partner", 1) is None


def test_dry_run_sends_no_mutations(
    schema: SchemaRegistry, memory_store: InMemoryRecordStore
) -> None:
    memory_store.seed("res.partner", 3, {"name": "Gone"})
    memory_store.seed("res.partner", 4, {"name": "Kept"})
    plan = plan_of(
        *_project_with_task(schema).operations,
        update("res.partner", 4, name="Renamed"),
        delete("res.partner", 3),
    )

    result = dry_run_plan(plan, memory_store)

    assert result.success
    assert result.dry_run
    assert memory_store.mutations() == []
    assert memory_store.get("res.partner", 3) is not None
    assert result.id_mapping == {
        "project.project:temp_1": "dry-run:project.project:temp_1",
        "project.task:temp_2": "dry-run:project.task:temp_2",
    }
    assert result.operations[2].actual_id == 4


def test_dry_run_skips_store_verification(
    schema: SchemaRegistry, memory_store: InMemoryRecordStore
) -> None:
    memory_store.seed("res.partner", 4, {"name": "Kept"})
    plan = plan_of(
        *_project_with_task(schema).operations,
        update("res.partner", 4, name="Renamed"),
    )

    result = dry_run_plan(plan, memory_store)

    assert result.success
    assert result.validation is not None
    assert result.validation.is_valid
    assert memory_store.calls == []


def test_batching_groups_independent_creates(schema: SchemaRegistry) -> None:
    store = RejectingStore(set(), schema=schema)
    plan = plan_of(
        create("res.partner", 1, name="A"),
        create("res.partner", 2, name="B"),
        create("res.partner.category", 3, name="C"),
        create("res.partner", 4, name="D", category_ids=["res.partner.category:temp_3"]),
    )

    result = apply_plan(plan, store, ApplyOptions(enable_batching=True))

    assert result.success
    assert store.calls.count(("create_many", "res.partner")) == 1
    assert ("create_many", "res.partner.category") not in store.calls
    assert result.id_mapping == {
        "res.partner:temp_1": 1,
        "res.partner:temp_2": 2,
        "res.partner.category:temp_3": 1,
        "res.partner:temp_4": 3,
    }


def test_failed_batch_marks_every_member_failed(schema: SchemaRegistry) -> None:
    store = RejectingStore({"B"}, schema=schema)
    plan = plan_of(create("res.partner", 1, name="A"), create("res.partner", 2, name="B"))

    result = apply_plan(plan, store, ApplyOptions(enable_batching=True))

    assert result.failed == 2
    assert [outcome.status for outcome in result.operations] == [
        OperationStatus.FAILED,
        OperationStatus.FAILED,
    ]
    assert store.get("res.partner", 1) is None


def test_batching_is_off_by_default(memory_store: InMemoryRecordStore) -> None:
    plan = plan_of(create("res.partner", 1, name="A"), create("res.partner", 2, name="B"))

    apply_plan(plan, memory_store)

    assert ("create_many", "res.partner") not in memory_store.calls


def test_invalid_plan_is_not_executed(memory_store: InMemoryRecordStore) -> None:
    memory_store.seed("project.task", 5, {"name": "Task"})
    plan = plan_of(update("project.task", 5, project_id="project.project:temp_9"))

    result = apply_plan(plan, memory_store)

    assert not result.success
    assert result.operations == ()
    assert result.validation is not None
    assert not result.validation.is_valid
    assert result.errors == (
        "Operation references non-existent temporary record: project.project:temp_9",
    )
    assert memory_store.mutations() == []


def test_unresolved_reference_fails_at_run_time_without_validation(
    memory_store: InMemoryRecordStore,
) -> None:
    memory_store.seed("res.partner", 1, {"name": "Partner"})
    plan = plan_of(update("res.partner", 1, parent_id="res.partner:temp_9"))

    result = apply_plan(plan, memory_store, ApplyOptions(validate=False))

    (outcome,) = result.operations
    assert isinstance(outcome.error, UnresolvedReferenceError)
    assert ("write", "res.partner") not in memory_store.calls
    assert result.validation is None


def test_store_errors_are_captured_per_operation(memory_store: InMemoryRecordStore) -> None:
    result = apply_plan(
        plan_of(delete("res.partner", 99)),
        memory_store,
        ApplyOptions(validate=False),
    )

    (outcome,) = result.operations
    assert isinstance(outcome.error, RecordNotFoundError)
    assert result.errors[0].startswith("Operation 0: delete res.partner:99 failed:")


def test_updates_and_deletes_reach_the_store(memory_store: InMemoryRecordStore) -> None:
    memory_store.seed("res.partner", 3, {"name": "Gone"})
    memory_store.seed("res.partner", 4, {"name": "Old"})

    result = apply_plan(
        plan_of(update("res.partner", 4, name="New"), delete("res.partner", 3)),
        memory_store,
    )

    assert result.success
    assert memory_store.get("res.partner", 3) is None
    assert memory_store.get("res.partner", 4) == {"name": "New"}


@pytest.mark.parametrize(
    "plan",
    [
        plan_of(create("res.partner", 1, name="A"), create("res.partner", 1, name="B")),
        plan_of(Operation(type=OperationType.UPDATE, model="project.task", id="res.partner:1")),
        plan_of(Operation(type=OperationType.UPDATE, model="res.partner", id="no-colon")),
    ],
    ids=["duplicate-id", "model-mismatch", "malformed-id"],
)
def test_malformed_plans_raise_before_any_store_call(
    plan: ExecutionPlan, memory_store: InMemoryRecordStore
) -> None:
    with pytest.raises(ApplyInputError):
        apply_plan(plan, memory_store)

    assert memory_store.calls == []


def test_non_plan_input_is_rejected(memory_store: InMemoryRecordStore) -> None:
    with pytest.raises(ApplyInputError, match="Expected an ExecutionPlan"):
        apply_plan("not a plan", memory_store)  # type: ignore[arg-type]


def test_max_operations_is_enforced(memory_store: InMemoryRecordStore) -> None:
    plan = plan_of(create("res.partner", 1, name="A"), create("res.partner", 2, name="B"))

    with pytest.raises(PlanTooLargeError):
        apply_plan(plan, memory_store, ApplyOptions(max_operations=1))

    assert memory_store.calls == []


def test_callbacks_follow_execution(memory_store: InMemoryRecordStore) -> None:
    progress: list[tuple[int, int, str]] = []
    completed: list[OperationResult] = []
    plan = plan_of(create("res.partner", 1, name="A"), create("res.partner", 2, name="B"))

    apply_plan(
        plan,
        memory_store,
        ApplyOptions(
            on_progress=lambda done, total, op_id: progress.append((done, total, op_id)),
            on_operation_complete=completed.append,
        ),
    )

    assert progress == [(1, 2, "res.partner:temp_1"), (2, 2, "res.partner:temp_2")]
    assert [outcome.operation.id for outcome in completed] == [
        "res.partner:temp_1",
        "res.partner:temp_2",
    ]


def test_cancellation_stops_before_next_operation(memory_store: InMemoryRecordStore) -> None:
    done: list[OperationResult] = []
    plan = plan_of(create("res.partner", 1, name="A"), create("res.partner", 2, name="B"))

    result = apply_plan(
        plan,
        memory_store,
        ApplyOptions(on_operation_complete=done.append, cancel=lambda: bool(done)),
    )

    assert result.applied == 1
    assert not result.success
    assert result.errors == ("Cancelled after 1 of 2 operation(s)",)
    assert memory_store.get("res.partner", 2) is None


def test_context_is_forwarded_to_mutations(schema: SchemaRegistry) -> None:
    store = ContextRecordingStore(schema=schema)
    store.seed("res.partner", 1, {"name": "Old"})

    apply_plan(
        plan_of(update("res.partner", 1, name="New")),
        store,
        ApplyOptions(context={"lang": "en_US"}),
    )

    assert store.contexts == [{"lang": "en_US"}]
