from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from statepilot.domain.errors import PlanConstructionError, PlanTooLargeError
from statepilot.domain.reconciliation import (
    ChangeKind,
    CompareOptions,
    FieldChange,
    OperationType,
    PlanOptions,
    RecordDiff,
    build_plan,
    compare_records,
)

if TYPE_CHECKING:
    from statepilot.domain.schema import SchemaRegistry


def _create(model: str, record_id: int, **values: object) -> RecordDiff:
    return RecordDiff(
        model=model,
        id=record_id,
        is_new=True,
        changes=tuple(
            FieldChange(path=name, operation=ChangeKind.CREATE, new_value=value)
            for name, value in values.items()
        ),
    )


def _update(model: str, record_id: int, **values: object) -> RecordDiff:
    return RecordDiff(
        model=model,
        id=record_id,
        changes=tuple(
            FieldChange(path=name, operation=ChangeKind.UPDATE, new_value=value, old_value=None)
            for name, value in values.items()
        ),
    )


def test_creates_get_unique_placeholders_per_build() -> None:
    plan = build_plan(
        [_create("a", 1, name="x"), _create("a", 2, name="y"), _create("b", 1, name="z")]
    )

    assert [op.id for op in plan.operations] == ["a:temp_1", "a:temp_2", "b:temp_3"]
    assert all(op.type is OperationType.CREATE for op in plan.operations)


def test_updates_use_real_ids_and_only_changed_fields() -> None:
    desired = {7: {"name": "New", "email": "same@example.com"}}
    actual = {7: {"name": "Old", "email": "same@example.com"}}

    plan = build_plan(compare_records("res.partner", desired, actual))

    (operation,) = plan.operations
    assert operation.type is OperationType.UPDATE
    assert operation.id == "res.partner:7"
    assert dict(operation.values) == {"name": "New"}


def test_to_many_update_forwards_full_desired_list(schema: SchemaRegistry) -> None:
    diffs = compare_records(
        "res.partner",
        {7: {"category_ids": [3, 1, 4]}},
        {7: {"category_ids": [1, 3]}},
        CompareOptions(schema=schema),
    )

    plan = build_plan(diffs, PlanOptions(schema=schema))

    assert dict(plan.operations[0].values) == {"category_ids": [3, 1, 4]}


def test_new_record_references_are_rewritten_to_placeholders(schema: SchemaRegistry) -> None:
    diffs = [
        _create("project.task", 500, name="Task", project_id=100),
        _create("project.project", 100, name="Project", partner_id=42),
    ]

    plan = build_plan(diffs, PlanOptions(schema=schema))

    ids = [op.id for op in plan.operations]
    assert ids == ["project.project:temp_2", "project.task:temp_1"]
    task = plan.operations[1]
    assert task.values["project_id"] == "project.project:temp_2"
    assert task.dependencies == ("project.project:temp_2",)
    assert plan.operations[0].values["partner_id"] == 42


def test_to_many_references_are_rewritten_elementwise(schema: SchemaRegistry) -> None:
    diffs = [
        _create("res.partner", 1, name="Partner", category_ids=[9, 50]),
        _create("res.partner.category", 50, name="Fresh"),
    ]

    plan = build_plan(diffs, PlanOptions(schema=schema))

    partner = plan.operation("res.partner:temp_1")
    assert partner is not None
    assert partner.values["category_ids"] == [9, "res.partner.category:temp_2"]
    assert [op.id for op in plan.operations] == [
        "res.partner.category:temp_2",
        "res.partner:temp_1",
    ]


def test_updates_referencing_new_records_depend_on_their_create(schema: SchemaRegistry) -> None:
    diffs = [
        _update("project.project", 3, partner_id=900),
        _create("res.partner", 900, name="Newcomer"),
    ]

    plan = build_plan(diffs, PlanOptions(schema=schema))

    assert [op.id for op in plan.operations] == ["res.partner:temp_1", "project.project:3"]
    assert plan.operations[1].values["partner_id"] == "res.partner:temp_1"


def test_references_without_schema_stay_plain_ids() -> None:
    plan = build_plan([_create("project.task", 1, project_id=2), _create("project.project", 2)])

    assert plan.operations[0].values["project_id"] == 2


def test_same_id_in_other_model_is_not_rewritten(schema: SchemaRegistry) -> None:
    diffs = [
        _create("project.task", 1, name="T", project_id=2),
        _create("res.partner", 2, name="P"),
    ]

    plan = build_plan(diffs, PlanOptions(schema=schema))

    task = plan.operation("project.task:temp_1")
    assert task is not None
    assert task.values["project_id"] == 2
    assert task.dependencies == ()


def test_deletes_come_after_creates_and_updates() -> None:
    diffs = [
        RecordDiff(model="a", id=4, is_removed=True),
        _update("a", 1, name="x"),
        _create("b", 2, name="y"),
    ]

    plan = build_plan(diffs)

    assert [op.type for op in plan.operations] == [
        OperationType.UPDATE,
        OperationType.CREATE,
        OperationType.DELETE,
    ]
    assert plan.operations[-1].id == "a:4"
    assert dict(plan.operations[-1].values) == {}


def test_mutual_references_still_produce_a_plan(schema: SchemaRegistry) -> None:
    diffs = [
        _create("project.task", 1, name="A", depends_on_id=2),
        _create("project.task", 2, name="B", depends_on_id=1),
    ]

    plan = build_plan(diffs, PlanOptions(schema=schema))

    assert [op.id for op in plan.operations] == ["project.task:temp_1", "project.task:temp_2"]
    assert plan.operations[0].dependencies == ("project.task:temp_2",)
    assert not plan.summary.has_errors


def test_unknown_placeholder_in_values_is_reported_as_plan_error() -> None:
    plan = build_plan([_create("project.task", 1, project_id="project.project:temp_99")])

    assert plan.summary.has_errors
    assert plan.summary.errors == (
        "Operation project.task:temp_1 references unknown temporary record "
        "project.project:temp_99",
    )
    assert plan.operations[0].dependencies == ()


def test_summary_and_metadata_are_derived_from_operations() -> None:
    plan = build_plan(
        [
            _create("a", 1, name="x", code="c"),
            _update("a", 2, name="y"),
            RecordDiff(model="b", id=3, is_removed=True),
        ]
    )

    summary = plan.summary
    assert (summary.total_operations, summary.creates, summary.updates, summary.deletes) == (
        3,
        1,
        1,
        1,
    )
    assert not summary.is_empty
    stats = plan.metadata.affected_models
    assert (stats["a"].creates, stats["a"].updates, stats["a"].deletes) == (1, 1, 0)
    assert stats["b"].deletes == 1
    assert plan.metadata.total_changes == 4


def test_empty_diff_set_builds_empty_plan() -> None:
    plan = build_plan([RecordDiff(model="a", id=1)])

    assert plan.summary.is_empty
    assert plan.operations == ()


def test_plan_too_large_is_raised_before_building() -> None:
    diffs = [_create("a", index, name=str(index)) for index in range(3)]

    with pytest.raises(PlanTooLargeError, match=r"3 > 2"):
        build_plan(diffs, PlanOptions(max_operations=2))


def test_duplicate_new_records_are_rejected() -> None:
    with pytest.raises(PlanConstructionError, match="Duplicate"):
        build_plan([_create("a", 1, name="x"), _create("a", 1, name="y")])


def test_operations_are_immutable() -> None:
    plan = build_plan([_create("a", 1, name="x")])

    with pytest.raises(TypeError):
        plan.operations[0].values["name"] = "changed"  # type: ignore[index]
