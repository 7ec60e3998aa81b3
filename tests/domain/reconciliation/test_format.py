from __future__ import annotations

from statepilot.domain.reconciliation import (
    ChangeKind,
    FieldChange,
    RecordDiff,
    build_plan,
    format_plan,
)
from tests.support.plans import create, plan_of


def test_empty_plan_reports_no_changes() -> None:
    assert format_plan(build_plan([])) == "No changes. Actual state matches the desired state."


def test_operations_are_rendered_with_symbols_and_summary() -> None:
    plan = build_plan(
        [
            RecordDiff(
                model="res.partner",
                id=4,
                changes=(
                    FieldChange(
                        path="email",
                        operation=ChangeKind.UPDATE,
                        new_value="new@example.com",
                        old_value="old@example.com",
                    ),
                ),
            ),
            RecordDiff(model="res.partner", id=9, is_removed=True),
        ]
    )

    assert format_plan(plan) == (
        "~ res.partner:4  # Update 1 field(s)\n"
        '    ~ email: "new@example.com"\n'
        "\n"
        "- res.partner:9  # Delete record absent from desired state\n"
        "\n"
        "Plan: 0 to add, 1 to change, 1 to destroy."
    )


def test_dependencies_and_plan_errors_are_listed() -> None:
    plan = plan_of(
        create("res.partner.category", 1, name="Tag"),
        create("res.partner", 2, parent_id="res.partner.category:temp_1"),
        errors=("Operation x references unknown temporary record y",),
    )

    text = format_plan(plan)

    assert text.startswith(
        "Errors in plan:\n  - Operation x references unknown temporary record y\n\n"
    )
    assert "    (after res.partner.category:temp_1)" in text
    assert text.endswith("Plan: 2 to add, 0 to change, 0 to destroy.")


def test_colour_wraps_lines_when_enabled() -> None:
    text = format_plan(plan_of(create("res.partner", 1, name="A")), colorize=True)

    assert "\x1b[32m+ res.partner:temp_1\x1b[0m" in text
    assert "\x1b[" not in format_plan(plan_of(create("res.partner", 1, name="A")))
