"""Human-readable plan rendering for review before apply."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Final

from .plan import OperationType

if TYPE_CHECKING:
    from .plan import ExecutionPlan, Operation

_RESET: Final = "\x1b[0m"
_COLOURS: Final = {
    OperationType.CREATE: "\x1b[32m",
    OperationType.UPDATE: "\x1b[33m",
    OperationType.DELETE: "\x1b[31m",
}
_SYMBOLS: Final = {
    OperationType.CREATE: "+",
    OperationType.UPDATE: "~",
    OperationType.DELETE: "-",
}
_ERROR_COLOUR: Final = "\x1b[31m"


def format_plan(plan: ExecutionPlan, *, colorize: bool = False) -> str:
    """Render ``plan`` one operation per block, ending with a count line.

    ``+`` marks creates, ``~`` updates and ``-`` deletes.
    """

    lines: list[str] = []
    summary = plan.summary
    if summary.has_errors:
        lines.append(_paint("Errors in plan:", _ERROR_COLOUR, colorize))
        lines.extend(f"  - {error}" for error in summary.errors)
        lines.append("")

    if summary.is_empty:
        lines.append("No changes. Actual state matches the desired state.")
        return "\n".join(lines)

    for operation in plan.operations:
        lines.extend(_format_operation(operation, colorize=colorize))
        lines.append("")

    lines.append(
        f"Plan: {summary.creates} to add, {summary.updates} to change, "
        f"{summary.deletes} to destroy."
    )
    return "\n".join(lines)


def _format_operation(operation: Operation, *, colorize: bool) -> list[str]:
    symbol = _SYMBOLS[operation.type]
    colour = _COLOURS[operation.type]
    header = f"{symbol} {operation.id}"
    if operation.reason:
        header += f"  # {operation.reason}"
    lines = [_paint(header, colour, colorize)]
    lines.extend(
        _paint(f"    {symbol} {name}: {_render(value)}", colour, colorize)
        for name, value in operation.values.items()
    )
    if operation.dependencies:
        lines.append(f"    (after {', '.join(operation.dependencies)})")
    return lines


def _render(value: object) -> str:
    return json.dumps(value, default=str, ensure_ascii=False)


def _paint(text: str, colour: str, enabled: bool) -> str:
    return f"{colour}{text}{_RESET}" if enabled else text
