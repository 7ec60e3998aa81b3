"""Advisory remediation hints for store errors.

Classification matches substrings of the error text, which is locale and
version dependent. The categories below are a best-effort starting set;
callers can pass their own to :func:`suggest_error_fixes`. Nothing in the
pipeline branches on these results.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Final

type ContextHint = Callable[[Mapping[str, object]], str | None]


@dataclass(frozen=True, slots=True, kw_only=True)
class ErrorCategory:
    name: str
    pattern: re.Pattern[str]
    fixes: tuple[str, ...]
    context_hints: tuple[ContextHint, ...] = field(default=())

    def matches(self, message: str) -> bool:
        return self.pattern.search(message) is not None

    def suggestions(self, context: Mapping[str, object]) -> list[str]:
        suggestions = list(self.fixes)
        for hint in self.context_hints:
            extra = hint(context)
            if extra:
                suggestions.append(extra)
        return suggestions


def _model_hint(context: Mapping[str, object]) -> str | None:
    model = context.get("model")
    return f"Search {model} to confirm the ids you are referencing" if model else None


def _operation_hint(context: Mapping[str, object]) -> str | None:
    model = context.get("model")
    if model and context.get("operation_id"):
        return f"Verify the operation includes every required field of {model}"
    return None


ACCESS_DENIED: Final = ErrorCategory(
    name="access_denied",
    pattern=re.compile(r"access.*denied|permission|not allowed|forbidden", re.IGNORECASE),
    fixes=(
        "Check that the user has read/write permissions on the model",
        "Verify the user belongs to the correct security groups",
        "Check model-level and record-level access rules",
    ),
)
NOT_FOUND: Final = ErrorCategory(
    name="not_found",
    pattern=re.compile(r"does not exist|not found|no matching|\b0 records?\b", re.IGNORECASE),
    fixes=(
        "Verify that the record ids are correct",
        "Check whether the records were deleted before the operation ran",
        "Run a fresh compare to rebuild the plan from current state",
    ),
    context_hints=(_model_hint,),
)
MISSING_REQUIRED_FIELD: Final = ErrorCategory(
    name="missing_required_field",
    pattern=re.compile(r"required.*field|missing.*field|mandatory", re.IGNORECASE),
    fixes=(
        "Check that all required fields are included in the operation",
        "Review the model's field metadata for required fields",
    ),
    context_hints=(_operation_hint,),
)
CONSTRAINT_VIOLATION: Final = ErrorCategory(
    name="constraint_violation",
    pattern=re.compile(r"validation|constraint|invalid|unique|duplicate", re.IGNORECASE),
    fixes=(
        "Check field values match expected types and constraints",
        "Look for duplicates violating a uniqueness constraint",
        "Check for circular references or impossible states",
    ),
)
BAD_RELATIONAL_REFERENCE: Final = ErrorCategory(
    name="bad_relational_reference",
    pattern=re.compile(r"many2one|one2many|many2many|relation|foreign key", re.IGNORECASE),
    fixes=(
        "Verify the relational field points to a valid record",
        "Use the record id, not its display name",
        "Ensure the related record exists before linking to it",
    ),
)
CONTEXT_PARAMETER: Final = ErrorCategory(
    name="context_parameter",
    pattern=re.compile(r"context|parameter", re.IGNORECASE),
    fixes=(
        "Check that context variables are valid for the operation",
        "Verify the context does not conflict with operation values",
    ),
)

DEFAULT_CATEGORIES: Final[tuple[ErrorCategory, ...]] = (
    ACCESS_DENIED,
    NOT_FOUND,
    MISSING_REQUIRED_FIELD,
    CONSTRAINT_VIOLATION,
    BAD_RELATIONAL_REFERENCE,
    CONTEXT_PARAMETER,
)

GENERIC_FIXES: Final[tuple[str, ...]] = (
    "Read the store's error message for specific details",
    "Review operation values for typos or incorrect types",
    "Verify all referenced records exist",
    "Check user permissions and access rights",
)


def classify_error(
    error: BaseException | str,
    *,
    categories: Sequence[ErrorCategory] = DEFAULT_CATEGORIES,
) -> list[str]:
    message = str(error)
    return [category.name for category in categories if category.matches(message)]


def suggest_error_fixes(
    error: BaseException | str,
    context: Mapping[str, object] | None = None,
    *,
    categories: Sequence[ErrorCategory] = DEFAULT_CATEGORIES,
) -> list[str]:
    """Return remediation text for ``error``; unmatched errors get a generic checklist."""

    message = str(error)
    ctx = context or {}
    suggestions: list[str] = []
    for category in categories:
        if category.matches(message):
            suggestions.extend(category.suggestions(ctx))
    return suggestions or list(GENERIC_FIXES)
