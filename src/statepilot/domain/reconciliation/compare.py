"""Field-level drift detection between desired and actual record state.

The diff is one-directional: desired is authoritative and fields that only
exist on the actual record are ignored. Relational values are normalized
before comparison so the shapes a store returns on read (``[id, label]``
pairs, unordered id lists) do not show up as changes.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import TYPE_CHECKING

from statepilot.domain.values import ValueKind, classify_value, normalize_value, values_equal

if TYPE_CHECKING:
    from statepilot.domain.schema import FieldMetadata, SchemaProvider
    from statepilot.domain.values import FieldMap

log = logging.getLogger(__name__)

type FieldComparator = Callable[[object, object], bool]
type StatesById = Mapping[int, FieldMap]

_MISSING = object()


class ChangeKind(StrEnum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True, slots=True, kw_only=True)
class FieldChange:
    path: str
    operation: ChangeKind
    new_value: object
    old_value: object = None


@dataclass(frozen=True, slots=True, kw_only=True)
class RecordDiff:
    """All changes needed to bring one record to its desired state.

    ``is_removed`` diffs carry no changes and request deletion of a record
    that exists only on the actual side.
    """

    model: str
    id: int
    changes: tuple[FieldChange, ...] = ()
    is_new: bool = False
    is_removed: bool = False

    def __post_init__(self) -> None:
        if self.is_new and self.is_removed:
            raise ValueError(f"{self.model}:{self.id} cannot be both new and removed")

    @property
    def values(self) -> dict[str, object]:
        return {change.path: change.new_value for change in self.changes}


@dataclass(frozen=True, slots=True, kw_only=True)
class CompareOptions:
    schema: SchemaProvider | None = None
    custom_comparators: Mapping[str, FieldComparator] = field(
        default_factory=dict["str", "FieldComparator"]
    )

    def fields_for(self, model: str) -> Mapping[str, FieldMetadata]:
        if self.schema is None:
            return {}
        return self.schema.fields_for(model)


@dataclass(frozen=True, slots=True)
class ComparisonResult:
    changes: dict[str, list[RecordDiff]]
    timestamp: datetime

    @property
    def has_drift(self) -> bool:
        return any(self.changes.values())

    def diffs(self) -> list[RecordDiff]:
        return [diff for diffs in self.changes.values() for diff in diffs]


def compare_record(
    model: str,
    record_id: int,
    desired: FieldMap,
    actual: FieldMap,
    options: CompareOptions | None = None,
) -> list[FieldChange]:
    """Return the changes that turn ``actual`` into ``desired`` for one record."""

    opts = options or CompareOptions()
    model_fields = opts.fields_for(model)
    changes: list[FieldChange] = []

    for name, desired_value in desired.items():
        metadata = model_fields.get(name)
        if metadata is not None and not metadata.is_writable:
            continue

        actual_value = actual.get(name, _MISSING)
        was_missing = actual_value is _MISSING
        if was_missing:
            actual_value = None

        comparator = opts.custom_comparators.get(name)
        if comparator is not None:
            equal = comparator(desired_value, actual_value)
        else:
            equal = _default_equal(desired_value, actual_value, metadata)
        if equal:
            continue

        changes.append(
            FieldChange(
                path=name,
                operation=ChangeKind.CREATE if was_missing else ChangeKind.UPDATE,
                new_value=desired_value,
                old_value=actual_value,
            )
        )

    return changes


def _default_equal(desired: object, actual: object, metadata: FieldMetadata | None) -> bool:
    normalized_desired = normalize_value(desired, metadata)
    normalized_actual = normalize_value(actual, metadata)
    if metadata is not None:
        as_id_set = metadata.is_to_many
    else:
        as_id_set = (
            classify_value(normalized_desired) is ValueKind.ID_LIST
            and classify_value(normalized_actual) is ValueKind.ID_LIST
        )
    return values_equal(normalized_desired, normalized_actual, as_id_set=as_id_set)


def compare_records(
    model: str,
    desired_states: StatesById,
    actual_states: StatesById,
    options: CompareOptions | None = None,
    *,
    prune: bool = False,
) -> list[RecordDiff]:
    """Diff every desired record of ``model`` against its actual counterpart.

    Records missing from ``actual_states`` become ``is_new`` diffs listing every
    writable desired field as a create change. Unchanged records are dropped.
    With ``prune`` set, records only present in ``actual_states`` become
    removal diffs.
    """

    opts = options or CompareOptions()
    diffs: list[RecordDiff] = []

    for record_id, desired in desired_states.items():
        actual = actual_states.get(record_id)
        if actual is None:
            changes = _creation_changes(model, desired, opts)
            if changes:
                diffs.append(RecordDiff(model=model, id=record_id, changes=changes, is_new=True))
            continue

        changes = tuple(compare_record(model, record_id, desired, actual, opts))
        if changes:
            diffs.append(RecordDiff(model=model, id=record_id, changes=changes))

    if prune:
        diffs.extend(
            RecordDiff(model=model, id=record_id, is_removed=True)
            for record_id in actual_states
            if record_id not in desired_states
        )

    log.debug("Compared %d %s record(s): %d diff(s)", len(desired_states), model, len(diffs))
    return diffs


def _creation_changes(
    model: str, desired: FieldMap, options: CompareOptions
) -> tuple[FieldChange, ...]:
    model_fields = options.fields_for(model)
    return tuple(
        FieldChange(path=name, operation=ChangeKind.CREATE, new_value=value)
        for name, value in desired.items()
        if (metadata := model_fields.get(name)) is None or metadata.is_writable
    )


def compare_models(
    desired_by_model: Mapping[str, StatesById],
    actual_by_model: Mapping[str, StatesById],
    options: CompareOptions | None = None,
    *,
    prune: bool = False,
) -> ComparisonResult:
    """Run :func:`compare_records` for every model present in ``desired_by_model``."""

    changes: dict[str, list[RecordDiff]] = {}
    for model, desired_states in desired_by_model.items():
        diffs = compare_records(
            model,
            desired_states,
            actual_by_model.get(model, {}),
            options,
            prune=prune,
        )
        if diffs:
            changes[model] = diffs
    return ComparisonResult(changes=changes, timestamp=datetime.now(UTC))
