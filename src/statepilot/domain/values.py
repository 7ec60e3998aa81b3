"""Field value tagging and normalization.

Stores deliver loosely typed values. Every value handled by the comparator is
classified into one :class:`ValueKind` so normalization rules can be applied
per tag instead of sniffing types ad hoc at each call site:

- ``ID_WITH_LABEL``: ``[id, "label"]`` pairs returned for many-to-one reads
- ``ID_LIST``: lists of integer identifiers for to-many fields
- ``MAPPING``: structured payloads compared with deep equality
- scalars (``STRING``, ``NUMBER``, ``BOOLEAN``, ``NULL``) and ``LIST`` otherwise
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .schema import FieldMetadata


type RecordId = int
type IdWithLabel = tuple[int, str] | list[int | str]
type FieldValue = (
    str
    | int
    | float
    | bool
    | None
    | list[int]
    | IdWithLabel
    | Mapping[str, object]
    | list[object]
)
type FieldMap = Mapping[str, object]


class ValueKind(StrEnum):
    NULL = "null"
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    ID_LIST = "id_list"
    ID_WITH_LABEL = "id_with_label"
    MAPPING = "mapping"
    LIST = "list"


def is_record_id(value: object) -> bool:
    """Return ``True`` for integer ids; booleans are excluded on purpose."""

    return isinstance(value, int) and not isinstance(value, bool)


def _is_sequence(value: object) -> bool:
    return isinstance(value, Sequence) and not isinstance(value, (str, bytes))


def classify_value(value: object) -> ValueKind:
    if value is None:
        return ValueKind.NULL
    if isinstance(value, bool):
        return ValueKind.BOOLEAN
    if isinstance(value, (int, float)):
        return ValueKind.NUMBER
    if isinstance(value, str):
        return ValueKind.STRING
    if isinstance(value, Mapping):
        return ValueKind.MAPPING
    if _is_sequence(value):
        items = list(value)  # type: ignore[arg-type]
        if len(items) == 2 and is_record_id(items[0]) and isinstance(items[1], str):
            return ValueKind.ID_WITH_LABEL
        if all(is_record_id(item) for item in items):
            return ValueKind.ID_LIST
        return ValueKind.LIST
    raise TypeError(f"Unsupported field value type: {type(value).__name__}")


def normalize_value(value: object, field: FieldMetadata | None = None) -> object:
    """Reduce ``value`` to the form used for equality checks.

    many2one values collapse to the bare id, to-many values become a sorted
    tuple of ids so membership rather than order is compared. Without field
    metadata the same rules apply by shape; a pair-shaped list on a field the
    schema marks as non-relational is kept whole.
    """

    kind = classify_value(value)
    if kind is ValueKind.NULL:
        return None

    if field is not None and field.is_relational:
        if field.is_to_many:
            if kind in (ValueKind.ID_LIST, ValueKind.ID_WITH_LABEL, ValueKind.LIST):
                return _id_multiset(value)  # type: ignore[arg-type]
            return value
        if kind is ValueKind.ID_WITH_LABEL:
            return list(value)[0]  # type: ignore[call-overload]
        return value

    if field is None and kind is ValueKind.ID_WITH_LABEL:
        return list(value)[0]  # type: ignore[call-overload]
    if kind is ValueKind.ID_LIST:
        return list(value)  # type: ignore[call-overload]
    if kind in (ValueKind.LIST, ValueKind.ID_WITH_LABEL):
        return list(value)  # type: ignore[call-overload]
    return value


def _id_multiset(values: Sequence[object]) -> tuple[object, ...]:
    return tuple(sorted(values, key=_sort_key))


def _sort_key(value: object) -> tuple[int, str]:
    if is_record_id(value):
        return (0, f"{value:020d}")
    return (1, repr(value))


def values_equal(desired: object, actual: object, *, as_id_set: bool = False) -> bool:
    """Structural equality with optional order-insensitive comparison of id lists."""

    if desired is None or actual is None:
        return desired is None and actual is None

    if isinstance(desired, Mapping) and isinstance(actual, Mapping):
        if desired.keys() != actual.keys():
            return False
        return all(values_equal(desired[key], actual[key]) for key in desired)

    if _is_sequence(desired) and _is_sequence(actual):
        left = list(desired)  # type: ignore[call-overload]
        right = list(actual)  # type: ignore[call-overload]
        if len(left) != len(right):
            return False
        if as_id_set:
            return _id_multiset(left) == _id_multiset(right)
        return all(values_equal(a, b) for a, b in zip(left, right, strict=True))

    if _is_sequence(desired) or _is_sequence(actual):
        return False
    if isinstance(desired, Mapping) or isinstance(actual, Mapping):
        return False
    if isinstance(desired, bool) is not isinstance(actual, bool):
        return False
    return desired == actual
