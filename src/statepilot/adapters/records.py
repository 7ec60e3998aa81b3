"""Record helpers shared by the bundled store adapters.

Both adapters keep records as plain payload dicts and render them the way a
remote store answers ``read``: many-to-one fields as ``[id, label]`` pairs and
to-many fields as id lists.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from typing import TYPE_CHECKING, Final

from statepilot.domain.errors import MissingRequiredFieldError, RecordStoreError
from statepilot.domain.schema import FieldKind
from statepilot.domain.values import is_record_id

if TYPE_CHECKING:
    from statepilot.domain.ports import SearchDomain
    from statepilot.domain.schema import SchemaProvider

type Payload = dict[str, object]

LABEL_FIELDS: Final[tuple[str, ...]] = ("name", "display_name", "title")


def _term_matches(record_id: int, payload: Mapping[str, object], term: Sequence[object]) -> bool:
    if len(term) != 3:
        raise RecordStoreError(f"Domain terms must be (field, operator, value), got {term!r}")
    field_name, operator, expected = term
    actual = record_id if field_name == "id" else payload.get(str(field_name))
    if isinstance(actual, list) and len(actual) == 2 and is_record_id(actual[0]):
        actual = actual[0]
    match operator:
        case "=":
            return actual == expected
        case "!=":
            return actual != expected
        case "in":
            return actual in _as_collection(expected)
        case "not in":
            return actual not in _as_collection(expected)
        case _:
            raise RecordStoreError(f"Unsupported domain operator: {operator!r}")


def _as_collection(value: object) -> Sequence[object]:
    if isinstance(value, (list, tuple, set, frozenset)):
        return list(value)
    raise RecordStoreError(f"'in' operators need a list value, got {value!r}")


def matches_domain(record_id: int, payload: Mapping[str, object], domain: SearchDomain) -> bool:
    return all(_term_matches(record_id, payload, term) for term in domain)


def label_for(payload: Mapping[str, object] | None, model: str, record_id: int) -> str:
    if payload is not None:
        for name in LABEL_FIELDS:
            value = payload.get(name)
            if isinstance(value, str) and value:
                return value
    return f"{model},{record_id}"


def render_record(
    model: str,
    record_id: int,
    payload: Mapping[str, object],
    fields: Sequence[str] | None,
    schema: SchemaProvider | None,
    lookup: Callable[[str, int], Mapping[str, object] | None],
) -> Payload:
    model_fields = schema.fields_for(model) if schema is not None else {}
    names = list(fields) if fields is not None else list(payload)
    rendered: Payload = {"id": record_id}
    for name in names:
        if name == "id":
            continue
        value = payload.get(name)
        metadata = model_fields.get(name)
        if metadata is not None and metadata.kind is FieldKind.MANY2ONE and is_record_id(value):
            target = metadata.relation_target or ""
            rendered[name] = [value, label_for(lookup(target, value), target, value)]  # type: ignore[arg-type]
        elif metadata is not None and metadata.is_to_many:
            rendered[name] = list(value) if isinstance(value, (list, tuple)) else []
        else:
            rendered[name] = value
    return rendered


def check_required(
    model: str, values: Mapping[str, object], schema: SchemaProvider | None
) -> None:
    if schema is None:
        return
    missing = [
        name
        for name, metadata in schema.fields_for(model).items()
        if metadata.required and values.get(name) is None
    ]
    if missing:
        raise MissingRequiredFieldError(
            f"Missing required field(s) on {model}: {', '.join(sorted(missing))}"
        )


def check_writable(
    model: str, values: Mapping[str, object], schema: SchemaProvider | None
) -> None:
    if schema is None:
        return
    model_fields = schema.fields_for(model)
    blocked = [
        name
        for name in values
        if (metadata := model_fields.get(name)) is not None and not metadata.is_writable
    ]
    if blocked:
        raise RecordStoreError(
            f"Field(s) on {model} are read-only or computed: {', '.join(sorted(blocked))}"
        )


def relation_targets(
    model: str, values: Mapping[str, object], schema: SchemaProvider | None
) -> list[tuple[str, str, int]]:
    """Return ``(field, target model, id)`` for every relational id in ``values``."""

    if schema is None:
        return []
    model_fields = schema.fields_for(model)
    references: list[tuple[str, str, int]] = []
    for name, value in values.items():
        metadata = model_fields.get(name)
        if metadata is None or not metadata.is_relational or metadata.relation_target is None:
            continue
        items = value if isinstance(value, (list, tuple)) else [value]
        references.extend(
            (name, metadata.relation_target, item) for item in items if is_record_id(item)
        )
    return references
