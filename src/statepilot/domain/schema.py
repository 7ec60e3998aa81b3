"""Field metadata consumed from the schema provider.

The reconciliation core never fetches metadata itself. Callers hand in a
:class:`SchemaRegistry` (or any :class:`SchemaProvider`) and the comparator,
planner and validator consult it to decide which fields are relational, which
model a relation points to, and which fields must never be written.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Protocol, runtime_checkable


class FieldKind(StrEnum):
    CHAR = "char"
    TEXT = "text"
    INTEGER = "integer"
    FLOAT = "float"
    BOOLEAN = "boolean"
    DATE = "date"
    DATETIME = "datetime"
    SELECTION = "selection"
    JSON = "json"
    MANY2ONE = "many2one"
    ONE2MANY = "one2many"
    MANY2MANY = "many2many"


RELATIONAL_KINDS = frozenset({FieldKind.MANY2ONE, FieldKind.ONE2MANY, FieldKind.MANY2MANY})
TO_MANY_KINDS = frozenset({FieldKind.ONE2MANY, FieldKind.MANY2MANY})


@dataclass(frozen=True, slots=True, kw_only=True)
class FieldMetadata:
    name: str
    kind: FieldKind
    required: bool = False
    read_only: bool = False
    computed: bool = False
    relation_target: str | None = None

    def __post_init__(self) -> None:
        if self.kind in RELATIONAL_KINDS and not self.relation_target:
            raise ValueError(f"Relational field {self.name!r} needs a relation_target")

    @property
    def is_relational(self) -> bool:
        return self.kind in RELATIONAL_KINDS

    @property
    def is_to_many(self) -> bool:
        return self.kind in TO_MANY_KINDS

    @property
    def is_writable(self) -> bool:
        return not (self.read_only or self.computed)


@runtime_checkable
class SchemaProvider(Protocol):
    """Source of per-model field metadata."""

    def fields_for(self, model: str) -> Mapping[str, FieldMetadata]: ...


@dataclass(slots=True)
class ModelSchema:
    model: str
    fields: dict[str, FieldMetadata] = field(default_factory=dict["str", "FieldMetadata"])

    def add(self, metadata: FieldMetadata) -> None:
        self.fields[metadata.name] = metadata

    def get(self, name: str) -> FieldMetadata | None:
        return self.fields.get(name)

    @property
    def required_fields(self) -> tuple[str, ...]:
        return tuple(name for name, meta in self.fields.items() if meta.required)


@dataclass(slots=True)
class SchemaRegistry:
    """In-memory :class:`SchemaProvider` keyed by model name."""

    _models: dict[str, ModelSchema] = field(
        default_factory=dict["str", "ModelSchema"], repr=False
    )

    @classmethod
    def from_fields(cls, fields_by_model: Mapping[str, list[FieldMetadata]]) -> SchemaRegistry:
        registry = cls()
        for model, fields in fields_by_model.items():
            for metadata in fields:
                registry.register(model, metadata)
        return registry

    @property
    def models(self) -> tuple[str, ...]:
        return tuple(self._models)

    def register(self, model: str, metadata: FieldMetadata) -> None:
        self._models.setdefault(model, ModelSchema(model=model)).add(metadata)

    def schema_for(self, model: str) -> ModelSchema | None:
        return self._models.get(model)

    def fields_for(self, model: str) -> Mapping[str, FieldMetadata]:
        schema = self._models.get(model)
        return schema.fields if schema is not None else {}

    def field_metadata(self, model: str, name: str) -> FieldMetadata | None:
        return self.fields_for(model).get(name)
