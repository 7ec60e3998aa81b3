"""Desired-state and field-metadata documents.

Snapshots list records as ``{"model", "id", "values"}`` objects. Ids of
records that do not exist yet are arbitrary integers chosen by the author;
other records in the same snapshot reference them by that id and the planner
rewrites those references to placeholders.

Schema documents list fields per model using the attribute names common to
record-store metadata APIs (``type``, ``readonly``, ``relation``).
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field, model_validator

from statepilot.domain.schema import RELATIONAL_KINDS, FieldKind, FieldMetadata, SchemaRegistry

log = logging.getLogger(__name__)

type DesiredState = dict[str, dict[int, dict[str, Any]]]


class RecordDocument(BaseModel):
    model_config = ConfigDict(extra="forbid")

    model: str = Field(min_length=1)
    id: int
    values: dict[str, Any] = Field(default_factory=dict)


class SnapshotDocument(BaseModel):
    model_config = ConfigDict(extra="forbid")

    records: list[RecordDocument] = Field(default_factory=list)

    @model_validator(mode="after")
    def _unique_records(self) -> SnapshotDocument:
        seen: set[tuple[str, int]] = set()
        for record in self.records:
            key = (record.model, record.id)
            if key in seen:
                raise ValueError(f"Duplicate record in snapshot: {record.model}:{record.id}")
            seen.add(key)
        return self

    def desired_state(self) -> DesiredState:
        state: DesiredState = {}
        for record in self.records:
            state.setdefault(record.model, {})[record.id] = dict(record.values)
        return state


class FieldDocument(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)
    _logged_extra_keys: ClassVar[set[str]] = set()

    name: str = Field(min_length=1)
    kind: FieldKind = Field(alias="type")
    required: bool = False
    read_only: bool = Field(default=False, alias="readonly")
    computed: bool = False
    relation_target: str | None = Field(default=None, alias="relation")

    def model_post_init(self, _context: object, /) -> None:
        extras = self.__pydantic_extra__
        if not extras:
            return
        new_keys = set(extras).difference(self._logged_extra_keys)
        if not new_keys:
            return
        self._logged_extra_keys.update(new_keys)
        log.warning("Field metadata: unmodeled keys: %s", ", ".join(sorted(new_keys)))

    @model_validator(mode="after")
    def _relation_needs_target(self) -> FieldDocument:
        if self.kind in RELATIONAL_KINDS and not self.relation_target:
            raise ValueError(f"Relational field {self.name!r} needs a relation")
        return self

    def to_metadata(self) -> FieldMetadata:
        return FieldMetadata(
            name=self.name,
            kind=self.kind,
            required=self.required,
            read_only=self.read_only,
            computed=self.computed,
            relation_target=self.relation_target,
        )


class SchemaDocument(BaseModel):
    model_config = ConfigDict(extra="forbid")

    models: dict[str, list[FieldDocument]] = Field(default_factory=dict)

    def registry(self) -> SchemaRegistry:
        return SchemaRegistry.from_fields(
            {
                model: [field.to_metadata() for field in fields]
                for model, fields in self.models.items()
            }
        )


def load_snapshot(source: Path | str | Mapping[str, Any]) -> DesiredState:
    """Parse a snapshot from a JSON file path or an already-decoded mapping."""

    if isinstance(source, Mapping):
        document = SnapshotDocument.model_validate(source)
    else:
        document = SnapshotDocument.model_validate_json(Path(source).read_text(encoding="utf-8"))
    return document.desired_state()


def load_schema(source: Path | str | Mapping[str, Any]) -> SchemaRegistry:
    """Parse field metadata from a JSON file path or an already-decoded mapping."""

    if isinstance(source, Mapping):
        document = SchemaDocument.model_validate(source)
    else:
        document = SchemaDocument.model_validate_json(Path(source).read_text(encoding="utf-8"))
    return document.registry()
