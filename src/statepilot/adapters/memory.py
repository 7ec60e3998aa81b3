"""Dictionary-backed record store.

Useful for dry runs, tests and embedding the engine where the store is a
local snapshot. It honours the same contract as a remote store: ids are
allocated per model, relational ids are checked on write, and reads render
many-to-one values as ``[id, label]`` pairs.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from statepilot.domain.errors import RecordNotFoundError

from .records import (
    Payload,
    check_required,
    check_writable,
    matches_domain,
    relation_targets,
    render_record,
)

if TYPE_CHECKING:
    from statepilot.domain.ports import SearchDomain, StoreContext
    from statepilot.domain.schema import SchemaProvider

log = logging.getLogger(__name__)


@dataclass(slots=True)
class InMemoryRecordStore:
    schema: SchemaProvider | None = None
    calls: list[tuple[str, str]] = field(default_factory=list["tuple[str, str]"])
    _records: dict[str, dict[int, Payload]] = field(
        default_factory=dict["str", "dict[int, Payload]"], repr=False
    )
    _next_id: dict[str, int] = field(default_factory=dict["str", "int"], repr=False)

    def seed(self, model: str, record_id: int, values: Mapping[str, object]) -> None:
        """Insert a record with a fixed id, bypassing validation."""

        self._records.setdefault(model, {})[record_id] = dict(values)
        self._next_id[model] = max(self._next_id.get(model, 1), record_id + 1)

    def get(self, model: str, record_id: int) -> Payload | None:
        return self._records.get(model, {}).get(record_id)

    def mutations(self) -> list[tuple[str, str]]:
        return [call for call in self.calls if call[0] in {"create", "create_many", "write", "unlink"}]

    def search(self, model: str, domain: SearchDomain) -> list[int]:
        self.calls.append(("search", model))
        records = self._records.get(model, {})
        return [
            record_id
            for record_id, payload in records.items()
            if matches_domain(record_id, payload, domain)
        ]

    def read(
        self,
        model: str,
        ids: Sequence[int],
        fields: Sequence[str] | None = None,
    ) -> list[dict[str, object]]:
        self.calls.append(("read", model))
        return [
            render_record(
                model,
                record_id,
                self._require(model, record_id),
                fields,
                self.schema,
                self.get,
            )
            for record_id in ids
        ]

    def create(
        self,
        model: str,
        values: Mapping[str, object],
        context: StoreContext | None = None,
    ) -> int:
        self.calls.append(("create", model))
        self._check_values(model, values)
        check_required(model, values, self.schema)
        return self._insert(model, values)

    def create_many(
        self,
        model: str,
        values_list: Sequence[Mapping[str, object]],
        context: StoreContext | None = None,
    ) -> list[int]:
        for values in values_list:
            self._check_values(model, values)
            check_required(model, values, self.schema)
        self.calls.append(("create_many", model))
        return [self._insert(model, values) for values in values_list]

    def write(
        self,
        model: str,
        ids: Sequence[int],
        values: Mapping[str, object],
        context: StoreContext | None = None,
    ) -> bool:
        self.calls.append(("write", model))
        self._check_values(model, values)
        payloads = [self._require(model, record_id) for record_id in ids]
        for payload in payloads:
            payload.update(values)
        return True

    def unlink(
        self,
        model: str,
        ids: Sequence[int],
        context: StoreContext | None = None,
    ) -> bool:
        self.calls.append(("unlink", model))
        records = self._records.get(model, {})
        for record_id in ids:
            self._require(model, record_id)
        for record_id in ids:
            del records[record_id]
        return True

    def _insert(self, model: str, values: Mapping[str, object]) -> int:
        record_id = self._next_id.get(model, 1)
        self._next_id[model] = record_id + 1
        self._records.setdefault(model, {})[record_id] = dict(values)
        log.debug("Created %s:%d", model, record_id)
        return record_id

    def _require(self, model: str, record_id: int) -> Payload:
        payload = self.get(model, record_id)
        if payload is None:
            raise RecordNotFoundError(f"Record {model}:{record_id} does not exist")
        return payload

    def _check_values(self, model: str, values: Mapping[str, object]) -> None:
        check_writable(model, values, self.schema)
        for name, target, record_id in relation_targets(model, values, self.schema):
            if self.get(target, record_id) is None:
                raise RecordNotFoundError(
                    f"Field {name} on {model} points to {target}:{record_id}, "
                    "which does not exist (foreign key)"
                )
