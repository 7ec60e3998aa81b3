"""Port for the remote record store the executor and validator talk to."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Protocol, runtime_checkable

type DomainTerm = tuple[str, str, object]
type SearchDomain = Sequence[DomainTerm]
type StoreContext = Mapping[str, object]


@runtime_checkable
class RecordStore(Protocol):
    """Minimal search/read/create/write/unlink contract.

    ``read`` delivers many-to-one fields as ``[id, label]`` pairs and to-many
    fields as id lists. Mutations raise
    :class:`~statepilot.domain.errors.RecordStoreError` subclasses when the
    store rejects them.
    """

    def search(self, model: str, domain: SearchDomain) -> list[int]: ...

    def read(
        self,
        model: str,
        ids: Sequence[int],
        fields: Sequence[str] | None = None,
    ) -> list[dict[str, object]]: ...

    def create(
        self,
        model: str,
        values: Mapping[str, object],
        context: StoreContext | None = None,
    ) -> int: ...

    def write(
        self,
        model: str,
        ids: Sequence[int],
        values: Mapping[str, object],
        context: StoreContext | None = None,
    ) -> bool: ...

    def unlink(
        self,
        model: str,
        ids: Sequence[int],
        context: StoreContext | None = None,
    ) -> bool: ...


@runtime_checkable
class BatchRecordStore(RecordStore, Protocol):
    """Store that can create several records of one model in a single call."""

    def create_many(
        self,
        model: str,
        values_list: Sequence[Mapping[str, object]],
        context: StoreContext | None = None,
    ) -> list[int]: ...
