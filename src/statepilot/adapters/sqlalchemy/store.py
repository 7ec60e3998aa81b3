"""Record store persisted through SQLAlchemy.

Every record is one row of ``statepilot_record`` keyed by ``(model, id)``
with its field map stored as a JSON payload. Ids are allocated per model.
Each public call runs in its own transaction.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, cast

from sqlalchemy import create_engine, delete, func, insert, select, update
from sqlalchemy.orm import Session, sessionmaker

from statepilot.config import get_database_config
from statepilot.domain.errors import RecordNotFoundError

from ..records import (
    Payload,
    check_required,
    check_writable,
    matches_domain,
    relation_targets,
    render_record,
)
from .tables import create_all_tables, record_table

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

    from statepilot.config import DatabaseConfig
    from statepilot.domain.ports import SearchDomain, StoreContext
    from statepilot.domain.schema import SchemaProvider

log = logging.getLogger(__name__)


class SqlAlchemyRecordStore:
    def __init__(
        self,
        engine: Engine,
        *,
        schema: SchemaProvider | None = None,
        create_tables: bool = True,
    ) -> None:
        self.engine = engine
        self.schema = schema
        self._session_factory = sessionmaker(bind=engine, expire_on_commit=False)
        if create_tables:
            create_all_tables(engine)

    @classmethod
    def from_config(
        cls,
        config: DatabaseConfig | None = None,
        *,
        schema: SchemaProvider | None = None,
    ) -> SqlAlchemyRecordStore:
        resolved = config or get_database_config()
        engine = create_engine(resolved.uri, echo=resolved.echo, future=True)
        return cls(engine, schema=schema)

    def search(self, model: str, domain: SearchDomain) -> list[int]:
        with self._session_factory() as session:
            rows = session.execute(
                select(record_table.c.id, record_table.c.payload)
                .where(record_table.c.model == model)
                .order_by(record_table.c.id)
            ).all()
        return [
            record_id
            for record_id, payload in rows
            if matches_domain(record_id, cast(Payload, payload), domain)
        ]

    def read(
        self,
        model: str,
        ids: Sequence[int],
        fields: Sequence[str] | None = None,
    ) -> list[dict[str, object]]:
        with self._session_factory() as session:

            def lookup(target: str, record_id: int) -> Payload | None:
                return self._payload(session, target, record_id)

            return [
                render_record(
                    model,
                    record_id,
                    self._require(session, model, record_id),
                    fields,
                    self.schema,
                    lookup,
                )
                for record_id in ids
            ]

    def create(
        self,
        model: str,
        values: Mapping[str, object],
        context: StoreContext | None = None,
    ) -> int:
        with self._session_factory.begin() as session:
            return self._insert(session, model, values)

    def create_many(
        self,
        model: str,
        values_list: Sequence[Mapping[str, object]],
        context: StoreContext | None = None,
    ) -> list[int]:
        with self._session_factory.begin() as session:
            return [self._insert(session, model, values) for values in values_list]

    def write(
        self,
        model: str,
        ids: Sequence[int],
        values: Mapping[str, object],
        context: StoreContext | None = None,
    ) -> bool:
        with self._session_factory.begin() as session:
            self._check_values(session, model, values)
            for record_id in ids:
                payload = dict(self._require(session, model, record_id))
                payload.update(values)
                session.execute(
                    update(record_table)
                    .where(record_table.c.model == model)
                    .where(record_table.c.id == record_id)
                    .values(payload=payload)
                )
        return True

    def unlink(
        self,
        model: str,
        ids: Sequence[int],
        context: StoreContext | None = None,
    ) -> bool:
        with self._session_factory.begin() as session:
            for record_id in ids:
                self._require(session, model, record_id)
            session.execute(
                delete(record_table)
                .where(record_table.c.model == model)
                .where(record_table.c.id.in_(list(ids)))
            )
        return True

    def _insert(self, session: Session, model: str, values: Mapping[str, object]) -> int:
        self._check_values(session, model, values)
        check_required(model, values, self.schema)
        current = session.execute(
            select(func.max(record_table.c.id)).where(record_table.c.model == model)
        ).scalar_one_or_none()
        record_id = (current or 0) + 1
        session.execute(
            insert(record_table).values(model=model, id=record_id, payload=dict(values))
        )
        log.debug("Created %s:%d", model, record_id)
        return record_id

    def _payload(self, session: Session, model: str, record_id: int) -> Payload | None:
        payload = session.execute(
            select(record_table.c.payload)
            .where(record_table.c.model == model)
            .where(record_table.c.id == record_id)
        ).scalar_one_or_none()
        return cast("Payload | None", payload)

    def _require(self, session: Session, model: str, record_id: int) -> Payload:
        payload = self._payload(session, model, record_id)
        if payload is None:
            raise RecordNotFoundError(f"Record {model}:{record_id} does not exist")
        return payload

    def _check_values(self, session: Session, model: str, values: Mapping[str, object]) -> None:
        check_writable(model, values, self.schema)
        for name, target, record_id in relation_targets(model, values, self.schema):
            if self._payload(session, target, record_id) is None:
                raise RecordNotFoundError(
                    f"Field {name} on {model} points to {target}:{record_id}, "
                    "which does not exist (foreign key)"
                )
