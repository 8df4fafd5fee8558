"""
sheetshare/core/sql_store.py
DocumentStore backed by the SQLAlchemy tables in core.database.

Increments compile to ``SET col = col + :n`` and conditional updates to a
single ``UPDATE ... WHERE``, so the database applies them atomically.
Single-document semantics come from targeting ``id = (SELECT id ... LIMIT 1)``.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional
from uuid import uuid4

from sqlalchemy import and_, delete, insert, select, true
from sqlalchemy import update as sql_update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from sheetshare.core.database import metadata
from sheetshare.core.errors import StoreError
from sheetshare.core.store import (
    DESCENDING,
    DocumentStore,
    DuplicateKeyError,
    Filter,
    Update,
    apply_update,
    is_operator_map,
)


def _aware(value: Any) -> Any:
    # SQLite hands back naive datetimes; everything is stored in UTC
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _utc(value: Any) -> Any:
    # Offsets are not kept by every dialect; bind aware datetimes as UTC
    if isinstance(value, datetime) and value.tzinfo is not None:
        return value.astimezone(timezone.utc)
    return value


class SqlDocumentStore(DocumentStore):
    """Maps collections to tables of the shared metadata."""

    def __init__(self, engine: Engine):
        self.engine = engine

    def _table(self, collection: str):
        try:
            return metadata.tables[collection]
        except KeyError:
            raise StoreError(f"Unknown collection: {collection}") from None

    def _column(self, table, key: str):
        try:
            return table.c[key]
        except KeyError:
            raise StoreError(f"Unknown field {table.name}.{key}") from None

    def _where(self, table, filter: Filter):
        clauses = []
        for key, condition in filter.items():
            column = self._column(table, key)
            if is_operator_map(condition):
                for op, expected in condition.items():
                    if op == "$ne":
                        clauses.append(column.is_not(None) if expected is None else (column != _utc(expected)) | column.is_(None))
                    elif op == "$in":
                        clauses.append(column.in_([_utc(item) for item in expected]))
                    elif op == "$gt":
                        clauses.append(column > _utc(expected))
                    elif op == "$gte":
                        clauses.append(column >= _utc(expected))
                    elif op == "$lt":
                        clauses.append(column < _utc(expected))
                    elif op == "$lte":
                        clauses.append(column <= _utc(expected))
            elif condition is None:
                clauses.append(column.is_(None))
            else:
                clauses.append(column == _utc(condition))
        return and_(true(), *clauses)

    def _row_to_doc(self, row) -> Dict[str, Any]:
        return {key: _aware(value) for key, value in row._mapping.items()}

    def _single(self, table, filter: Filter):
        # Aliased so the subquery is not correlated to the outer statement;
        # outer predicate repeated so a concurrent writer forces a re-check
        inner = table.alias(f"{table.name}_target")
        first_id = select(inner.c.id).where(self._where(inner, filter)).limit(1).scalar_subquery()
        return and_(table.c.id == first_id, self._where(table, filter))

    def _values(self, table, update: Update) -> Dict[str, Any]:
        values: Dict[str, Any] = {}
        for key, value in update.set_fields.items():
            values[key] = _utc(value)
        for key, amount in update.inc.items():
            column = self._column(table, key)
            values[key] = column + amount
        for key in update.unset:
            self._column(table, key)
            values[key] = None
        return values

    def find_one(self, collection: str, filter: Filter) -> Optional[Dict[str, Any]]:
        docs = self.find(collection, filter, limit=1)
        return docs[0] if docs else None

    def find(self, collection, filter, sort=None, skip=0, limit=None) -> List[Dict[str, Any]]:
        table = self._table(collection)
        stmt = select(table).where(self._where(table, filter))
        for key, direction in sort or ():
            column = self._column(table, key)
            stmt = stmt.order_by(column.desc() if direction == DESCENDING else column.asc())
        if skip:
            stmt = stmt.offset(skip)
        if limit is not None:
            stmt = stmt.limit(limit)
        try:
            with self.engine.connect() as conn:
                rows = conn.execute(stmt).fetchall()
        except SQLAlchemyError as exc:
            raise StoreError(f"find on {collection} failed") from exc
        return [self._row_to_doc(row) for row in rows]

    def insert_one(self, collection: str, doc: Mapping[str, Any]) -> str:
        table = self._table(collection)
        values = {key: _utc(value) for key, value in doc.items()}
        values.setdefault("id", str(uuid4()))
        try:
            with self.engine.begin() as conn:
                conn.execute(insert(table).values(**values))
        except IntegrityError as exc:
            raise DuplicateKeyError(f"Duplicate key in {collection}") from exc
        except SQLAlchemyError as exc:
            raise StoreError(f"insert into {collection} failed") from exc
        return values["id"]

    def _push_update(self, conn, table, filter: Filter, update: Update):
        # List appends have no portable SQL form: lock the row, merge, write back
        stmt = select(table).where(self._where(table, filter)).limit(1).with_for_update()
        row = conn.execute(stmt).first()
        if row is None:
            return None
        doc = self._row_to_doc(row)
        apply_update(doc, update)
        values = {key: _utc(doc.get(key)) for key in table.c.keys() if key != "id"}
        conn.execute(sql_update(table).where(table.c.id == doc["id"]).values(**values))
        return doc

    def update_one(self, collection: str, filter: Filter, update: Update) -> int:
        return 0 if self.find_one_and_update(collection, filter, update) is None else 1

    def find_one_and_update(self, collection, filter, update):
        table = self._table(collection)
        try:
            with self.engine.begin() as conn:
                if update.push:
                    return self._push_update(conn, table, filter, update)
                stmt = (
                    sql_update(table)
                    .where(self._single(table, filter))
                    .values(**self._values(table, update))
                    .returning(*table.c)
                )
                row = conn.execute(stmt).first()
        except IntegrityError as exc:
            raise DuplicateKeyError(f"Duplicate key in {collection}") from exc
        except SQLAlchemyError as exc:
            raise StoreError(f"update on {collection} failed") from exc
        return self._row_to_doc(row) if row is not None else None

    def delete_one(self, collection: str, filter: Filter) -> int:
        table = self._table(collection)
        stmt = delete(table).where(self._single(table, filter))
        return self._delete(collection, stmt)

    def delete_many(self, collection: str, filter: Filter) -> int:
        table = self._table(collection)
        return self._delete(collection, delete(table).where(self._where(table, filter)))

    def _delete(self, collection: str, stmt) -> int:
        try:
            with self.engine.begin() as conn:
                return conn.execute(stmt).rowcount
        except SQLAlchemyError as exc:
            raise StoreError(f"delete on {collection} failed") from exc

