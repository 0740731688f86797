"""Document repository storing each collection as a Postgres JSONB table."""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Mapping

from psycopg import errors, sql
from psycopg.rows import tuple_row
from psycopg.types.json import Jsonb
from psycopg_pool import ConnectionPool

Document = dict[str, Any]
Filter = Mapping[str, Any]


class DuplicateDocumentError(Exception):
    """Raised when a write is rejected by one of the collection's unique indexes."""

    def __init__(self, collection: str, constraint: str | None = None) -> None:
        super().__init__(f"duplicate document in {collection} ({constraint or 'unique index'})")
        self.collection = collection
        self.constraint = constraint


@dataclass(frozen=True, slots=True)
class Collection:
    """Storage description for a single document collection."""

    name: str
    datetime_fields: frozenset[str] = frozenset()
    identity_fields: frozenset[str] = frozenset()
    # (index name, indexed expression)
    unique_indexes: tuple[tuple[str, str], ...] = ()


ORGANISATIONS = Collection(
    name="organisations",
    datetime_fields=frozenset({"created_at", "updated_at"}),
    unique_indexes=(("organisations_slug_key", "doc->>'slug'"),),
)

USERS = Collection(
    name="users",
    datetime_fields=frozenset({"created_at", "updated_at", "last_login_at"}),
    identity_fields=frozenset({"org_id", "role_id", "designation_id"}),
    unique_indexes=(("users_email_key", "lower(doc->>'email')"),),
)


def encode_value(value: Any) -> Any:
    """Convert domain values into their JSON representation."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def encode_document(doc: Mapping[str, Any]) -> dict[str, Any]:
    """Return the JSON body stored for ``doc``; the identity lives in its own column."""
    return {key: encode_value(value) for key, value in doc.items() if key != "id"}


def decode_document(collection: Collection, row_id: uuid.UUID, body: Mapping[str, Any]) -> Document:
    """Rebuild a document from its row, restoring datetime and identity fields."""
    doc: Document = {"id": row_id}
    for key, value in body.items():
        if value is not None and key in collection.datetime_fields:
            value = datetime.fromisoformat(value)
        elif value is not None and key in collection.identity_fields:
            value = uuid.UUID(value)
        doc[key] = value
    return doc


def build_filter(filter_: Filter | None) -> tuple[sql.Composable, list[Any]]:
    """Translate a filter mapping into a SQL predicate and its parameters.

    Plain values are matched with JSONB containment. Compiled ``re.Pattern``
    values are matched as POSIX regular expressions against the field's text,
    case-insensitively when the pattern carries ``re.IGNORECASE``.
    """
    if not filter_:
        return sql.SQL("TRUE"), []

    clauses: list[sql.Composable] = []
    params: list[Any] = []
    for key, value in filter_.items():
        if isinstance(value, re.Pattern):
            operator = "~*" if value.flags & re.IGNORECASE else "~"
            clauses.append(
                sql.SQL("doc ->> {} {} %s").format(sql.Literal(key), sql.SQL(operator))
            )
            params.append(value.pattern)
        else:
            clauses.append(sql.SQL("doc @> %s"))
            params.append(Jsonb({key: encode_value(value)}))
    return sql.SQL(" AND ").join(clauses), params


class DocumentRepository:
    """Thin CRUD over one collection; every method is a single atomic statement."""

    def __init__(self, pool: ConnectionPool, collection: Collection) -> None:
        """Store the connection pool and the collection this repository serves."""
        self._pool = pool
        self._collection = collection
        self._table = sql.Identifier(collection.name)

    def ensure_collection(self) -> None:
        """Create the backing table and its unique indexes when missing."""
        with self._pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    sql.SQL(
                        "CREATE TABLE IF NOT EXISTS {} (id uuid PRIMARY KEY, doc jsonb NOT NULL)"
                    ).format(self._table)
                )
                for index_name, expression in self._collection.unique_indexes:
                    cur.execute(
                        sql.SQL("CREATE UNIQUE INDEX IF NOT EXISTS {} ON {} (({}))").format(
                            sql.Identifier(index_name), self._table, sql.SQL(expression)
                        )
                    )
            conn.commit()

    def find_all(self, filter_: Filter | None = None) -> list[Document]:
        """Return matching documents ordered newest-created first."""
        where, params = build_filter(filter_)
        query = sql.SQL(
            """
            SELECT id, doc
            FROM {}
            WHERE {}
            ORDER BY (doc->>'created_at')::timestamptz DESC NULLS LAST, id
            """
        ).format(self._table, where)
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(query, params)
                rows = cur.fetchall()
        return [decode_document(self._collection, row[0], row[1]) for row in rows]

    def find_one(self, filter_: Filter) -> Document | None:
        """Return the first document matching ``filter_`` or ``None``."""
        where, params = build_filter(filter_)
        query = sql.SQL("SELECT id, doc FROM {} WHERE {} LIMIT 1").format(self._table, where)
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(query, params)
                row = cur.fetchone()
        if not row:
            return None
        return decode_document(self._collection, row[0], row[1])

    def find_by_id(self, document_id: uuid.UUID) -> Document | None:
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(
                    sql.SQL("SELECT id, doc FROM {} WHERE id = %s").format(self._table),
                    (document_id,),
                )
                row = cur.fetchone()
        if not row:
            return None
        return decode_document(self._collection, row[0], row[1])

    def insert(self, doc: Mapping[str, Any]) -> Document:
        """Persist a new document and return it with its assigned identity."""
        document_id = doc.get("id") or uuid.uuid4()
        try:
            with self._pool.connection() as conn:
                with conn.cursor(row_factory=tuple_row) as cur:
                    cur.execute(
                        sql.SQL("INSERT INTO {} (id, doc) VALUES (%s, %s) RETURNING id, doc").format(
                            self._table
                        ),
                        (document_id, Jsonb(encode_document(doc))),
                    )
                    row = cur.fetchone()
                conn.commit()
        except errors.UniqueViolation as exc:
            raise DuplicateDocumentError(self._collection.name, exc.diag.constraint_name) from exc
        return decode_document(self._collection, row[0], row[1])

    def find_and_update(self, document_id: uuid.UUID, patch: Mapping[str, Any]) -> Document | None:
        """Merge ``patch`` into the stored document and return the post-update document."""
        try:
            with self._pool.connection() as conn:
                with conn.cursor(row_factory=tuple_row) as cur:
                    cur.execute(
                        sql.SQL(
                            "UPDATE {} SET doc = doc || %s WHERE id = %s RETURNING id, doc"
                        ).format(self._table),
                        (Jsonb(encode_document(patch)), document_id),
                    )
                    row = cur.fetchone()
                conn.commit()
        except errors.UniqueViolation as exc:
            raise DuplicateDocumentError(self._collection.name, exc.diag.constraint_name) from exc
        if not row:
            return None
        return decode_document(self._collection, row[0], row[1])

    def delete(self, document_id: uuid.UUID) -> bool:
        """Remove a document, returning ``True`` when a row was deleted."""
        with self._pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    sql.SQL("DELETE FROM {} WHERE id = %s").format(self._table),
                    (document_id,),
                )
                deleted = cur.rowcount == 1
            conn.commit()
        return deleted
