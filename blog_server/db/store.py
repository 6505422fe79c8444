"""Document store for the music blog, backed by SQLite.

Documents are JSON objects addressed by slash separated paths. A path with an
odd number of segments names a collection ("posts",
"posts/<post_id>/comments"), an even number names a document
("posts/<post_id>", "posts/<post_id>/comments/<comment_id>"). Filtering and
ordering run in SQL through the JSON1 functions so that queries behave like
the hosted document stores the blog was first written against.
"""

import json
import logging
import re
import sqlite3
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator, Optional, Union

from blog_common.errors import NetworkError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

ASCENDING = "ASC"
DESCENDING = "DESC"

_FIELD_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

SCHEMA = """
    CREATE TABLE IF NOT EXISTS documents (
        seq INTEGER PRIMARY KEY AUTOINCREMENT,
        collection TEXT NOT NULL,
        doc_id TEXT NOT NULL,
        data TEXT NOT NULL,
        UNIQUE (collection, doc_id)
    );

    CREATE INDEX IF NOT EXISTS idx_documents_collection ON documents(collection);
"""


# Field transforms, resolved against the stored document inside the write.

class ServerTimestamp:
    """Replaced by the store's clock at write time."""

    def __repr__(self) -> str:
        return "ServerTimestamp()"


@dataclass(frozen=True)
class Increment:
    """Add amount to a numeric field (missing fields count as 0)."""
    amount: int = 1


class ArrayUnion:
    """Append each value to an array field unless already present."""

    def __init__(self, *values: Any):
        self.values = values

    def __repr__(self) -> str:
        return f"ArrayUnion{self.values!r}"


class FieldPath:
    DOCUMENT_ID = "__name__"

    @staticmethod
    def document_id() -> str:
        return FieldPath.DOCUMENT_ID


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def new_id() -> str:
    """A fresh store-assigned document id."""
    return uuid.uuid4().hex


def split_path(path: str) -> tuple[str, str]:
    """Split a document path into (collection, doc_id)."""
    parts = path.strip("/").split("/")
    if len(parts) < 2 or len(parts) % 2:
        raise ValidationError(f"Not a document path: {path!r}")
    return "/".join(parts[:-1]), parts[-1]


def apply_transforms(existing: dict, changes: dict) -> dict:
    """Return existing updated with changes, resolving field transforms."""
    result = dict(existing)
    for key, value in changes.items():
        if isinstance(value, ServerTimestamp):
            result[key] = utc_now()
        elif isinstance(value, Increment):
            result[key] = (result.get(key) or 0) + value.amount
        elif isinstance(value, ArrayUnion):
            current = list(result.get(key) or [])
            for item in value.values:
                if item not in current:
                    current.append(item)
            result[key] = current
        else:
            result[key] = value
    return result


@dataclass
class Document:
    """A stored document."""
    id: str
    collection: str
    data: dict

    @property
    def path(self) -> str:
        return f"{self.collection}/{self.id}"

    def to_dict(self) -> dict:
        return {**self.data, "id": self.id}


def _row_to_document(row: sqlite3.Row) -> Document:
    return Document(id=row["doc_id"], collection=row["collection"], data=json.loads(row["data"]))


def _get(conn: sqlite3.Connection, path: str) -> Optional[Document]:
    collection, doc_id = split_path(path)
    row = conn.execute(
        "SELECT * FROM documents WHERE collection = ? AND doc_id = ?",
        (collection, doc_id)
    ).fetchone()
    if row:
        return _row_to_document(row)
    return None


def _set(conn: sqlite3.Connection, path: str, data: dict, merge: bool = False):
    collection, doc_id = split_path(path)
    existing = _get(conn, path) if merge else None
    base = existing.data if existing else {}
    payload = json.dumps(apply_transforms(base, data))
    if existing:
        conn.execute(
            "UPDATE documents SET data = ? WHERE collection = ? AND doc_id = ?",
            (payload, collection, doc_id)
        )
    else:
        # A replaced document keeps its insertion order.
        conn.execute(
            """INSERT INTO documents (collection, doc_id, data) VALUES (?, ?, ?)
               ON CONFLICT (collection, doc_id) DO UPDATE SET data = excluded.data""",
            (collection, doc_id, payload)
        )


def _update(conn: sqlite3.Connection, path: str, changes: dict):
    existing = _get(conn, path)
    if existing is None:
        raise NotFoundError(f"No document at {path}")
    conn.execute(
        "UPDATE documents SET data = ? WHERE collection = ? AND doc_id = ?",
        (json.dumps(apply_transforms(existing.data, changes)), existing.collection, existing.id)
    )


def _delete(conn: sqlite3.Connection, path: str):
    collection, doc_id = split_path(path)
    conn.execute(
        "DELETE FROM documents WHERE collection = ? AND doc_id = ?",
        (collection, doc_id)
    )


def _delete_collection(conn: sqlite3.Connection, collection: str) -> int:
    """Delete every document of a collection. Nested subcollections stay."""
    result = conn.execute(
        "DELETE FROM documents WHERE collection = ?", (collection.strip("/"),)
    )
    return result.rowcount


class Transaction:
    """Reads and writes on one connection holding the write lock."""

    def __init__(self, conn: sqlite3.Connection):
        self._conn = conn

    def get(self, path: str) -> Optional[Document]:
        return _get(self._conn, path)

    def set(self, path: str, data: dict, merge: bool = False):
        _set(self._conn, path, data, merge=merge)

    def update(self, path: str, changes: dict):
        _update(self._conn, path, changes)

    def delete(self, path: str):
        _delete(self._conn, path)

    def delete_collection(self, collection: str) -> int:
        return _delete_collection(self._conn, collection)


class WriteBatch:
    """Writes collected up front and committed all-or-nothing."""

    def __init__(self, store: "DocumentStore"):
        self._store = store
        self._ops: list[tuple[str, str, dict, bool]] = []
        self._committed = False

    def __len__(self) -> int:
        return len(self._ops)

    def set(self, path: str, data: dict, merge: bool = False) -> "WriteBatch":
        self._ops.append(("set", path, data, merge))
        return self

    def update(self, path: str, changes: dict) -> "WriteBatch":
        self._ops.append(("update", path, changes, False))
        return self

    def delete(self, path: str) -> "WriteBatch":
        self._ops.append(("delete", path, {}, False))
        return self

    def delete_collection(self, collection: str) -> "WriteBatch":
        """Delete whatever the collection holds at commit time."""
        self._ops.append(("delete_collection", collection, {}, False))
        return self

    def commit(self) -> int:
        """Apply every write in one transaction. Returns the documents touched."""
        if self._committed:
            raise ValidationError("Batch already committed")
        touched = 0
        with self._store.transaction() as tx:
            for op, path, data, merge in self._ops:
                if op == "set":
                    tx.set(path, data, merge=merge)
                    touched += 1
                elif op == "update":
                    tx.update(path, data)
                    touched += 1
                elif op == "delete":
                    tx.delete(path)
                    touched += 1
                else:
                    touched += tx.delete_collection(path)
        self._committed = True
        return touched


@dataclass(frozen=True)
class Query:
    """An immutable query over one collection."""
    store: "DocumentStore"
    collection: str
    filters: tuple = ()
    orders: tuple = ()
    max_results: Optional[int] = None

    def where(self, field_name: str, op: str, value: Any) -> "Query":
        if op not in ("==", "!=", "array_contains", "in"):
            raise ValidationError(f"Unsupported operator: {op}")
        if field_name != FieldPath.DOCUMENT_ID:
            _check_field(field_name)
        return replace(self, filters=self.filters + ((field_name, op, value),))

    def order_by(self, field_name: str, direction: str = ASCENDING) -> "Query":
        _check_field(field_name)
        if direction not in (ASCENDING, DESCENDING):
            raise ValidationError(f"Unsupported direction: {direction}")
        return replace(self, orders=self.orders + ((field_name, direction),))

    def limit(self, count: int) -> "Query":
        return replace(self, max_results=count)

    def to_sql(self) -> tuple[str, list]:
        clauses = ["collection = ?"]
        params: list = [self.collection]

        for field_name, op, value in self.filters:
            if field_name == FieldPath.DOCUMENT_ID:
                column = "doc_id"
            else:
                column = f"json_extract(data, '$.{field_name}')"

            if op == "==":
                clauses.append(f"{column} IS ?")
                params.append(value)
            elif op == "!=":
                clauses.append(f"{column} IS NOT ?")
                params.append(value)
            elif op == "in":
                values = list(value)
                if not values:
                    clauses.append("0")
                else:
                    clauses.append(f"{column} IN ({', '.join('?' for _ in values)})")
                    params.extend(values)
            else:
                clauses.append(
                    f"EXISTS (SELECT 1 FROM json_each(data, '$.{field_name}') AS elem "
                    f"WHERE elem.value = ?)"
                )
                params.append(value)

        sql = f"SELECT * FROM documents WHERE {' AND '.join(clauses)}"

        order_terms = [
            f"json_extract(data, '$.{field_name}') {direction}"
            for field_name, direction in self.orders
        ]
        # Insertion order settles ties, in the direction of the last key.
        tie_direction = self.orders[-1][1] if self.orders else ASCENDING
        order_terms.append(f"seq {tie_direction}")
        sql += f" ORDER BY {', '.join(order_terms)}"

        if self.max_results is not None:
            sql += " LIMIT ?"
            params.append(self.max_results)
        return sql, params

    def get(self) -> list[Document]:
        sql, params = self.to_sql()
        with self.store.connect() as conn:
            rows = conn.execute(sql, params).fetchall()
            return [_row_to_document(row) for row in rows]


def _check_field(field_name: str):
    if not _FIELD_RE.match(field_name):
        raise ValidationError(f"Invalid field name: {field_name!r}")


class DocumentStore:
    """SQLite document store. One file, one documents table."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self.init_db()

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        """Get a connection; driver failures surface as NetworkError."""
        try:
            conn = sqlite3.connect(self.path, isolation_level=None, timeout=5.0)
        except sqlite3.Error as exc:
            logger.error("Cannot open document store at %s: %s", self.path, exc)
            raise NetworkError("Document store unavailable") from exc
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        except sqlite3.OperationalError as exc:
            logger.error("Document store failure: %s", exc)
            raise NetworkError("Document store unavailable") from exc
        finally:
            conn.close()

    def init_db(self):
        """Create the schema if missing."""
        with self.connect() as conn:
            conn.executescript(SCHEMA)

    @contextmanager
    def transaction(self) -> Iterator[Transaction]:
        with self.connect() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield Transaction(conn)
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")

    def batch(self) -> WriteBatch:
        return WriteBatch(self)

    def query(self, collection: str) -> Query:
        return Query(store=self, collection=collection.strip("/"))

    # Single document operations

    def get(self, path: str) -> Optional[Document]:
        with self.connect() as conn:
            return _get(conn, path)

    def add(self, collection: str, data: dict) -> str:
        """Create a document with a store-assigned id. Returns the id."""
        doc_id = new_id()
        self.set(f"{collection.strip('/')}/{doc_id}", data)
        return doc_id

    def set(self, path: str, data: dict, merge: bool = False):
        with self.transaction() as tx:
            tx.set(path, data, merge=merge)

    def update(self, path: str, changes: dict):
        """Update fields of an existing document. NotFoundError if missing."""
        with self.transaction() as tx:
            tx.update(path, changes)

    def delete(self, path: str):
        with self.transaction() as tx:
            tx.delete(path)
