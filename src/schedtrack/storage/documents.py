"""
Document Store - The persistence contract the storage engine is built on.

A document store holds named collections of JSON-like documents keyed by
`_id`. Each collection supports three primitives, each atomic with respect to
the single document it touches:

- find_one(filter)
- find_one_and_update(filter, update, upsert, return_document)
- insert_one(document)

Filters support equality on (dotted) paths and `{"$exists": bool}`.
Updates support the `$set`, `$unset`, `$inc`, `$addToSet` and `$pull`
operators. No multi-document transactions are offered or assumed.

Backends:
1. MemoryDocumentStore → process-local dictionaries (tests, throwaway sessions)
2. SqliteDocumentStore → JSON documents in a SQLite file
"""

import copy
import json
import re
import sqlite3
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from enum import Enum
from pathlib import Path
from typing import Any, Generator

from schedtrack.core.config import get_logger
from schedtrack.core.errors import CorruptRecord, StoreUnavailable

logger = get_logger("storage.documents")

Document = dict[str, Any]

_MISSING = object()


class ReturnDocument(str, Enum):
    """Which version of a document find_one_and_update returns."""
    BEFORE = "before"
    AFTER = "after"


class UnsupportedOperation(ValueError):
    """A filter or update uses an operator the store does not implement."""


# ============================================
# Filter / update evaluation
# ============================================

def get_path(document: Document, path: str) -> Any:
    """Resolve a dotted path, returning _MISSING when any segment is absent."""
    current: Any = document
    for part in path.split("."):
        if not isinstance(current, dict) or part not in current:
            return _MISSING
        current = current[part]
    return current


def _parent_for_write(document: Document, path: str) -> tuple[dict, str]:
    parts = path.split(".")
    current = document
    for part in parts[:-1]:
        child = current.setdefault(part, {})
        if not isinstance(child, dict):
            raise TypeError(f"cannot descend into non-document field '{part}' of '{path}'")
        current = child
    return current, parts[-1]


def matches(document: Document, filter: Document) -> bool:
    """Check whether a document satisfies a filter."""
    for path, condition in filter.items():
        value = get_path(document, path)
        if isinstance(condition, dict) and condition and all(k.startswith("$") for k in condition):
            for op, operand in condition.items():
                if op == "$exists":
                    if (value is not _MISSING) != bool(operand):
                        return False
                else:
                    raise UnsupportedOperation(f"unsupported filter operator {op}")
        elif value is _MISSING or value != condition:
            return False
    return True


def apply_update(document: Document, update: Document) -> Document:
    """Return a copy of `document` with the update operators applied."""
    result = copy.deepcopy(document)
    for op, fields in update.items():
        for path, operand in fields.items():
            if path == "_id" or path.startswith("_id."):
                raise UnsupportedOperation("the _id field is immutable")
            if op in ("$unset", "$pull") and "." in path:
                # Removals never create the intermediate documents
                holder = get_path(result, path.rsplit(".", 1)[0])
                if not isinstance(holder, dict):
                    continue
            parent, leaf = _parent_for_write(result, path)
            if op == "$set":
                parent[leaf] = copy.deepcopy(operand)
            elif op == "$unset":
                parent.pop(leaf, None)
            elif op == "$inc":
                current = parent.get(leaf, 0)
                if not isinstance(current, (int, float)) or isinstance(current, bool):
                    raise TypeError(f"cannot increment non-numeric field '{path}'")
                parent[leaf] = current + operand
            elif op == "$addToSet":
                members = parent.setdefault(leaf, [])
                if not isinstance(members, list):
                    raise TypeError(f"cannot add to non-array field '{path}'")
                if operand not in members:
                    members.append(copy.deepcopy(operand))
            elif op == "$pull":
                members = parent.get(leaf)
                if members is None:
                    continue
                if not isinstance(members, list):
                    raise TypeError(f"cannot pull from non-array field '{path}'")
                parent[leaf] = [m for m in members if m != operand]
            else:
                raise UnsupportedOperation(f"unsupported update operator {op}")
    return result


def _upsert_seed(filter: Document) -> Document:
    """Build the base document for an upsert from the filter's equality clauses."""
    seed: Document = {}
    for path, condition in filter.items():
        if isinstance(condition, dict) and any(k.startswith("$") for k in condition):
            continue
        parent, leaf = _parent_for_write(seed, path)
        parent[leaf] = copy.deepcopy(condition)
    return seed


# ============================================
# Contract
# ============================================

class DocumentCollection(ABC):
    """A named collection of documents keyed by `_id`."""

    name: str

    @abstractmethod
    def find_one(self, filter: Document) -> Document | None:
        """Get the first document matching the filter."""

    @abstractmethod
    def find_one_and_update(
        self,
        filter: Document,
        update: Document,
        upsert: bool = False,
        return_document: ReturnDocument = ReturnDocument.BEFORE,
    ) -> Document | None:
        """
        Atomically update the first document matching the filter.

        Returns the document as it was before the update (or after it, with
        ReturnDocument.AFTER). Returns None when nothing matched, unless
        `upsert` created a document and AFTER was requested.
        """

    @abstractmethod
    def insert_one(self, document: Document) -> Any:
        """Insert a new document. Returns its `_id`."""


class DocumentStore(ABC):
    """A set of named collections."""

    @abstractmethod
    def collection(self, name: str) -> DocumentCollection:
        """Get (creating if needed) the collection with the given name."""

    def close(self) -> None:
        """Release any held resources."""


def _require_id(collection: str, document: Document) -> Any:
    if "_id" not in document:
        raise ValueError(f"document inserted into '{collection}' has no _id")
    return document["_id"]


# ============================================
# In-memory backend
# ============================================

class MemoryCollection(DocumentCollection):
    """Collection backed by a dict. Documents are copied in and out."""

    def __init__(self, name: str):
        self.name = name
        self._docs: dict[Any, Document] = {}
        self._lock = threading.Lock()

    def _find(self, filter: Document) -> Document | None:
        if "_id" in filter and not isinstance(filter["_id"], dict):
            doc = self._docs.get(filter["_id"])
            return doc if doc is not None and matches(doc, filter) else None
        for doc in self._docs.values():
            if matches(doc, filter):
                return doc
        return None

    def find_one(self, filter: Document) -> Document | None:
        with self._lock:
            doc = self._find(filter)
            return copy.deepcopy(doc) if doc is not None else None

    def find_one_and_update(
        self,
        filter: Document,
        update: Document,
        upsert: bool = False,
        return_document: ReturnDocument = ReturnDocument.BEFORE,
    ) -> Document | None:
        with self._lock:
            before = self._find(filter)
            if before is None:
                if not upsert:
                    return None
                after = apply_update(_upsert_seed(filter), update)
                _require_id(self.name, after)
                self._docs[after["_id"]] = after
                return copy.deepcopy(after) if return_document == ReturnDocument.AFTER else None
            try:
                after = apply_update(before, update)
            except TypeError as e:
                raise CorruptRecord(self.name, before.get("_id"), str(e)) from e
            self._docs[after["_id"]] = after
            chosen = after if return_document == ReturnDocument.AFTER else before
            return copy.deepcopy(chosen)

    def insert_one(self, document: Document) -> Any:
        doc_id = _require_id(self.name, document)
        with self._lock:
            if doc_id in self._docs:
                raise CorruptRecord(self.name, doc_id, "duplicate _id")
            self._docs[doc_id] = copy.deepcopy(document)
        return doc_id


class MemoryDocumentStore(DocumentStore):
    """Document store that lives only as long as the process."""

    def __init__(self):
        self._collections: dict[str, MemoryCollection] = {}
        self._lock = threading.Lock()

    def collection(self, name: str) -> MemoryCollection:
        with self._lock:
            if name not in self._collections:
                self._collections[name] = MemoryCollection(name)
            return self._collections[name]


# ============================================
# SQLite backend
# ============================================

_COLLECTION_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class SqliteCollection(DocumentCollection):
    """
    Collection stored as a SQLite table of JSON documents.

    Table layout: `key` holds the JSON encoding of `_id`, `body` the document.
    Every primitive runs inside its own IMMEDIATE transaction so concurrent
    writers serialize on the database lock.
    """

    def __init__(self, store: "SqliteDocumentStore", name: str):
        if not _COLLECTION_NAME.match(name):
            raise ValueError(f"invalid collection name: {name!r}")
        self.name = name
        self.store = store
        with self.store._get_connection() as conn:
            conn.execute(f"""
                CREATE TABLE IF NOT EXISTS {name} (
                    key TEXT PRIMARY KEY,
                    body TEXT NOT NULL
                )
            """)

    def _decode(self, key: str, body: str) -> Document:
        try:
            doc = json.loads(body)
        except json.JSONDecodeError as e:
            raise CorruptRecord(self.name, key, f"undecodable JSON: {e}") from e
        if not isinstance(doc, dict):
            raise CorruptRecord(self.name, key, "document is not an object")
        return doc

    def _find(self, conn: sqlite3.Connection, filter: Document) -> Document | None:
        if "_id" in filter and not isinstance(filter["_id"], dict):
            key = json.dumps(filter["_id"])
            row = conn.execute(
                f"SELECT key, body FROM {self.name} WHERE key = ?", (key,)
            ).fetchone()
            rows = [row] if row else []
        else:
            rows = conn.execute(
                f"SELECT key, body FROM {self.name} ORDER BY rowid"
            ).fetchall()

        for row in rows:
            doc = self._decode(row["key"], row["body"])
            if matches(doc, filter):
                return doc
        return None

    def _write(self, conn: sqlite3.Connection, document: Document, insert: bool) -> None:
        key = json.dumps(document["_id"])
        body = json.dumps(document)
        if insert:
            conn.execute(
                f"INSERT INTO {self.name} (key, body) VALUES (?, ?)", (key, body)
            )
        else:
            conn.execute(
                f"UPDATE {self.name} SET body = ? WHERE key = ?", (body, key)
            )

    def find_one(self, filter: Document) -> Document | None:
        with self.store._get_connection() as conn:
            return self._find(conn, filter)

    def find_one_and_update(
        self,
        filter: Document,
        update: Document,
        upsert: bool = False,
        return_document: ReturnDocument = ReturnDocument.BEFORE,
    ) -> Document | None:
        with self.store._transaction() as conn:
            before = self._find(conn, filter)
            if before is None:
                if not upsert:
                    return None
                after = apply_update(_upsert_seed(filter), update)
                _require_id(self.name, after)
                self._write(conn, after, insert=True)
                return after if return_document == ReturnDocument.AFTER else None
            try:
                after = apply_update(before, update)
            except TypeError as e:
                raise CorruptRecord(self.name, before.get("_id"), str(e)) from e
            self._write(conn, after, insert=False)
            return after if return_document == ReturnDocument.AFTER else before

    def insert_one(self, document: Document) -> Any:
        doc_id = _require_id(self.name, document)
        with self.store._transaction() as conn:
            try:
                self._write(conn, document, insert=True)
            except sqlite3.IntegrityError as e:
                raise CorruptRecord(self.name, doc_id, "duplicate _id") from e
        return doc_id


class SqliteDocumentStore(DocumentStore):
    """Document store persisted in a single SQLite database file."""

    def __init__(self, db_path: Path, timeout: float = 30.0):
        """Initialize the store, creating the database file if needed."""
        self.db_path = Path(db_path)
        self.timeout = timeout
        self._collections: dict[str, SqliteCollection] = {}
        self._lock = threading.Lock()
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StoreUnavailable(f"cannot create {self.db_path.parent}: {e}") from e
        logger.debug(f"Using SQLite document store at {self.db_path}")

    @contextmanager
    def _get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """Get a database connection with row factory, committing on success."""
        try:
            conn = sqlite3.connect(self.db_path, timeout=self.timeout)
        except sqlite3.Error as e:
            raise StoreUnavailable(f"cannot open {self.db_path}: {e}") from e
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except sqlite3.IntegrityError:
            conn.rollback()
            raise
        except sqlite3.Error as e:
            conn.rollback()
            raise StoreUnavailable(str(e)) from e
        finally:
            conn.close()

    @contextmanager
    def _transaction(self) -> Generator[sqlite3.Connection, None, None]:
        """A connection holding the database write lock until it is released."""
        with self._get_connection() as conn:
            try:
                conn.execute("BEGIN IMMEDIATE")
            except sqlite3.Error as e:
                raise StoreUnavailable(f"cannot lock {self.db_path}: {e}") from e
            yield conn

    def collection(self, name: str) -> SqliteCollection:
        with self._lock:
            if name not in self._collections:
                self._collections[name] = SqliteCollection(self, name)
            return self._collections[name]
