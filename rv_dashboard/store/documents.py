"""JSON document collections persisted in SQLite."""

import asyncio
import json
import logging
import os
import sqlite3
import threading
import uuid
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

Document = Dict[str, Any]
Filter = Dict[str, Any]
SortSpec = Sequence[Tuple[str, int]]

ASCENDING = 1
DESCENDING = -1

_MISSING = object()

_OPERATORS = {
    "$lt": lambda value, operand: value < operand,
    "$lte": lambda value, operand: value <= operand,
    "$gt": lambda value, operand: value > operand,
    "$gte": lambda value, operand: value >= operand,
    "$ne": lambda value, operand: value != operand,
}


class StoreError(Exception):
    """Base error for document store failures."""


class DuplicateKeyError(StoreError):
    """Raised when inserting a document whose _id already exists."""


def new_id() -> str:
    """Generate a document ID."""
    return uuid.uuid4().hex


def matches(document: Document, query: Optional[Filter]) -> bool:
    """Check a document against an equality / comparison filter."""
    if not query:
        return True

    for key, condition in query.items():
        value = document.get(key, _MISSING)
        if isinstance(condition, dict) and condition and all(k in _OPERATORS for k in condition):
            if value is _MISSING:
                return False
            for op, operand in condition.items():
                try:
                    if not _OPERATORS[op](value, operand):
                        return False
                except TypeError:
                    return False
        elif value is _MISSING or value != condition:
            return False
    return True


def _sorted(documents: List[Document], sort: Optional[SortSpec]) -> List[Document]:
    if not sort:
        return documents
    # Stable sorts applied last-key-first give a multi-key ordering
    for field, direction in reversed(list(sort)):
        documents = sorted(
            documents,
            key=lambda d: (field not in d, d.get(field)),
            reverse=direction == DESCENDING,
        )
    return documents


class Collection:
    """Async view over one named collection."""

    def __init__(self, store: "DocumentStore", name: str):
        self.store = store
        self.name = name

    async def find_one(self, query: Optional[Filter] = None, sort: Optional[SortSpec] = None) -> Optional[Document]:
        documents = await asyncio.to_thread(self.store._select, self.name, query, sort)
        return documents[0] if documents else None

    async def find(self, query: Optional[Filter] = None, sort: Optional[SortSpec] = None) -> List[Document]:
        return await asyncio.to_thread(self.store._select, self.name, query, sort)

    async def count_documents(self, query: Optional[Filter] = None) -> int:
        return len(await self.find(query))

    async def insert_one(self, document: Document) -> Any:
        """Insert a document, generating an _id when it has none.

        Returns:
            The inserted document's _id
        """
        ids = await asyncio.to_thread(self.store._insert, self.name, [document])
        return ids[0]

    async def insert_many(self, documents: Iterable[Document]) -> List[Any]:
        return await asyncio.to_thread(self.store._insert, self.name, list(documents))

    async def update_one(self, query: Filter, update: Dict[str, Document]) -> int:
        """Apply a ``{"$set": {...}}`` update to the first matching document.

        Returns:
            Number of documents matched (0 or 1)
        """
        if set(update) != {"$set"}:
            raise StoreError(f"Unsupported update operators: {sorted(update)}")
        return await asyncio.to_thread(self.store._update, self.name, query, update["$set"], 1)

    async def delete_one(self, query: Filter) -> int:
        return await asyncio.to_thread(self.store._delete, self.name, query, 1)

    async def delete_many(self, query: Filter) -> int:
        return await asyncio.to_thread(self.store._delete, self.name, query, None)


class DocumentStore:
    """Document collections kept as JSON rows in a single SQLite table.

    All access goes through one connection guarded by a lock; coroutine
    callers reach it through worker threads.
    """

    def __init__(self, path: str):
        self.path = path
        self.logger = logging.getLogger(__name__)
        self._lock = threading.Lock()
        self._collections: Dict[str, Collection] = {}

        directory = os.path.dirname(path)
        if path != ":memory:" and directory:
            os.makedirs(directory, exist_ok=True)

        self._conn = sqlite3.connect(path, check_same_thread=False)
        self._conn.execute(
            """
            CREATE TABLE IF NOT EXISTS documents (
              collection TEXT NOT NULL,
              doc_id TEXT NOT NULL,
              body TEXT NOT NULL,
              PRIMARY KEY (collection, doc_id)
            )
            """
        )
        self._conn.commit()
        self.logger.info(f"Opened document store at {path}")

    def collection(self, name: str) -> Collection:
        if name not in self._collections:
            self._collections[name] = Collection(self, name)
        return self._collections[name]

    def close(self) -> None:
        with self._lock:
            self._conn.close()
        self.logger.info("Document store closed")

    # Synchronous primitives, run in worker threads

    def _load(self, collection: str) -> List[Document]:
        rows = self._conn.execute(
            "SELECT body FROM documents WHERE collection = ? ORDER BY rowid", (collection,)
        ).fetchall()
        return [json.loads(body) for (body,) in rows]

    def _select(self, collection: str, query: Optional[Filter], sort: Optional[SortSpec]) -> List[Document]:
        with self._lock:
            documents = [d for d in self._load(collection) if matches(d, query)]
        return _sorted(documents, sort)

    def _insert(self, collection: str, documents: List[Document]) -> List[Any]:
        ids = []
        with self._lock:
            try:
                for document in documents:
                    document = dict(document)
                    document.setdefault("_id", new_id())
                    self._conn.execute(
                        "INSERT INTO documents (collection, doc_id, body) VALUES (?, ?, ?)",
                        (collection, json.dumps(document["_id"]), json.dumps(document)),
                    )
                    ids.append(document["_id"])
                self._conn.commit()
            except sqlite3.IntegrityError as e:
                self._conn.rollback()
                raise DuplicateKeyError(f"Duplicate _id in '{collection}': {e}") from e
        return ids

    def _update(self, collection: str, query: Filter, changes: Document, limit: Optional[int]) -> int:
        matched = 0
        with self._lock:
            for document in self._load(collection):
                if not matches(document, query):
                    continue
                document.update(changes)
                self._conn.execute(
                    "UPDATE documents SET body = ? WHERE collection = ? AND doc_id = ?",
                    (json.dumps(document), collection, json.dumps(document["_id"])),
                )
                matched += 1
                if limit is not None and matched >= limit:
                    break
            self._conn.commit()
        return matched

    def _delete(self, collection: str, query: Filter, limit: Optional[int]) -> int:
        deleted = 0
        with self._lock:
            for document in self._load(collection):
                if not matches(document, query):
                    continue
                self._conn.execute(
                    "DELETE FROM documents WHERE collection = ? AND doc_id = ?",
                    (collection, json.dumps(document["_id"])),
                )
                deleted += 1
                if limit is not None and deleted >= limit:
                    break
            self._conn.commit()
        return deleted
