"""
sheetshare/core/store.py
Document store contract consumed by the access-and-delivery features.

Collections hold flat documents keyed by an opaque string ``id``. Filters are
equality maps whose values may be operator maps (``{"$gte": when}``). Every
update touches a single document and is applied atomically by the store, so
callers express counters as ``inc`` and never read-then-write.

InMemoryDocumentStore serializes each operation under one lock; it is the
default when DATABASE_URL is unset and the store used by the test suite.
"""

import copy
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple
from uuid import uuid4

from sheetshare.core.errors import StoreError

ASCENDING = 1
DESCENDING = -1

Filter = Mapping[str, Any]
Sort = Sequence[Tuple[str, int]]

_OPERATORS = {"$ne", "$gt", "$gte", "$lt", "$lte", "$in"}


class DuplicateKeyError(StoreError):
    """Insert or update would violate a unique field."""


@dataclass
class Update:
    """Single-document update: field sets, increments, removals and list appends."""

    set_fields: Dict[str, Any] = field(default_factory=dict)
    inc: Dict[str, int] = field(default_factory=dict)
    unset: Tuple[str, ...] = ()
    push: Dict[str, Any] = field(default_factory=dict)


def is_operator_map(value: Any) -> bool:
    return isinstance(value, Mapping) and bool(value) and all(k in _OPERATORS for k in value)


def _compare(op: str, actual: Any, expected: Any) -> bool:
    if op == "$ne":
        return actual != expected
    if op == "$in":
        return actual in expected
    if actual is None:
        return False
    if op == "$gt":
        return actual > expected
    if op == "$gte":
        return actual >= expected
    if op == "$lt":
        return actual < expected
    if op == "$lte":
        return actual <= expected
    raise StoreError(f"Unsupported filter operator: {op}")


def matches(doc: Mapping[str, Any], filter: Filter) -> bool:
    """Evaluate a filter against a document. Missing keys compare as None."""
    for key, condition in filter.items():
        actual = doc.get(key)
        if is_operator_map(condition):
            if not all(_compare(op, actual, expected) for op, expected in condition.items()):
                return False
        elif actual != condition:
            return False
    return True


def apply_update(doc: Dict[str, Any], update: Update) -> None:
    for key, value in update.set_fields.items():
        doc[key] = value
    for key, amount in update.inc.items():
        doc[key] = (doc.get(key) or 0) + amount
    for key in update.unset:
        doc.pop(key, None)
    for key, value in update.push.items():
        current = list(doc.get(key) or [])
        current.append(value)
        doc[key] = current


class DocumentStore(ABC):
    """Generic, collection-agnostic storage collaborator."""

    @abstractmethod
    def find_one(self, collection: str, filter: Filter) -> Optional[Dict[str, Any]]:
        ...

    @abstractmethod
    def find(
        self,
        collection: str,
        filter: Filter,
        sort: Optional[Sort] = None,
        skip: int = 0,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        ...

    @abstractmethod
    def insert_one(self, collection: str, doc: Mapping[str, Any]) -> str:
        """Insert and return the generated id."""

    @abstractmethod
    def update_one(self, collection: str, filter: Filter, update: Update) -> int:
        """Apply ``update`` to the first matching document; returns matched count (0 or 1)."""

    @abstractmethod
    def find_one_and_update(self, collection: str, filter: Filter, update: Update) -> Optional[Dict[str, Any]]:
        """Atomically update the first match and return it post-update (None when unmatched)."""

    @abstractmethod
    def delete_one(self, collection: str, filter: Filter) -> int:
        ...

    @abstractmethod
    def delete_many(self, collection: str, filter: Filter) -> int:
        ...


def _sort_documents(docs: List[Dict[str, Any]], sort: Optional[Sort]) -> List[Dict[str, Any]]:
    if not sort:
        return docs
    # Stable sorts applied last-key-first; None sorts before any value
    for key, direction in reversed(list(sort)):
        docs.sort(
            key=lambda d: (d.get(key) is not None, d.get(key)),
            reverse=direction == DESCENDING,
        )
    return docs


class InMemoryDocumentStore(DocumentStore):
    """Thread-safe in-process store with optional unique fields per collection."""

    def __init__(self, unique_fields: Optional[Mapping[str, Iterable[str]]] = None):
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._unique_fields = {name: tuple(fields) for name, fields in (unique_fields or {}).items()}
        self._lock = threading.RLock()

    def _collection(self, name: str) -> Dict[str, Dict[str, Any]]:
        return self._collections.setdefault(name, {})

    def _check_unique(self, collection: str, candidate: Mapping[str, Any], own_id: Optional[str] = None) -> None:
        for key in self._unique_fields.get(collection, ()):
            value = candidate.get(key)
            if value is None:
                continue
            for doc_id, doc in self._collection(collection).items():
                if doc_id != own_id and doc.get(key) == value:
                    raise DuplicateKeyError(f"Duplicate value for {collection}.{key}")

    def _first_match(self, collection: str, filter: Filter) -> Optional[Dict[str, Any]]:
        for doc in self._collection(collection).values():
            if matches(doc, filter):
                return doc
        return None

    def find_one(self, collection: str, filter: Filter) -> Optional[Dict[str, Any]]:
        with self._lock:
            doc = self._first_match(collection, filter)
            return copy.deepcopy(doc) if doc is not None else None

    def find(self, collection, filter, sort=None, skip=0, limit=None):
        with self._lock:
            docs = [copy.deepcopy(d) for d in self._collection(collection).values() if matches(d, filter)]
        docs = _sort_documents(docs, sort)
        end = None if limit is None else skip + limit
        return docs[skip:end]

    def insert_one(self, collection: str, doc: Mapping[str, Any]) -> str:
        stored = copy.deepcopy(dict(doc))
        stored.setdefault("id", str(uuid4()))
        with self._lock:
            if stored["id"] in self._collection(collection):
                raise DuplicateKeyError(f"Duplicate id in {collection}")
            self._check_unique(collection, stored)
            self._collection(collection)[stored["id"]] = stored
        return stored["id"]

    def _update_locked(self, collection: str, filter: Filter, update: Update) -> Optional[Dict[str, Any]]:
        doc = self._first_match(collection, filter)
        if doc is None:
            return None
        updated = copy.deepcopy(doc)
        apply_update(updated, update)
        self._check_unique(collection, updated, own_id=doc["id"])
        doc.clear()
        doc.update(updated)
        return doc

    def update_one(self, collection: str, filter: Filter, update: Update) -> int:
        with self._lock:
            return 0 if self._update_locked(collection, filter, update) is None else 1

    def find_one_and_update(self, collection, filter, update):
        with self._lock:
            doc = self._update_locked(collection, filter, update)
            return copy.deepcopy(doc) if doc is not None else None

    def delete_one(self, collection: str, filter: Filter) -> int:
        with self._lock:
            doc = self._first_match(collection, filter)
            if doc is None:
                return 0
            del self._collection(collection)[doc["id"]]
            return 1

    def delete_many(self, collection: str, filter: Filter) -> int:
        with self._lock:
            docs = self._collection(collection)
            doomed = [doc_id for doc_id, doc in docs.items() if matches(doc, filter)]
            for doc_id in doomed:
                del docs[doc_id]
            return len(doomed)

    def clear(self) -> None:
        """Drop every collection (for testing)."""
        with self._lock:
            self._collections.clear()
